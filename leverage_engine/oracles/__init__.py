from .pyth import PythOracle, StaticPriceFeed, build_market_state

__all__ = ["PythOracle", "StaticPriceFeed", "build_market_state"]
