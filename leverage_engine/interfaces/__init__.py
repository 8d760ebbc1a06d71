"""Protocol interfaces for the leverage engine's external collaborators."""
from .flash_provider import CALLBACK_SUCCESS, FlashBorrower, FlashLiquidityProvider
from .pool_adapter import PoolAdapter
from .price_oracle import PriceFeed, PriceOracle
from .swap_venue import SwapVenue

__all__ = [
    "CALLBACK_SUCCESS",
    "FlashBorrower",
    "FlashLiquidityProvider",
    "PoolAdapter",
    "PriceFeed",
    "PriceOracle",
    "SwapVenue",
]
