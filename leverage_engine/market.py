"""Market state — an explicit snapshot of oracle prices passed into every quote."""
from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from .errors import StalePrice
from .models import BASE_UNIT_DECIMALS, OraclePrice, Token


class MarketState:
    """Immutable price snapshot implementing the ``PriceOracle`` interface."""

    def __init__(self, prices: Mapping[str, OraclePrice] | None = None) -> None:
        self._prices = MappingProxyType(dict(prices or {}))

    @classmethod
    def from_prices(
        cls,
        prices: Mapping[str, float],
        publish_times: Mapping[str, int] | None = None,
        now: int | None = None,
        max_age_seconds: int | None = None,
    ) -> MarketState:
        """Build fixed-point prices from float prices.

        A price older than *max_age_seconds* (relative to *now*) is kept but
        marked not alive.
        """
        publish_times = publish_times or {}
        out: dict[str, OraclePrice] = {}
        for symbol, value in prices.items():
            publish_time = int(publish_times.get(symbol, 0))
            alive = value > 0
            if max_age_seconds is not None and now is not None and publish_time:
                alive = alive and (now - publish_time) <= max_age_seconds
            out[symbol] = OraclePrice(
                price=round(value * 10**BASE_UNIT_DECIMALS),
                is_alive=alive,
                publish_time=publish_time,
            )
        return cls(out)

    @property
    def prices(self) -> Mapping[str, OraclePrice]:
        return self._prices

    def get_asset_price(self, token: Token | str) -> OraclePrice:
        symbol = token.symbol if isinstance(token, Token) else token
        return self._prices.get(symbol, OraclePrice(price=0, is_alive=False))

    def require_price(self, token: Token) -> int:
        """Return the live price of *token* or raise ``StalePrice``."""
        quote = self.get_asset_price(token)
        if not quote.is_alive or quote.price <= 0:
            raise StalePrice(token.symbol)
        return quote.price

    def with_price(self, token: Token | str, price: int, is_alive: bool = True) -> MarketState:
        symbol = token.symbol if isinstance(token, Token) else token
        prices = dict(self._prices)
        prices[symbol] = OraclePrice(price=price, is_alive=is_alive)
        return MarketState(prices)

    def to_base(self, token: Token, amount: int) -> int:
        """Token amount -> base value (floor)."""
        return amount * self.require_price(token) // 10**token.decimals

    def from_base(self, token: Token, value: int) -> int:
        """Base value -> token amount (floor)."""
        return value * 10**token.decimals // self.require_price(token)

    def __repr__(self) -> str:
        return f"MarketState({dict(self._prices)!r})"
