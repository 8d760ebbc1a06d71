"""Price oracle protocols — synchronous snapshot and async feed."""
from typing import Protocol

from ..models import OraclePrice, Token


class PriceOracle(Protocol):
    """Synchronous price lookup used inside an atomic operation."""

    def get_asset_price(self, token: Token | str) -> OraclePrice: ...


class PriceFeed(Protocol):
    """Abstract interface for fetching live asset prices."""

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, OraclePrice]: ...
