"""Pyth Network price oracle service."""
from __future__ import annotations

import asyncio
import logging
import ssl
import time
from collections.abc import Callable

import aiohttp
import certifi

from ..config import PythConfig
from ..market import MarketState
from ..models import BASE_UNIT_DECIMALS, OraclePrice

logger = logging.getLogger(__name__)


def to_base_price(price_raw: int, expo: int) -> int:
    """Scale a Pyth ``price * 10**expo`` pair to ``BASE_UNIT_DECIMALS`` fixed point."""
    shift = expo + BASE_UNIT_DECIMALS
    if shift >= 0:
        return price_raw * 10**shift
    return price_raw // 10**-shift


def _normalize_id(feed_id: str) -> str:
    return feed_id.lower().removeprefix("0x")


class PythOracle:
    """Fetch prices from Pyth Network oracle.

    Prices older than ``max_age_seconds`` are returned with
    ``is_alive=False`` rather than dropped.
    """

    def __init__(
        self, config: PythConfig, clock: Callable[[], float] = time.time
    ) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self.max_age_seconds = config.max_age_seconds
        self._clock = clock

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, OraclePrice]:
        """Fetch current prices from Pyth Network.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.
        """
        prices: dict[str, OraclePrice] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        query_params = "&".join(f"ids[]={fid}" for fid in feed_ids)
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return prices

        prices = self.parse_prices(data, feeds)
        logger.info("Fetched prices from Pyth Network:")
        for asset, quote in sorted(prices.items()):
            logger.info(
                "  %s: %d (alive=%s)", asset, quote.price, quote.is_alive
            )
        return prices

    def parse_prices(
        self, data: dict, feeds: dict[str, str] | None = None
    ) -> dict[str, OraclePrice]:
        """Turn a Hermes ``latest`` response into fixed-point prices."""
        feeds = self.price_feeds if feeds is None else feeds
        id_to_assets: dict[str, list[str]] = {}
        for asset, feed_id in feeds.items():
            id_to_assets.setdefault(_normalize_id(feed_id), []).append(asset)

        now = int(self._clock())
        prices: dict[str, OraclePrice] = {}
        for item in data.get("parsed", []):
            assets = id_to_assets.get(_normalize_id(str(item.get("id", ""))))
            if not assets:
                continue
            price_data = item.get("price", {})
            price = to_base_price(
                int(price_data.get("price", 0)), int(price_data.get("expo", 0))
            )
            publish_time = int(price_data.get("publish_time", 0))
            stale = bool(publish_time) and now - publish_time > self.max_age_seconds
            if stale:
                logger.warning(
                    "Pyth price for %s is stale (published %ds ago)",
                    ", ".join(assets), now - publish_time,
                )
            for asset in assets:
                prices[asset] = OraclePrice(
                    price=price,
                    is_alive=price > 0 and not stale,
                    publish_time=publish_time,
                )
        return prices


class StaticPriceFeed:
    """Fixed prices from configuration; same interface as ``PythOracle``."""

    def __init__(self, prices: dict[str, float]) -> None:
        self._state = MarketState.from_prices(prices)

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, OraclePrice]:
        return {
            symbol: quote
            for symbol, quote in self._state.prices.items()
            if symbols is None or symbol in symbols
        }


def build_market_state(prices: dict[str, OraclePrice]) -> MarketState:
    return MarketState(prices)
