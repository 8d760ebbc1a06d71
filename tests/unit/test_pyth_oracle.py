"""Unit tests for the Pyth oracle: response parsing, staleness and error handling."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from leverage_engine.config import PythConfig
from leverage_engine.models import OraclePrice
from leverage_engine.oracles import PythOracle, StaticPriceFeed, build_market_state
from leverage_engine.oracles.pyth import to_base_price

NOW = 1_700_000_000


@pytest.fixture()
def oracle() -> PythOracle:
    return PythOracle(
        PythConfig(
            hermes_url="https://hermes.example.com/v2/updates/price/latest",
            feeds={"WETH": "0xAAA111", "WBTC": "bbb222", "dUSD": "ccc333"},
            max_age_seconds=60,
        ),
        clock=lambda: NOW,
    )


def _item(feed_id: str, price: str, expo: str = "-8", publish_time: int = NOW) -> dict:
    return {
        "id": feed_id,
        "price": {"price": price, "expo": expo, "publish_time": publish_time},
    }


def _mock_session(status: int = 200, data: dict | None = None) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=data or {})
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.get = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestToBasePrice:
    def test_same_exponent(self) -> None:
        assert to_base_price(350_000_000, -8) == 350_000_000

    def test_more_precise_feed_truncates(self) -> None:
        assert to_base_price(123_456_789_012, -10) == 1_234_567_890

    def test_less_precise_feed_scales_up(self) -> None:
        assert to_base_price(3_500, -3) == 350_000_000


class TestPythOracleFetchPrices:
    @pytest.mark.asyncio
    async def test_parses_response_correctly(self, oracle: PythOracle) -> None:
        session = _mock_session(
            data={
                "parsed": [
                    _item("aaa111", "350000000000"),
                    _item("bbb222", "10000000000000"),
                    _item("ccc333", "100000000"),
                ]
            }
        )

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                prices = await oracle.fetch_prices()

        assert prices["WETH"] == OraclePrice(350_000_000_000, True, NOW)
        assert prices["WBTC"].price == 10_000_000_000_000
        assert prices["dUSD"].price == 100_000_000
        url = session.get.call_args.args[0]
        assert url.startswith("https://hermes.example.com/v2/updates/price/latest?ids[]=")

    @pytest.mark.asyncio
    async def test_handles_http_error(self, oracle: PythOracle) -> None:
        with patch(
            "leverage_engine.oracles.pyth.aiohttp.ClientSession",
            return_value=_mock_session(status=500),
        ):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                prices = await oracle.fetch_prices()

        assert prices == {}

    @pytest.mark.asyncio
    async def test_handles_network_error(self, oracle: PythOracle) -> None:
        session = _mock_session()
        session.get = MagicMock(side_effect=ConnectionError("timeout"))

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                prices = await oracle.fetch_prices()

        assert prices == {}

    @pytest.mark.asyncio
    async def test_symbol_filter(self, oracle: PythOracle) -> None:
        session = _mock_session(data={"parsed": [_item("aaa111", "350000000000")]})

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                prices = await oracle.fetch_prices(symbols=["WETH"])

        assert "WETH" in prices
        assert "WBTC" not in prices
        assert "bbb222" not in session.get.call_args.args[0]

    @pytest.mark.asyncio
    async def test_empty_feeds_returns_empty(self) -> None:
        oracle = PythOracle(PythConfig(hermes_url="https://x.com", feeds={}))
        assert await oracle.fetch_prices() == {}


class TestParsePrices:
    def test_stale_price_marked_not_alive(self, oracle: PythOracle) -> None:
        prices = oracle.parse_prices(
            {"parsed": [_item("aaa111", "350000000000", publish_time=NOW - 61)]}
        )
        assert prices["WETH"].is_alive is False
        assert prices["WETH"].price == 350_000_000_000

    def test_fresh_at_max_age(self, oracle: PythOracle) -> None:
        prices = oracle.parse_prices(
            {"parsed": [_item("aaa111", "350000000000", publish_time=NOW - 60)]}
        )
        assert prices["WETH"].is_alive is True

    def test_non_positive_price_not_alive(self, oracle: PythOracle) -> None:
        prices = oracle.parse_prices({"parsed": [_item("ccc333", "0")]})
        assert prices["dUSD"].is_alive is False

    def test_unknown_ids_ignored(self, oracle: PythOracle) -> None:
        assert oracle.parse_prices({"parsed": [_item("fff999", "1")]}) == {}

    def test_id_matching_ignores_prefix_and_case(self, oracle: PythOracle) -> None:
        prices = oracle.parse_prices({"parsed": [_item("0xaaa111", "100000000")]})
        assert "WETH" in prices

    def test_shared_feed_fills_every_asset(self) -> None:
        oracle = PythOracle(PythConfig(feeds={"dUSD": "ccc", "USDC": "ccc"}), clock=lambda: NOW)
        prices = oracle.parse_prices({"parsed": [_item("ccc", "100000000")]})
        assert prices["dUSD"] == prices["USDC"]


class TestStaticPriceFeed:
    @pytest.mark.asyncio
    async def test_returns_fixed_prices(self) -> None:
        feed = StaticPriceFeed({"WETH": 2000.0, "dUSD": 1.0})
        prices = await feed.fetch_prices()
        assert prices["WETH"] == OraclePrice(200_000_000_000)
        assert prices["dUSD"] == OraclePrice(100_000_000)

    @pytest.mark.asyncio
    async def test_symbol_filter(self) -> None:
        feed = StaticPriceFeed({"WETH": 2000.0, "dUSD": 1.0})
        assert list(await feed.fetch_prices(["dUSD"])) == ["dUSD"]

    @pytest.mark.asyncio
    async def test_builds_market_state(self) -> None:
        feed = StaticPriceFeed({"WETH": 2000.0})
        market = build_market_state(await feed.fetch_prices())
        assert market.get_asset_price("WETH").price == 200_000_000_000
