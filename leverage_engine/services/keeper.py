"""Keeper loop — quotes every configured vault and reports what needs rebalancing."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..config import AppConfig, VaultConfig, resolve_token, vault_bounds
from ..errors import LeverageEngineError
from ..interfaces.price_oracle import PriceFeed
from ..logic.leverage import insolvency_limit_bps
from ..market import MarketState
from ..models import Direction, OraclePrice, Position, RebalanceQuote
from ..oracles import PythOracle, StaticPriceFeed, build_market_state
from .quoter import RebalanceQuoter

logger = logging.getLogger(__name__)


def to_units(amount: float, decimals: int) -> int:
    return round(amount * 10**decimals)


def format_leverage(bps: int) -> str:
    return f"{bps / 10_000:.2f}x"


class Keeper:
    """Periodically quotes each vault's configured position against live prices."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._feed: PriceFeed
        if config.price_oracle.provider == "pyth":
            self._feed = PythOracle(config.price_oracle.pyth)
        else:
            self._feed = StaticPriceFeed(config.price_oracle.static_prices)
        self._quoters = {
            vault.name: RebalanceQuoter(vault_bounds(vault)) for vault in config.vaults
        }

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def quote_vault(self, vault: VaultConfig, market: MarketState) -> RebalanceQuote:
        """Quote the configured collateral/debt snapshot of *vault*."""
        collateral = resolve_token(self._config, vault.collateral_token)
        debt = resolve_token(self._config, vault.debt_token)
        collateral_units = to_units(vault.collateral_amount, collateral.decimals)
        debt_units = to_units(vault.debt_amount, debt.decimals)
        position = Position(
            market.to_base(collateral, collateral_units) if collateral_units else 0,
            market.to_base(debt, debt_units) if debt_units else 0,
        )
        return self._quoters[vault.name].quote_position(
            position,
            collateral,
            debt,
            market,
            insolvency_limit_bps=insolvency_limit_bps(vault.liquidation_threshold_bps),
            exchange_threshold=vault.exchange_threshold,
        )

    def _describe(self, vault: VaultConfig, quote: RebalanceQuote) -> str:
        if quote.direction == Direction.NONE:
            status = "within bounds"
        else:
            status = (
                f"{quote.direction.name} {quote.required_debt_token_amount} "
                f"{vault.debt_token} (subsidy {quote.estimated_subsidy_bps} bps)"
            )
        return (
            f"{vault.name} · {vault.collateral_token}/{vault.debt_token} · "
            f"leverage {format_leverage(quote.current_leverage_bps)} "
            f"(target {format_leverage(quote.target_leverage_bps)}) · {status}"
        )

    async def fetch_prices(self) -> dict[str, OraclePrice]:
        return await self._feed.fetch_prices()

    async def check_once(self) -> dict[str, RebalanceQuote]:
        """Quote every vault once; vaults that cannot be quoted are logged and skipped."""
        market = build_market_state(await self.fetch_prices())

        quotes: dict[str, RebalanceQuote] = {}
        for vault in self._config.vaults:
            try:
                quote = self.quote_vault(vault, market)
            except LeverageEngineError as e:
                logger.warning("Cannot quote %s: %s", vault.name, e)
                continue
            quotes[vault.name] = quote
            logger.info("%s · %s UTC", self._describe(vault, quote), self._now_str())
        return quotes

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run continuous keeper loop."""
        interval = check_interval_minutes or self._config.keeper.check_interval_minutes
        logger.info("Starting keeper (checking every %d minutes)", interval)

        while True:
            try:
                await self.check_once()
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in keeper loop: %s", e)
                await asyncio.sleep(60)
