"""Wire a complete in-memory vault from configuration."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import AppConfig, VaultConfig, resolve_token, vault_bounds
from ..errors import NoRebalanceNeeded
from ..executors import DecreaseLeverageExecutor, IncreaseLeverageExecutor
from ..ledger import Ledger
from ..market import MarketState
from ..models import (
    ONE_HUNDRED_PERCENT_BPS,
    Direction,
    RebalanceResult,
    SwapInstruction,
)
from ..services.quoter import RebalanceQuoter
from ..swaps import SwapRouter
from .dex import FixedRateVenue
from .flash import FlashMintProvider
from .lending_pool import LendingPool
from .vault import LeveragedVault

logger = logging.getLogger(__name__)

DEPOSITOR = "depositor"
KEEPER = "keeper"
MIN_OUTPUT_TOLERANCE_BPS = 50


@dataclass
class Simulation:
    ledger: Ledger
    pool: LendingPool
    vault: LeveragedVault
    flash: FlashMintProvider
    venue: FixedRateVenue
    increase: IncreaseLeverageExecutor
    decrease: DecreaseLeverageExecutor
    market: MarketState

    def shock_price(self, percent: float) -> None:
        """Move the collateral price by *percent* in both the oracle and the venue."""
        token = self.vault.collateral_token
        price = self.market.require_price(token) * (100 + percent) / 100
        self.market = self.market.with_price(token, int(price))
        self.venue.set_price(token.symbol, int(price))
        logger.info("Shocked %s price by %+.2f%% to %d", token.symbol, percent, int(price))


def build_simulation(
    config: AppConfig,
    vault_cfg: VaultConfig,
    market: MarketState,
    *,
    liquidity_multiple: int = 10,
) -> Simulation:
    """Build a funded vault holding ``vault_cfg.collateral_amount`` at target leverage."""
    collateral = resolve_token(config, vault_cfg.collateral_token)
    debt = resolve_token(config, vault_cfg.debt_token)
    deposit = round(vault_cfg.collateral_amount * 10**collateral.decimals)
    debt_equivalent = market.from_base(debt, market.to_base(collateral, deposit))

    ledger = Ledger()
    pool = LendingPool(ledger, vault_cfg.name)
    ledger.mint(pool.account, debt, debt_equivalent * liquidity_multiple)

    vault = LeveragedVault(
        ledger,
        pool,
        vault_cfg.name,
        collateral,
        debt,
        vault_bounds(vault_cfg),
        liquidation_threshold_bps=vault_cfg.liquidation_threshold_bps,
        exchange_threshold=vault_cfg.exchange_threshold,
        deposit_cap=vault_cfg.deposit_cap,
    )
    flash = FlashMintProvider(ledger, config.flash_loan.fee_bps)
    venue = FixedRateVenue(
        ledger,
        {token.symbol: market.require_price(token) for token in (collateral, debt)},
        slippage_bps=config.swap.slippage_bps,
    )
    ledger.mint(venue.account, collateral, deposit * liquidity_multiple)
    ledger.mint(venue.account, debt, debt_equivalent * liquidity_multiple)

    router = SwapRouter(venue)
    min_leftover = {
        collateral.symbol: config.executor.min_leftover_collateral,
        debt.symbol: config.executor.min_leftover_debt,
    }
    sim = Simulation(
        ledger=ledger,
        pool=pool,
        vault=vault,
        flash=flash,
        venue=venue,
        increase=IncreaseLeverageExecutor(
            ledger, "executor:increase", router, min_leftover=min_leftover
        ),
        decrease=DecreaseLeverageExecutor(
            ledger, "executor:decrease", router, min_leftover=min_leftover
        ),
        market=market,
    )

    if deposit:
        ledger.mint(DEPOSITOR, collateral, deposit)
        vault.deposit(DEPOSITOR, deposit, DEPOSITOR, market)
    return sim


def run_rebalance(
    sim: Simulation, *, caller: str = KEEPER, prefund_pct: int = 0
) -> RebalanceResult:
    """Quote the vault and run the matching executor.

    *prefund_pct* percent of the quoted debt amount is minted to *caller*
    and contributed up front; the rest is flash-borrowed.
    """
    vault = sim.vault
    quote = RebalanceQuoter(vault.bounds).quote(vault, sim.market)
    if quote.direction == Direction.NONE:
        raise NoRebalanceNeeded(quote.current_leverage_bps)

    contribution = quote.required_debt_token_amount * prefund_pct // 100
    if contribution:
        sim.ledger.mint(caller, vault.debt_token, contribution)

    if quote.direction == Direction.DECREASE:
        swap = SwapInstruction(vault.collateral_token, vault.debt_token)
        return sim.decrease.decrease_leverage(
            contribution, 0, swap, vault, sim.flash, sim.market,
            caller=caller, quote=quote,
        )

    expected = sim.venue.quote_exact_input(
        vault.debt_token, vault.collateral_token, quote.required_debt_token_amount
    )
    swap = SwapInstruction(
        vault.debt_token, vault.collateral_token, quote.required_debt_token_amount,
        min_output=expected * (ONE_HUNDRED_PERCENT_BPS - MIN_OUTPUT_TOLERANCE_BPS)
        // ONE_HUNDRED_PERCENT_BPS,
    )
    return sim.increase.execute(
        quote, swap, vault, sim.flash, sim.market,
        caller=caller, caller_debt_contribution=contribution,
    )
