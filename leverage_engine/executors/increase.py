"""Increase-leverage executor: flash-borrow debt, buy collateral, lever up the vault."""
from __future__ import annotations

import logging

from ..errors import DepositsDisabled
from ..interfaces.flash_provider import FlashLiquidityProvider
from ..interfaces.pool_adapter import PoolAdapter
from ..market import MarketState
from ..models import (
    Direction,
    RebalanceExecuted,
    RebalanceQuote,
    RebalanceResult,
    SettlementLedger,
    SwapInstruction,
)
from ..services.quoter import check_direction
from .base import BaseLeverageExecutor

logger = logging.getLogger(__name__)


class IncreaseLeverageExecutor(BaseLeverageExecutor):
    """Rebalances an under-levered vault back to its target.

    Flow: pull caller debt tokens, flash-borrow the shortfall, swap the
    quoted debt amount into collateral, hand the collateral to the vault
    (which borrows debt plus subsidy back to us), repay the flash loan and
    return whatever is left to the caller.
    """

    def execute(
        self,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        vault: PoolAdapter,
        flash_provider: FlashLiquidityProvider,
        market: MarketState,
        *,
        caller: str,
        caller_debt_contribution: int = 0,
    ) -> RebalanceResult:
        self.ensure_active()
        check_direction(quote, Direction.INCREASE)
        collateral, debt = vault.collateral_token, vault.debt_token
        self.check_swap_pair(swap, debt, collateral)
        if vault.max_deposit(self.account) == 0:
            logger.info("Increase on %s declined: deposits disabled", vault.name)
            raise DepositsDisabled(f"Deposits disabled on {vault.name}")

        required = quote.required_debt_token_amount
        self.check_swap_amount(swap, required)
        settlement = SettlementLedger()
        try:
            with self.ledger.atomic():
                self.pull_caller_funds(caller, debt, caller_debt_contribution, settlement)
                shortfall = self.flash_shortfall(required, debt)
                ticket = self.borrow_shortfall(flash_provider, debt, shortfall, settlement)

                received = self.swap_exact_input(swap, required, settlement)

                debt_before = self.balance(debt)
                collateral_before = self.balance(collateral)
                vault.increase_leverage(self.account, received, 0, market)
                settlement.paid_to_vault = collateral_before - self.balance(collateral)
                settlement.received_from_vault = self.balance(debt) - debt_before

                self.repay_flash_loan(flash_provider, ticket)

                debt_to_caller = self.balance(debt)
                self.pay_caller(debt, debt_to_caller, caller, settlement)
                swept = self.settle_leftover(vault, collateral, caller, settlement)

                resulting = vault.get_current_leverage_bps(market)
                self.ledger.emit(RebalanceExecuted(Direction.INCREASE, required, resulting))
                self.assert_zero_balances(collateral, debt)
        except Exception as e:
            logger.warning("Increase leverage on %s failed: %s", vault.name, e)
            raise

        logger.info(
            "Increased leverage on %s: %d -> %d bps (flash %d, to caller %d %s)",
            vault.name, quote.current_leverage_bps, resulting,
            settlement.flash_borrowed, debt_to_caller, debt.symbol,
        )
        return RebalanceResult(
            direction=Direction.INCREASE,
            debt_amount=required,
            flash_borrowed=settlement.flash_borrowed,
            flash_fee=settlement.flash_fee,
            collateral_to_caller=0,
            debt_to_caller=debt_to_caller,
            leftover_swept=swept,
            resulting_leverage_bps=resulting,
            settlement=settlement,
        )
