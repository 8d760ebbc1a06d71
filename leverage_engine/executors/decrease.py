"""Decrease-leverage executor: repay vault debt, withdraw collateral, pay the caller."""
from __future__ import annotations

import logging

from ..errors import InsufficientOutput
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
from ..services.quoter import RebalanceQuoter, check_direction
from .base import BaseLeverageExecutor

logger = logging.getLogger(__name__)


class DecreaseLeverageExecutor(BaseLeverageExecutor):
    """Rebalances an over-levered vault back to its target.

    Flow: pull caller debt tokens, flash-borrow the shortfall, repay the
    vault's debt and receive collateral plus subsidy, sell just enough
    collateral to repay the flash loan, then pay the caller's collateral
    before sweeping any leftover to the vault.
    """

    def decrease_leverage(
        self,
        caller_debt_contribution: int,
        min_output_collateral: int,
        swap: SwapInstruction,
        vault: PoolAdapter,
        flash_provider: FlashLiquidityProvider,
        market: MarketState,
        *,
        caller: str,
        quote: RebalanceQuote | None = None,
    ) -> RebalanceResult:
        """Run one decrease; *quote* defaults to a fresh quote of *vault*.

        A quote smaller than the fresh one is a partial decrease: leverage
        strictly improves but may stay above the upper bound.
        """
        self.ensure_active()
        if quote is None:
            quote = RebalanceQuoter(vault.bounds).quote(vault, market)
        check_direction(quote, Direction.DECREASE)
        collateral, debt = vault.collateral_token, vault.debt_token
        self.check_swap_pair(swap, collateral, debt)

        required = quote.required_debt_token_amount
        self.check_swap_amount(swap, 0)
        settlement = SettlementLedger()
        try:
            with self.ledger.atomic():
                self.pull_caller_funds(caller, debt, caller_debt_contribution, settlement)
                shortfall = self.flash_shortfall(required, debt)
                ticket = self.borrow_shortfall(flash_provider, debt, shortfall, settlement)

                debt_before = self.balance(debt)
                collateral_before = self.balance(collateral)
                vault.decrease_leverage(self.account, required, 0, market)
                settlement.paid_to_vault = debt_before - self.balance(debt)
                collateral_received = self.balance(collateral) - collateral_before
                settlement.received_from_vault = collateral_received

                owed = ticket.repayment_due if ticket else 0
                needed = max(0, owed - self.balance(debt))
                collateral_spent = 0
                if needed:
                    max_input = swap.max_input if swap.max_input is not None else collateral_received
                    collateral_spent = self.swap_exact_output(swap, needed, max_input, settlement)

                self.repay_flash_loan(flash_provider, ticket)

                entitled = collateral_received - collateral_spent
                if entitled < min_output_collateral:
                    raise InsufficientOutput(entitled, min_output_collateral)
                self.pay_caller(collateral, entitled, caller, settlement)
                swept = self.settle_leftover(vault, collateral, caller, settlement)

                debt_to_caller = self.balance(debt)
                self.pay_caller(debt, debt_to_caller, caller, settlement)

                resulting = vault.get_current_leverage_bps(market)
                self.ledger.emit(RebalanceExecuted(Direction.DECREASE, required, resulting))
                self.assert_zero_balances(collateral, debt)
        except Exception as e:
            logger.warning("Decrease leverage on %s failed: %s", vault.name, e)
            raise

        logger.info(
            "Decreased leverage on %s: %d -> %d bps (flash %d, caller %d %s)",
            vault.name, quote.current_leverage_bps, resulting,
            settlement.flash_borrowed, entitled, collateral.symbol,
        )
        return RebalanceResult(
            direction=Direction.DECREASE,
            debt_amount=required,
            flash_borrowed=settlement.flash_borrowed,
            flash_fee=settlement.flash_fee,
            collateral_to_caller=entitled,
            debt_to_caller=debt_to_caller,
            leftover_swept=swept,
            resulting_leverage_bps=resulting,
            settlement=settlement,
        )
