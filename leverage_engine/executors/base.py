"""Settlement and flash-loan glue shared by both leverage executors."""
from __future__ import annotations

import logging

from ..errors import (
    ConfigurationError,
    ExecutorPaused,
    FlashLoanError,
    InsufficientRepayment,
    SettlementIncomplete,
    SlippageExceeded,
)
from ..interfaces.flash_provider import FlashLiquidityProvider
from ..interfaces.pool_adapter import PoolAdapter
from ..interfaces.swap_venue import SwapVenue
from ..ledger import Ledger
from ..models import (
    CallerPayout,
    FlashLoanRequest,
    FlashLoanSettled,
    FlashLoanTicket,
    LeftoverTransferred,
    SettlementLedger,
    SwapInstruction,
    Token,
)

logger = logging.getLogger(__name__)


class BaseLeverageExecutor:
    """Holds balances only for the duration of one invocation.

    Subclasses run their whole flow inside ``ledger.atomic()`` and finish
    with ``assert_zero_balances``.
    """

    def __init__(
        self,
        ledger: Ledger,
        account: str,
        venue: SwapVenue,
        *,
        min_leftover: dict[str, int] | None = None,
    ) -> None:
        self.ledger = ledger
        self.account = account
        self.venue = venue
        self._default_min_leftover: dict[str, int] = dict(min_leftover or {})
        self._min_leftover: dict[tuple[str, str], int] = {}
        self._paused = False

    # ------------------------------------------------------------------
    # Pause control
    # ------------------------------------------------------------------

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        self._paused = True
        logger.info("Executor %s paused", self.account)

    def unpause(self) -> None:
        self._paused = False
        logger.info("Executor %s unpaused", self.account)

    def ensure_active(self) -> None:
        if self._paused:
            raise ExecutorPaused(f"Executor {self.account} is paused")

    # ------------------------------------------------------------------
    # Leftover thresholds
    # ------------------------------------------------------------------

    def set_min_leftover_amount(self, vault: PoolAdapter, token: Token, amount: int) -> None:
        if amount < 0:
            raise ConfigurationError(f"Minimum leftover must be non-negative, got {amount}")
        self._min_leftover[(vault.name, token.symbol)] = amount
        logger.info(
            "Min leftover for %s/%s set to %d", vault.name, token.symbol, amount
        )

    def remove_min_leftover_amount(self, vault: PoolAdapter, token: Token) -> None:
        self._min_leftover.pop((vault.name, token.symbol), None)

    def min_leftover_amount(self, vault: PoolAdapter, token: Token) -> int:
        key = (vault.name, token.symbol)
        if key in self._min_leftover:
            return self._min_leftover[key]
        return self._default_min_leftover.get(token.symbol, 0)

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def balance(self, token: Token) -> int:
        return self.ledger.balance_of(self.account, token)

    def pull_caller_funds(
        self, caller: str, token: Token, amount: int, settlement: SettlementLedger
    ) -> None:
        if amount <= 0:
            return
        self.ledger.transfer(token, caller, self.account, amount)
        settlement.pulled_from_caller += amount
        logger.debug("Pulled %d %s from %s", amount, token.symbol, caller)

    def flash_shortfall(self, required: int, token: Token) -> int:
        """Amount still missing after counting the executor's true balance."""
        return max(0, required - self.balance(token))

    def assert_zero_balances(self, *tokens: Token) -> None:
        retained = {t.symbol: self.balance(t) for t in tokens if self.balance(t)}
        if retained:
            raise SettlementIncomplete(retained)

    @staticmethod
    def check_swap_pair(swap: SwapInstruction, token_in: Token, token_out: Token) -> None:
        if swap.input_token != token_in or swap.output_token != token_out:
            raise ConfigurationError(
                f"Swap instruction must sell {token_in.symbol} for {token_out.symbol}, "
                f"got {swap.input_token.symbol} -> {swap.output_token.symbol}"
            )

    @staticmethod
    def check_swap_amount(swap: SwapInstruction, expected: int) -> None:
        if swap.amount and swap.amount != expected:
            raise ConfigurationError(
                f"Swap instruction amount {swap.amount} does not match required {expected}"
            )

    # ------------------------------------------------------------------
    # Flash liquidity
    # ------------------------------------------------------------------

    def borrow_shortfall(
        self,
        flash_provider: FlashLiquidityProvider,
        token: Token,
        shortfall: int,
        settlement: SettlementLedger,
    ) -> FlashLoanTicket | None:
        if shortfall <= 0:
            return None
        limit = flash_provider.max_flash_loan(token)
        if shortfall > limit:
            raise FlashLoanError(
                f"Shortfall {shortfall} {token.symbol} exceeds max flash loan {limit}"
            )
        fee = flash_provider.flash_fee(token, shortfall)
        before = self.balance(token)
        ticket = flash_provider.begin_flash_loan(
            FlashLoanRequest(token, shortfall, fee), self.account
        )
        received = self.balance(token) - before
        if received < shortfall:
            raise FlashLoanError(
                f"Flash provider delivered {received} {token.symbol}, expected {shortfall}"
            )
        settlement.flash_borrowed = shortfall
        settlement.flash_fee = ticket.fee
        logger.info("Flash borrowed %d %s (fee %d)", shortfall, token.symbol, ticket.fee)
        return ticket

    def repay_flash_loan(
        self,
        flash_provider: FlashLiquidityProvider,
        ticket: FlashLoanTicket | None,
    ) -> None:
        if ticket is None:
            return
        available = self.balance(ticket.token)
        if available < ticket.repayment_due:
            raise InsufficientRepayment(available, ticket.repayment_due)
        flash_provider.complete_flash_loan(ticket)
        self.ledger.emit(FlashLoanSettled(ticket.token.symbol, ticket.amount, ticket.fee))
        logger.info(
            "Repaid flash loan of %d %s (fee %d)",
            ticket.amount, ticket.token.symbol, ticket.fee,
        )

    # ------------------------------------------------------------------
    # Swaps, measured by balance deltas
    # ------------------------------------------------------------------

    def swap_exact_input(
        self, swap: SwapInstruction, amount_in: int, settlement: SettlementLedger
    ) -> int:
        """Sell exactly *amount_in*; returns the output actually received.

        The venue gets no output floor; the measured balance delta is checked
        against ``swap.min_output`` here.
        """
        token_in, token_out = swap.input_token, swap.output_token
        before_in, before_out = self.balance(token_in), self.balance(token_out)
        self.venue.swap_exact_input(
            self.account, token_in, token_out, amount_in, 0, swap.venue_payload
        )
        spent = before_in - self.balance(token_in)
        received = self.balance(token_out) - before_out
        if spent > amount_in:
            raise SlippageExceeded("Swap spent more than its exact input", spent, amount_in)
        if received < swap.min_output:
            raise SlippageExceeded("Swap output below minimum", received, swap.min_output)
        settlement.swap_spent += spent
        settlement.swap_received += received
        logger.info(
            "Swapped %d %s for %d %s", spent, token_in.symbol, received, token_out.symbol
        )
        return received

    def swap_exact_output(
        self,
        swap: SwapInstruction,
        amount_out: int,
        max_input: int,
        settlement: SettlementLedger,
    ) -> int:
        """Buy exactly *amount_out*; returns the input actually spent.

        The venue may draw on the whole *token_in* balance; the measured spend
        is checked against *max_input* here.
        """
        token_in, token_out = swap.input_token, swap.output_token
        before_in, before_out = self.balance(token_in), self.balance(token_out)
        self.venue.swap_exact_output(
            self.account, token_in, token_out, before_in, amount_out, swap.venue_payload
        )
        spent = before_in - self.balance(token_in)
        received = self.balance(token_out) - before_out
        if received < amount_out:
            raise SlippageExceeded("Swap output below exact output", received, amount_out)
        if spent > max_input:
            raise SlippageExceeded("Swap input above maximum", spent, max_input)
        settlement.swap_spent += spent
        settlement.swap_received += received
        logger.info(
            "Swapped %d %s for %d %s", spent, token_in.symbol, received, token_out.symbol
        )
        return spent

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def pay_caller(
        self, token: Token, amount: int, caller: str, settlement: SettlementLedger
    ) -> None:
        if amount <= 0:
            return
        self.ledger.transfer(token, self.account, caller, amount)
        self.ledger.emit(CallerPayout(token.symbol, amount, caller))
        settlement.owed_to_caller[token.symbol] = (
            settlement.owed_to_caller.get(token.symbol, 0) + amount
        )

    def settle_leftover(
        self,
        vault: PoolAdapter,
        token: Token,
        caller: str,
        settlement: SettlementLedger,
    ) -> int:
        """Sweep the remaining *token* balance; returns the amount sent to the vault.

        Balances above the vault's minimum leftover go to the vault; dust at
        or below it is refunded to *caller*.
        """
        leftover = self.balance(token)
        if leftover <= 0:
            return 0
        settlement.residual[token.symbol] = leftover
        if leftover > self.min_leftover_amount(vault, token):
            self.ledger.transfer(token, self.account, vault.account, leftover)
            self.ledger.emit(LeftoverTransferred(token.symbol, leftover, vault.account))
            logger.info("Swept %d %s leftover to %s", leftover, token.symbol, vault.name)
            return leftover
        self.ledger.transfer(token, self.account, caller, leftover)
        logger.debug("Refunded %d %s dust to %s", leftover, token.symbol, caller)
        return 0
