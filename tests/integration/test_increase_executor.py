"""Integration tests for the increase-leverage executor against in-memory collaborators."""
from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from leverage_engine.errors import (
    ConfigurationError,
    DepositsDisabled,
    ExecutorPaused,
    InsufficientRepayment,
    NoRebalanceNeeded,
    QuoteDirectionMismatch,
    SlippageExceeded,
)
from leverage_engine.executors import IncreaseLeverageExecutor
from leverage_engine.ledger import Ledger
from leverage_engine.market import MarketState
from leverage_engine.models import (
    CallerPayout,
    Direction,
    FlashLoanSettled,
    LeftoverTransferred,
    RebalanceExecuted,
    RebalanceQuote,
    SwapInstruction,
    Token,
)
from leverage_engine.services.quoter import RebalanceQuoter
from leverage_engine.simulation import FixedRateVenue, FlashMintProvider, LeveragedVault

ONE = 10**18
CALLER = "keeper"


class _GreedyVenue:
    """Fills the swap, then pulls one extra unit of the input token."""

    def __init__(self, inner: FixedRateVenue) -> None:
        self.inner = inner

    def swap_exact_input(
        self,
        account: str,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        min_out: int,
        payload: bytes,
    ) -> int:
        out = self.inner.swap_exact_input(account, token_in, token_out, amount_in, min_out, payload)
        self.inner.ledger.transfer(token_in, account, self.inner.account, 1)
        return out

    def swap_exact_output(self, *args: object) -> int:
        raise AssertionError("not used by the increase flow")


@pytest.fixture()
def up(
    funded_vault: LeveragedVault,
    market: MarketState,
    shock: Callable[[MarketState, int], MarketState],
) -> MarketState:
    """Market after a 50% collateral price rise (leverage ~1.8x)."""
    return shock(market, 50)


@pytest.fixture()
def quote(funded_vault: LeveragedVault, up: MarketState) -> RebalanceQuote:
    return RebalanceQuoter(funded_vault.bounds).quote(funded_vault, up)


@pytest.fixture()
def swap(collateral: Token, debt: Token) -> SwapInstruction:
    return SwapInstruction(debt, collateral)


class TestIncreaseFlow:
    def test_full_flash_increase(
        self,
        ledger: Ledger,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        collateral: Token,
        debt: Token,
    ) -> None:
        assert quote.direction == Direction.INCREASE
        assert quote.estimated_subsidy_bps == 20
        required = quote.required_debt_token_amount

        result = increase_executor.execute(quote, swap, funded_vault, flash, up, caller=CALLER)

        assert result.direction == Direction.INCREASE
        assert result.flash_borrowed == required
        assert result.flash_fee == flash.flash_fee(debt, required)
        assert result.collateral_to_caller == 0
        # subsidy outweighs fee plus slippage, the caller keeps the difference
        assert result.debt_to_caller > 0
        assert ledger.balance_of(CALLER, debt) == result.debt_to_caller
        assert 20_000 <= result.resulting_leverage_bps <= 30_000
        assert result.resulting_leverage_bps > quote.current_leverage_bps
        assert ledger.balance_of(increase_executor.account, collateral) == 0
        assert ledger.balance_of(increase_executor.account, debt) == 0
        assert flash.open_tickets == ()

    def test_records_emitted_in_order(
        self,
        ledger: Ledger,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
    ) -> None:
        result = increase_executor.execute(quote, swap, funded_vault, flash, up, caller=CALLER)
        assert [type(r) for r in ledger.records] == [
            FlashLoanSettled,
            CallerPayout,
            RebalanceExecuted,
        ]
        assert ledger.records[1] == CallerPayout("dUSD", result.debt_to_caller, CALLER)

    def test_settlement_accounts_for_every_leg(
        self,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
    ) -> None:
        result = increase_executor.execute(quote, swap, funded_vault, flash, up, caller=CALLER)
        s = result.settlement
        assert s.swap_spent == quote.required_debt_token_amount
        assert s.paid_to_vault == s.swap_received
        assert s.received_from_vault - result.flash_borrowed - result.flash_fee == (
            result.debt_to_caller
        )

    def test_swap_min_output_enforced(
        self,
        ledger: Ledger,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        collateral: Token,
        debt: Token,
    ) -> None:
        balances = ledger.balances
        strict = SwapInstruction(debt, collateral, min_output=10**30)
        with pytest.raises(SlippageExceeded, match="Swap output below minimum"):
            increase_executor.execute(quote, strict, funded_vault, flash, up, caller=CALLER)
        assert ledger.balances == balances

    def test_min_output_checked_against_received(
        self,
        ledger: Ledger,
        venue: FixedRateVenue,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        collateral: Token,
        debt: Token,
    ) -> None:
        spy_venue = MagicMock(wraps=venue)
        executor = IncreaseLeverageExecutor(ledger, "executor:spy", spy_venue)
        strict = SwapInstruction(debt, collateral, min_output=10**30)

        with pytest.raises(SlippageExceeded, match="Swap output below minimum") as exc:
            executor.execute(quote, strict, funded_vault, flash, up, caller=CALLER)

        assert spy_venue.swap_exact_input.call_args.args[4] == 0
        assert exc.value.limit == 10**30
        assert 0 < exc.value.actual < 10**30
        assert flash.open_tickets == ()


class TestNoDoubleCounting:
    @pytest.mark.parametrize("prefund_pct", [1, 50, 99])
    def test_partial_prefund_borrows_the_rest(
        self,
        ledger: Ledger,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        debt: Token,
        prefund_pct: int,
    ) -> None:
        required = quote.required_debt_token_amount
        contribution = required * prefund_pct // 100
        ledger.mint(CALLER, debt, contribution)

        result = increase_executor.execute(
            quote, swap, funded_vault, flash, up,
            caller=CALLER, caller_debt_contribution=contribution,
        )

        assert result.flash_borrowed == required - contribution
        assert result.settlement.pulled_from_caller == contribution

    def test_excess_prefund_is_returned(
        self,
        ledger: Ledger,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        debt: Token,
    ) -> None:
        required = quote.required_debt_token_amount
        ledger.mint(CALLER, debt, required + 3 * ONE)

        result = increase_executor.execute(
            quote, swap, funded_vault, flash, up,
            caller=CALLER, caller_debt_contribution=required + 3 * ONE,
        )

        assert result.flash_borrowed == 0
        assert ledger.records_of(FlashLoanSettled) == []
        assert result.debt_to_caller == 3 * ONE + result.settlement.received_from_vault
        assert ledger.balance_of(CALLER, debt) == result.debt_to_caller


class TestSettlementOrder:
    def test_caller_paid_before_leftover_sweep(
        self,
        ledger: Ledger,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        collateral: Token,
    ) -> None:
        ledger.mint(increase_executor.account, collateral, 2 * ONE)

        result = increase_executor.execute(quote, swap, funded_vault, flash, up, caller=CALLER)

        kinds = [type(r) for r in ledger.records]
        assert kinds.index(CallerPayout) < kinds.index(LeftoverTransferred)
        assert result.leftover_swept == 2 * ONE
        assert ledger.balance_of(funded_vault.account, collateral) == 2 * ONE

    def test_configured_threshold_refunds_dust(
        self,
        ledger: Ledger,
        venue: FixedRateVenue,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        collateral: Token,
    ) -> None:
        executor = IncreaseLeverageExecutor(
            ledger, "executor:dust", venue, min_leftover={collateral.symbol: ONE}
        )
        ledger.mint(executor.account, collateral, ONE)

        result = executor.execute(quote, swap, funded_vault, flash, up, caller=CALLER)

        assert result.leftover_swept == 0
        assert ledger.records_of(LeftoverTransferred) == []
        assert ledger.balance_of(CALLER, collateral) == ONE


class TestRollback:
    def test_unprofitable_swap_cannot_repay(
        self,
        ledger: Ledger,
        venue: FixedRateVenue,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
    ) -> None:
        venue.slippage_bps = 100
        balances, records = ledger.balances, ledger.records
        position = funded_vault.collateral_and_debt_amounts()

        with pytest.raises(InsufficientRepayment):
            increase_executor.execute(quote, swap, funded_vault, flash, up, caller=CALLER)

        assert ledger.balances == balances
        assert ledger.records == records
        assert funded_vault.collateral_and_debt_amounts() == position
        assert flash.open_tickets == ()

    def test_prefund_covers_slippage(
        self,
        ledger: Ledger,
        venue: FixedRateVenue,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        debt: Token,
    ) -> None:
        venue.slippage_bps = 100
        contribution = quote.required_debt_token_amount * 2 // 100
        ledger.mint(CALLER, debt, contribution)

        result = increase_executor.execute(
            quote, swap, funded_vault, flash, up,
            caller=CALLER, caller_debt_contribution=contribution,
        )

        assert result.flash_borrowed == quote.required_debt_token_amount - contribution
        assert 0 < result.debt_to_caller < contribution

    def test_greedy_venue_is_caught(
        self,
        ledger: Ledger,
        venue: FixedRateVenue,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
        debt: Token,
    ) -> None:
        executor = IncreaseLeverageExecutor(ledger, "executor:greedy", _GreedyVenue(venue))
        contribution = quote.required_debt_token_amount + ONE
        ledger.mint(CALLER, debt, contribution)
        balances = ledger.balances

        with pytest.raises(SlippageExceeded, match="spent more"):
            executor.execute(
                quote, swap, funded_vault, flash, up,
                caller=CALLER, caller_debt_contribution=contribution,
            )

        assert ledger.balances == balances


class TestPreconditions:
    def test_deposits_disabled_short_circuits(
        self,
        ledger: Ledger,
        venue: FixedRateVenue,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
    ) -> None:
        spy_venue = MagicMock(wraps=venue)
        spy_flash = MagicMock(wraps=flash)
        executor = IncreaseLeverageExecutor(ledger, "executor:spy", spy_venue)
        funded_vault.set_deposits_enabled(False)
        balances = ledger.balances

        with pytest.raises(DepositsDisabled):
            executor.execute(quote, swap, funded_vault, spy_flash, up, caller=CALLER)

        spy_flash.begin_flash_loan.assert_not_called()
        spy_venue.swap_exact_input.assert_not_called()
        assert ledger.balances == balances
        assert ledger.records == ()

    def test_none_quote_declines(
        self,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        market: MarketState,
        swap: SwapInstruction,
    ) -> None:
        none = RebalanceQuoter(funded_vault.bounds).quote(funded_vault, market)
        with pytest.raises(NoRebalanceNeeded):
            increase_executor.execute(none, swap, funded_vault, flash, market, caller=CALLER)

    def test_decrease_quote_rejected(
        self,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        market: MarketState,
        shock: Callable[[MarketState, int], MarketState],
        swap: SwapInstruction,
    ) -> None:
        down = shock(market, -20)
        decrease_quote = RebalanceQuoter(funded_vault.bounds).quote(funded_vault, down)
        with pytest.raises(QuoteDirectionMismatch):
            increase_executor.execute(
                decrease_quote, swap, funded_vault, flash, down, caller=CALLER
            )

    def test_wrong_swap_pair(
        self,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        collateral: Token,
        debt: Token,
    ) -> None:
        with pytest.raises(ConfigurationError):
            increase_executor.execute(
                quote, SwapInstruction(collateral, debt), funded_vault, flash, up,
                caller=CALLER,
            )

    def test_swap_amount_must_match_quote(
        self,
        ledger: Ledger,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        collateral: Token,
        debt: Token,
    ) -> None:
        required = quote.required_debt_token_amount
        stale = SwapInstruction(debt, collateral, required - 1)
        with pytest.raises(ConfigurationError, match="does not match required"):
            increase_executor.execute(quote, stale, funded_vault, flash, up, caller=CALLER)
        assert ledger.records == ()

    def test_swap_amount_equal_to_quote_is_accepted(
        self,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        collateral: Token,
        debt: Token,
    ) -> None:
        pinned = SwapInstruction(debt, collateral, quote.required_debt_token_amount)
        result = increase_executor.execute(quote, pinned, funded_vault, flash, up, caller=CALLER)
        assert result.settlement.swap_spent == quote.required_debt_token_amount

    def test_paused(
        self,
        increase_executor: IncreaseLeverageExecutor,
        funded_vault: LeveragedVault,
        flash: FlashMintProvider,
        up: MarketState,
        quote: RebalanceQuote,
        swap: SwapInstruction,
    ) -> None:
        increase_executor.pause()
        with pytest.raises(ExecutorPaused):
            increase_executor.execute(quote, swap, funded_vault, flash, up, caller=CALLER)
