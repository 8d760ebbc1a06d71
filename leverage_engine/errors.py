"""Exception taxonomy for the leverage engine.

Four families, each with a different meaning for the caller:

* ``ConfigurationError`` — fatal, reject at construction/quote time.
* ``LogicalDecline`` — nothing to do; stop, do not retry.
* ``ExecutionFailure`` — a precondition failed mid-operation; the whole atomic
  operation is rolled back.
* ``CollaboratorError`` — an external leg (flash provider, swap venue, pool,
  token transfer) failed; surfaced as-is so the failing leg is visible.
"""
from __future__ import annotations


class LeverageEngineError(Exception):
    """Base class for all engine errors."""


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(LeverageEngineError):
    """Invalid static configuration or arguments."""


class InvalidBoundsConfiguration(ConfigurationError, ValueError):
    """Leverage bounds do not satisfy ``lower < target < upper``."""


class DivisionByZero(ConfigurationError, ZeroDivisionError):
    """Leverage is undefined because collateral equals debt."""


class QuoteDirectionMismatch(ConfigurationError):
    """An executor was handed a quote for the opposite direction."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"Expected a {expected} quote, got {actual}")
        self.expected = expected
        self.actual = actual


# ---------------------------------------------------------------------------
# Logical declines
# ---------------------------------------------------------------------------


class LogicalDecline(LeverageEngineError):
    """The operation is not applicable right now."""


class NoRebalanceNeeded(LogicalDecline):
    """Leverage already inside the configured corridor."""

    def __init__(self, leverage_bps: int) -> None:
        super().__init__(f"No rebalance needed at leverage {leverage_bps} bps")
        self.leverage_bps = leverage_bps


class DepositsDisabled(LogicalDecline):
    """The pool reports ``max_deposit == 0``."""


# ---------------------------------------------------------------------------
# Execution failures
# ---------------------------------------------------------------------------


class ExecutionFailure(LeverageEngineError):
    """Aborts the atomic operation; every state change is rolled back."""


class SlippageExceeded(ExecutionFailure):
    """A swap leg spent more or received less than its guard allows."""

    def __init__(self, message: str, actual: int, limit: int) -> None:
        super().__init__(f"{message} (actual={actual}, limit={limit})")
        self.actual = actual
        self.limit = limit


class InsufficientRepayment(ExecutionFailure):
    """Not enough balance to repay a flash loan (principal + fee)."""

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"Flash loan repayment short: available={available}, required={required}"
        )
        self.available = available
        self.required = required


class InsufficientOutput(ExecutionFailure):
    """The caller's entitled output is below their minimum."""

    def __init__(self, output: int, minimum: int) -> None:
        super().__init__(f"Output {output} below minimum {minimum}")
        self.output = output
        self.minimum = minimum


class StalePrice(ExecutionFailure):
    """Oracle price missing, non-positive or not alive."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Stale or missing price for {symbol}")
        self.symbol = symbol


class InsolventPosition(ExecutionFailure):
    """Debt value exceeds collateral value."""


class LeverageOutOfBounds(ExecutionFailure):
    """A vault operation would leave leverage outside the allowed range."""

    def __init__(self, leverage_bps: int, limit_bps: int, side: str) -> None:
        super().__init__(
            f"Resulting leverage {leverage_bps} bps crosses {side} limit {limit_bps} bps"
        )
        self.leverage_bps = leverage_bps
        self.limit_bps = limit_bps
        self.side = side


class SettlementIncomplete(ExecutionFailure):
    """The executor would retain a token balance after completion."""

    def __init__(self, balances: dict[str, int]) -> None:
        super().__init__(f"Executor retains balances: {balances}")
        self.balances = balances


class ExecutorPaused(ExecutionFailure):
    """The executor has been paused by its operator."""


# ---------------------------------------------------------------------------
# External collaborator failures
# ---------------------------------------------------------------------------


class CollaboratorError(LeverageEngineError):
    """An external collaborator rejected the call."""


class FlashLoanError(CollaboratorError):
    """Flash liquidity provider failure."""


class SwapVenueError(CollaboratorError):
    """Swap venue failure."""


class PoolAdapterError(CollaboratorError):
    """Lending pool / vault failure."""


class TransferFailed(CollaboratorError):
    """A token transfer could not be performed."""

    def __init__(self, symbol: str, account: str, balance: int, amount: int) -> None:
        super().__init__(
            f"Transfer of {amount} {symbol} from {account} failed (balance {balance})"
        )
        self.symbol = symbol
        self.account = account
        self.balance = balance
        self.amount = amount
