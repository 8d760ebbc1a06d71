"""Data models — frozen (immutable) except the per-invocation settlement ledger."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field

ONE_HUNDRED_PERCENT_BPS = 10_000
BASE_UNIT_DECIMALS = 8


class TokenKind(enum.Enum):
    PLAIN = "plain"
    PRINCIPAL_TOKEN = "principal_token"


class Direction(enum.IntEnum):
    DECREASE = -1
    NONE = 0
    INCREASE = 1


@dataclass(frozen=True)
class Token:
    """Fungible token; principal tokens carry their underlying and expiry."""

    symbol: str
    decimals: int
    underlying: Token | None = None
    expiry: int | None = None


@dataclass(frozen=True)
class OraclePrice:
    """Price in base units (``BASE_UNIT_DECIMALS`` decimals)."""

    price: int
    is_alive: bool = True
    publish_time: int = 0


@dataclass(frozen=True)
class Position:
    """Leveraged state of one vault, valued in base units.

    A pure projection of pool balances and oracle prices; never persisted.
    """

    collateral_value_base: int
    debt_value_base: int

    @property
    def is_empty(self) -> bool:
        return self.collateral_value_base == 0 and self.debt_value_base == 0

    @property
    def leverage_bps(self) -> int:
        from .logic.leverage import current_leverage_bps

        return current_leverage_bps(self.collateral_value_base, self.debt_value_base)


@dataclass(frozen=True)
class LeverageBounds:
    target_bps: int
    lower_bound_bps: int
    upper_bound_bps: int
    max_subsidy_bps: int
    subsidy_ceiling_bps: int | None = None


@dataclass(frozen=True)
class RebalanceQuote:
    """Output of the quoter; consume immediately, never cache across state changes.

    ``required_debt_token_amount`` is the debt repaid (decrease) or the debt
    swapped into collateral (increase). ``collateral_token_amount`` is the
    collateral withdrawn including subsidy (decrease) or deposited (increase).
    """

    direction: Direction
    required_debt_token_amount: int
    collateral_token_amount: int
    estimated_subsidy_bps: int
    current_leverage_bps: int
    target_leverage_bps: int

    @classmethod
    def none(cls, current_leverage_bps: int, target_leverage_bps: int) -> RebalanceQuote:
        return cls(
            direction=Direction.NONE,
            required_debt_token_amount=0,
            collateral_token_amount=0,
            estimated_subsidy_bps=0,
            current_leverage_bps=current_leverage_bps,
            target_leverage_bps=target_leverage_bps,
        )


@dataclass(frozen=True)
class SwapInstruction:
    """Caller-built swap leg. ``venue_payload`` is passed through uninterpreted.

    ``amount`` pins the exact input of an increase swap and must match the
    quote; 0 lets the executor size it. Decrease swaps are sized at run time
    from the flash repayment and require ``amount`` to be 0.
    """

    input_token: Token
    output_token: Token
    amount: int = 0
    min_output: int = 0
    max_input: int | None = None
    venue_payload: bytes = b""


@dataclass(frozen=True)
class FlashLoanRequest:
    token: Token
    amount: int
    fee: int = 0


@dataclass(frozen=True)
class FlashLoanTicket:
    """Open flash loan; must be completed in the same atomic operation."""

    ticket_id: int
    token: Token
    amount: int
    fee: int
    receiver: str

    @property
    def repayment_due(self) -> int:
        return self.amount + self.fee


# ---------------------------------------------------------------------------
# Records emitted to the ledger log
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallerPayout:
    token: str
    amount: int
    recipient: str


@dataclass(frozen=True)
class LeftoverTransferred:
    token: str
    amount: int
    recipient: str


@dataclass(frozen=True)
class FlashLoanSettled:
    token: str
    amount: int
    fee: int


@dataclass(frozen=True)
class RebalanceExecuted:
    direction: Direction
    amount: int
    resulting_leverage_bps: int


# ---------------------------------------------------------------------------
# Per-invocation accounting
# ---------------------------------------------------------------------------


@dataclass
class SettlementLedger:
    """Funds moved during one executor invocation, in token units."""

    pulled_from_caller: int = 0
    flash_borrowed: int = 0
    flash_fee: int = 0
    swap_spent: int = 0
    swap_received: int = 0
    received_from_vault: int = 0
    paid_to_vault: int = 0
    owed_to_caller: dict[str, int] = field(default_factory=dict)
    residual: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RebalanceResult:
    direction: Direction
    debt_amount: int
    flash_borrowed: int
    flash_fee: int
    collateral_to_caller: int
    debt_to_caller: int
    leftover_swept: int
    resulting_leverage_bps: int
    settlement: SettlementLedger
