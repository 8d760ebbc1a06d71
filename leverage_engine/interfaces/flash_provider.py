"""Flash liquidity protocols — two-phase loan plus the callback form."""
from typing import Protocol

from ..models import FlashLoanRequest, FlashLoanTicket, Token

CALLBACK_SUCCESS = b"FlashBorrower.onFlashLoan"


class FlashBorrower(Protocol):
    """Receiver of a callback-style flash loan."""

    @property
    def account(self) -> str: ...

    def on_flash_loan(
        self, initiator: str, token: Token, amount: int, fee: int, data: bytes
    ) -> bytes: ...


class FlashLiquidityProvider(Protocol):
    """Lends a token for the duration of one atomic operation."""

    def max_flash_loan(self, token: Token) -> int: ...

    def flash_fee(self, token: Token, amount: int) -> int: ...

    def begin_flash_loan(
        self, request: FlashLoanRequest, receiver: str
    ) -> FlashLoanTicket: ...

    def complete_flash_loan(self, ticket: FlashLoanTicket) -> None: ...

    def flash_loan(
        self, receiver: FlashBorrower, token: Token, amount: int, data: bytes
    ) -> bool: ...

    def assert_settled(self) -> None: ...
