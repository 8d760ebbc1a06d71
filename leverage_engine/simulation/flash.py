"""Flash-mint liquidity provider backed by the ledger."""
from __future__ import annotations

import logging

from ..errors import FlashLoanError
from ..interfaces.flash_provider import CALLBACK_SUCCESS, FlashBorrower
from ..ledger import Ledger
from ..logic.leverage import flash_fee
from ..models import FlashLoanRequest, FlashLoanTicket, Token

logger = logging.getLogger(__name__)


class FlashMintProvider:
    """Mints the borrowed token on begin and burns the principal on completion.

    Fees are kept on the provider's own account. Open tickets are journaled
    with the ledger, so a rolled-back operation leaves no loan open.
    """

    def __init__(
        self,
        ledger: Ledger,
        fee_bps: int = 0,
        *,
        name: str = "flash",
        max_loan: dict[str, int] | None = None,
    ) -> None:
        self.ledger = ledger
        self.fee_bps = fee_bps
        self.account = f"flash:{name}"
        self._max_loan = dict(max_loan or {})
        self._open: dict[int, FlashLoanTicket] = {}
        self._next_id = 1
        ledger.register(self)

    def snapshot(self) -> tuple[dict[int, FlashLoanTicket], int]:
        return dict(self._open), self._next_id

    def restore(self, state: tuple[dict[int, FlashLoanTicket], int]) -> None:
        self._open, self._next_id = dict(state[0]), state[1]

    @property
    def open_tickets(self) -> tuple[FlashLoanTicket, ...]:
        return tuple(self._open.values())

    def max_flash_loan(self, token: Token) -> int:
        return self._max_loan.get(token.symbol, 2**256 - 1)

    def flash_fee(self, token: Token, amount: int) -> int:
        return flash_fee(amount, self.fee_bps)

    # ------------------------------------------------------------------
    # Two-phase form
    # ------------------------------------------------------------------

    def begin_flash_loan(
        self, request: FlashLoanRequest, receiver: str
    ) -> FlashLoanTicket:
        if request.amount <= 0:
            raise FlashLoanError(f"Flash loan amount must be positive, got {request.amount}")
        limit = self.max_flash_loan(request.token)
        if request.amount > limit:
            raise FlashLoanError(
                f"Flash loan of {request.amount} {request.token.symbol} exceeds max {limit}"
            )
        fee = self.flash_fee(request.token, request.amount)
        ticket = FlashLoanTicket(
            ticket_id=self._next_id,
            token=request.token,
            amount=request.amount,
            fee=fee,
            receiver=receiver,
        )
        self._next_id += 1
        self._open[ticket.ticket_id] = ticket
        self.ledger.mint(receiver, request.token, request.amount)
        logger.debug(
            "Flash loan #%d: %d %s to %s (fee %d)",
            ticket.ticket_id, ticket.amount, ticket.token.symbol, receiver, fee,
        )
        return ticket

    def complete_flash_loan(self, ticket: FlashLoanTicket) -> None:
        if self._open.get(ticket.ticket_id) != ticket:
            raise FlashLoanError(f"Flash loan #{ticket.ticket_id} is not open")
        balance = self.ledger.balance_of(ticket.receiver, ticket.token)
        if balance < ticket.repayment_due:
            raise FlashLoanError(
                f"Flash loan #{ticket.ticket_id} not repaid: "
                f"balance {balance}, due {ticket.repayment_due}"
            )
        self.ledger.burn(ticket.receiver, ticket.token, ticket.amount)
        self.ledger.transfer(ticket.token, ticket.receiver, self.account, ticket.fee)
        del self._open[ticket.ticket_id]
        logger.debug("Flash loan #%d repaid", ticket.ticket_id)

    def assert_settled(self) -> None:
        if self._open:
            raise FlashLoanError(f"Open flash loans: {sorted(self._open)}")

    # ------------------------------------------------------------------
    # Callback form
    # ------------------------------------------------------------------

    def flash_loan(
        self, receiver: FlashBorrower, token: Token, amount: int, data: bytes
    ) -> bool:
        """Lend, invoke ``receiver.on_flash_loan`` and settle, all-or-nothing."""
        with self.ledger.atomic():
            ticket = self.begin_flash_loan(
                FlashLoanRequest(token, amount, self.flash_fee(token, amount)),
                receiver.account,
            )
            result = receiver.on_flash_loan(
                receiver.account, token, amount, ticket.fee, data
            )
            if result != CALLBACK_SUCCESS:
                raise FlashLoanError("Flash borrower callback failed")
            self.complete_flash_loan(ticket)
        return True
