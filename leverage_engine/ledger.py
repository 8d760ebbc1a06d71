"""Token ledger with an all-or-nothing transactional boundary."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from .errors import TransferFailed
from .models import Token

logger = logging.getLogger(__name__)


class Journaled(Protocol):
    """State owned outside the ledger that must roll back with it."""

    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


def _symbol(token: Token | str) -> str:
    return token.symbol if isinstance(token, Token) else token


class Ledger:
    """Balances keyed by (account, symbol) plus an ordered record log."""

    def __init__(self) -> None:
        self._balances: dict[tuple[str, str], int] = {}
        self._records: list[Any] = []
        self._participants: list[Journaled] = []
        self._depth = 0

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def balance_of(self, account: str, token: Token | str) -> int:
        return self._balances.get((account, _symbol(token)), 0)

    @property
    def balances(self) -> dict[tuple[str, str], int]:
        """Copy of every non-zero balance."""
        return {key: value for key, value in self._balances.items() if value}

    def mint(self, account: str, token: Token | str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Cannot mint negative amount {amount}")
        key = (account, _symbol(token))
        self._balances[key] = self._balances.get(key, 0) + amount

    def burn(self, account: str, token: Token | str, amount: int) -> None:
        symbol = _symbol(token)
        balance = self.balance_of(account, symbol)
        if amount < 0 or amount > balance:
            raise TransferFailed(symbol, account, balance, amount)
        self._balances[(account, symbol)] = balance - amount

    def transfer(
        self, token: Token | str, sender: str, recipient: str, amount: int
    ) -> None:
        symbol = _symbol(token)
        balance = self.balance_of(sender, symbol)
        if amount < 0 or amount > balance:
            raise TransferFailed(symbol, sender, balance, amount)
        if amount == 0:
            return
        self._balances[(sender, symbol)] = balance - amount
        key = (recipient, symbol)
        self._balances[key] = self._balances.get(key, 0) + amount
        logger.debug("transfer %d %s %s -> %s", amount, symbol, sender, recipient)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def emit(self, record: Any) -> None:
        self._records.append(record)

    @property
    def records(self) -> tuple[Any, ...]:
        return tuple(self._records)

    def records_of(self, record_type: type) -> list[Any]:
        return [r for r in self._records if isinstance(r, record_type)]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def register(self, participant: Journaled) -> None:
        """Include *participant*'s state in every atomic snapshot."""
        self._participants.append(participant)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self) -> Iterator[Ledger]:
        """Run the body all-or-nothing.

        On any exception every balance, the record log and each registered
        participant are restored to their state at entry, then the
        exception propagates unchanged.
        """
        balances = dict(self._balances)
        record_count = len(self._records)
        states = [(p, p.snapshot()) for p in self._participants]
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._balances = balances
            del self._records[record_count:]
            for participant, state in states:
                participant.restore(state)
            logger.debug("Rolled back transaction at depth %d", self._depth)
            raise
        finally:
            self._depth -= 1
