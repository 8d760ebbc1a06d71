"""In-memory lending pool — supply/withdraw/borrow/repay bookkeeping."""
from __future__ import annotations

import logging

from ..errors import PoolAdapterError
from ..ledger import Ledger
from ..models import Token

logger = logging.getLogger(__name__)

PoolState = tuple[dict[tuple[str, str], int], dict[tuple[str, str], int]]


class LendingPool:
    """Holds reserves on the ledger and tracks per-account supply and debt.

    Registered with the ledger so supply/debt positions roll back together
    with token balances.
    """

    def __init__(
        self,
        ledger: Ledger,
        name: str = "pool",
        *,
        supply_caps: dict[str, int] | None = None,
        deposits_enabled: bool = True,
    ) -> None:
        self.ledger = ledger
        self.name = name
        self.account = f"pool:{name}"
        self.deposits_enabled = deposits_enabled
        self._supply_caps: dict[str, int] = dict(supply_caps or {})
        self._supplied: dict[tuple[str, str], int] = {}
        self._debt: dict[tuple[str, str], int] = {}
        ledger.register(self)

    # ------------------------------------------------------------------
    # Journaled
    # ------------------------------------------------------------------

    def snapshot(self) -> PoolState:
        return dict(self._supplied), dict(self._debt)

    def restore(self, state: PoolState) -> None:
        self._supplied, self._debt = dict(state[0]), dict(state[1])

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def supplied(self, account: str, token: Token) -> int:
        return self._supplied.get((account, token.symbol), 0)

    def debt_of(self, account: str, token: Token) -> int:
        return self._debt.get((account, token.symbol), 0)

    def total_supplied(self, token: Token) -> int:
        return sum(v for (_, sym), v in self._supplied.items() if sym == token.symbol)

    def available_liquidity(self, token: Token) -> int:
        return self.ledger.balance_of(self.account, token)

    def remaining_supply_cap(self, token: Token) -> int | None:
        cap = self._supply_caps.get(token.symbol)
        if cap is None:
            return None
        return max(0, cap - self.total_supplied(token))

    def set_supply_cap(self, token: Token, cap: int | None) -> None:
        if cap is None:
            self._supply_caps.pop(token.symbol, None)
        else:
            self._supply_caps[token.symbol] = cap

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def supply(self, token: Token, amount: int, on_behalf_of: str, sender: str) -> None:
        if not self.deposits_enabled:
            raise PoolAdapterError(f"Supply disabled on pool {self.name}")
        remaining = self.remaining_supply_cap(token)
        if remaining is not None and amount > remaining:
            raise PoolAdapterError(
                f"Supply of {amount} {token.symbol} exceeds remaining cap {remaining}"
            )
        self.ledger.transfer(token, sender, self.account, amount)
        key = (on_behalf_of, token.symbol)
        self._supplied[key] = self._supplied.get(key, 0) + amount
        logger.debug("supply %d %s for %s", amount, token.symbol, on_behalf_of)

    def withdraw(self, token: Token, amount: int, owner: str, to: str) -> None:
        supplied = self.supplied(owner, token)
        if amount > supplied:
            raise PoolAdapterError(
                f"Withdraw of {amount} {token.symbol} exceeds supplied {supplied}"
            )
        self._supplied[(owner, token.symbol)] = supplied - amount
        self.ledger.transfer(token, self.account, to, amount)
        logger.debug("withdraw %d %s for %s", amount, token.symbol, owner)

    def borrow(self, token: Token, amount: int, on_behalf_of: str, to: str) -> None:
        available = self.available_liquidity(token)
        if amount > available:
            raise PoolAdapterError(
                f"Borrow of {amount} {token.symbol} exceeds liquidity {available}"
            )
        self.ledger.transfer(token, self.account, to, amount)
        key = (on_behalf_of, token.symbol)
        self._debt[key] = self._debt.get(key, 0) + amount
        logger.debug("borrow %d %s for %s", amount, token.symbol, on_behalf_of)

    def repay(self, token: Token, amount: int, on_behalf_of: str, sender: str) -> int:
        """Repay up to the outstanding debt; returns the amount actually repaid."""
        repaid = min(amount, self.debt_of(on_behalf_of, token))
        self.ledger.transfer(token, sender, self.account, repaid)
        self._debt[(on_behalf_of, token.symbol)] = (
            self.debt_of(on_behalf_of, token) - repaid
        )
        logger.debug("repay %d %s for %s", repaid, token.symbol, on_behalf_of)
        return repaid
