"""Swap venue protocol — exact-input and exact-output swaps."""
from typing import Protocol

from ..models import Token


class SwapVenue(Protocol):
    """Executes swaps on behalf of *account*.

    Return values are informational only; callers measure balance deltas.
    """

    def swap_exact_input(
        self,
        account: str,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        min_out: int,
        payload: bytes,
    ) -> int: ...

    def swap_exact_output(
        self,
        account: str,
        token_in: Token,
        token_out: Token,
        max_in: int,
        exact_out: int,
        payload: bytes,
    ) -> int: ...
