"""Token-kind aware swap routing."""
from __future__ import annotations

import logging

from ..interfaces.swap_venue import SwapVenue
from ..models import Token, TokenKind

logger = logging.getLogger(__name__)


def probe_token_kind(token: object) -> TokenKind:
    """Classify *token* by capability: principal tokens expose expiry and underlying."""
    if getattr(token, "expiry", None) is not None and getattr(token, "underlying", None) is not None:
        return TokenKind.PRINCIPAL_TOKEN
    return TokenKind.PLAIN


class SwapRouter:
    """``SwapVenue`` that dispatches each swap to a venue chosen by token kind.

    A swap touching a principal token goes to that kind's venue; anything
    else goes to *default_venue*.
    """

    def __init__(
        self,
        default_venue: SwapVenue,
        venues_by_kind: dict[TokenKind, SwapVenue] | None = None,
    ) -> None:
        self._venues: dict[TokenKind, SwapVenue] = {TokenKind.PLAIN: default_venue}
        self._venues.update(venues_by_kind or {})
        self._kinds: dict[str, TokenKind] = {}

    def kind_of(self, token: Token) -> TokenKind:
        kind = self._kinds.get(token.symbol)
        if kind is None:
            kind = self._kinds[token.symbol] = probe_token_kind(token)
            logger.debug("Resolved %s as %s", token.symbol, kind.value)
        return kind

    def venue_for(self, token_in: Token, token_out: Token) -> SwapVenue:
        kinds = {self.kind_of(token_in), self.kind_of(token_out)}
        kind = TokenKind.PRINCIPAL_TOKEN if TokenKind.PRINCIPAL_TOKEN in kinds else TokenKind.PLAIN
        return self._venues.get(kind, self._venues[TokenKind.PLAIN])

    def swap_exact_input(
        self,
        account: str,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        min_out: int,
        payload: bytes,
    ) -> int:
        venue = self.venue_for(token_in, token_out)
        return venue.swap_exact_input(account, token_in, token_out, amount_in, min_out, payload)

    def swap_exact_output(
        self,
        account: str,
        token_in: Token,
        token_out: Token,
        max_in: int,
        exact_out: int,
        payload: bytes,
    ) -> int:
        venue = self.venue_for(token_in, token_out)
        return venue.swap_exact_output(account, token_in, token_out, max_in, exact_out, payload)
