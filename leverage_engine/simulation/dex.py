"""Fixed-rate swap venue with configurable execution slippage."""
from __future__ import annotations

import logging

from ..errors import SlippageExceeded, SwapVenueError
from ..ledger import Ledger
from ..models import ONE_HUNDRED_PERCENT_BPS, Token

logger = logging.getLogger(__name__)


class FixedRateVenue:
    """Quotes from its own base-unit price table and settles from reserves.

    Every fill is worse than the price table by ``slippage_bps``.
    """

    def __init__(
        self,
        ledger: Ledger,
        prices: dict[str, int],
        *,
        slippage_bps: int = 0,
        name: str = "dex",
    ) -> None:
        if not 0 <= slippage_bps < ONE_HUNDRED_PERCENT_BPS:
            raise ValueError(f"slippage_bps must be in [0, 10000), got {slippage_bps}")
        self.ledger = ledger
        self.account = f"venue:{name}"
        self.slippage_bps = slippage_bps
        self._prices = dict(prices)

    def set_price(self, symbol: str, price: int) -> None:
        self._prices[symbol] = price

    def _price(self, token: Token) -> int:
        price = self._prices.get(token.symbol, 0)
        if price <= 0:
            raise SwapVenueError(f"No market for {token.symbol}")
        return price

    def quote_exact_input(self, token_in: Token, token_out: Token, amount_in: int) -> int:
        value = amount_in * self._price(token_in) * 10**token_out.decimals
        out = value // (self._price(token_out) * 10**token_in.decimals)
        return out * (ONE_HUNDRED_PERCENT_BPS - self.slippage_bps) // ONE_HUNDRED_PERCENT_BPS

    def quote_exact_output(self, token_in: Token, token_out: Token, amount_out: int) -> int:
        value = amount_out * self._price(token_out) * 10**token_in.decimals
        denominator = (
            self._price(token_in)
            * 10**token_out.decimals
            * (ONE_HUNDRED_PERCENT_BPS - self.slippage_bps)
        )
        return -(-value * ONE_HUNDRED_PERCENT_BPS // denominator)

    def _settle(
        self, account: str, token_in: Token, token_out: Token, amount_in: int, amount_out: int
    ) -> None:
        reserve = self.ledger.balance_of(self.account, token_out)
        if amount_out > reserve:
            raise SwapVenueError(
                f"Insufficient {token_out.symbol} reserve: {reserve} < {amount_out}"
            )
        self.ledger.transfer(token_in, account, self.account, amount_in)
        self.ledger.transfer(token_out, self.account, account, amount_out)
        logger.debug(
            "swap %d %s -> %d %s for %s",
            amount_in, token_in.symbol, amount_out, token_out.symbol, account,
        )

    def swap_exact_input(
        self,
        account: str,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        min_out: int,
        payload: bytes,
    ) -> int:
        amount_out = self.quote_exact_input(token_in, token_out, amount_in)
        if amount_out < min_out:
            raise SlippageExceeded("Output below minimum", amount_out, min_out)
        self._settle(account, token_in, token_out, amount_in, amount_out)
        return amount_out

    def swap_exact_output(
        self,
        account: str,
        token_in: Token,
        token_out: Token,
        max_in: int,
        exact_out: int,
        payload: bytes,
    ) -> int:
        amount_in = self.quote_exact_output(token_in, token_out, exact_out)
        if amount_in > max_in:
            raise SlippageExceeded("Input above maximum", amount_in, max_in)
        self._settle(account, token_in, token_out, amount_in, exact_out)
        return amount_in
