"""Rebalance quoting — direction and amount needed to return to target leverage."""
from __future__ import annotations

import logging

from ..errors import NoRebalanceNeeded, QuoteDirectionMismatch
from ..interfaces.pool_adapter import PoolAdapter
from ..logic import leverage
from ..market import MarketState
from ..models import Direction, LeverageBounds, Position, RebalanceQuote, Token

logger = logging.getLogger(__name__)


class RebalanceQuoter:
    """Computes ``RebalanceQuote``s for one set of leverage bounds.

    Bounds are validated at construction so a misconfigured vault fails
    before any quote is produced.
    """

    def __init__(self, bounds: LeverageBounds) -> None:
        self._bounds = leverage.validate_bounds(bounds)

    @property
    def bounds(self) -> LeverageBounds:
        return self._bounds

    def position_of(self, pool: PoolAdapter, market: MarketState) -> Position:
        collateral_base, debt_base = pool.get_total_collateral_and_debt(market)
        return Position(collateral_base, debt_base)

    def quote(self, pool: PoolAdapter, market: MarketState) -> RebalanceQuote:
        """Quote against live pool state and *market* prices."""
        return self.quote_position(
            self.position_of(pool, market),
            pool.collateral_token,
            pool.debt_token,
            market,
            insolvency_limit_bps=leverage.insolvency_limit_bps(
                pool.liquidation_threshold_bps()
            ),
            exchange_threshold=pool.exchange_threshold(),
        )

    def quote_position(
        self,
        position: Position,
        collateral_token: Token,
        debt_token: Token,
        market: MarketState,
        *,
        insolvency_limit_bps: int | None = None,
        exchange_threshold: int = 0,
    ) -> RebalanceQuote:
        """Quote a position snapshot.

        Decrease quotes aim one bps above target: integer rounding of the
        token conversions may only move the result down from there.
        """
        bounds = self._bounds
        target = bounds.target_bps
        market.require_price(collateral_token)
        market.require_price(debt_token)
        if position.is_empty:
            return RebalanceQuote.none(0, target)

        current = position.leverage_bps
        if leverage.is_within_bounds(current, bounds):
            return RebalanceQuote.none(current, target)

        collateral_base = position.collateral_value_base
        debt_base = position.debt_value_base
        subsidy = leverage.subsidy_bps(current, bounds, insolvency_limit_bps)

        if current > bounds.upper_bound_bps:
            direction = Direction.DECREASE
            aim = min(target + 1, bounds.upper_bound_bps)
            repay_base = leverage.debt_repay_base_to_reach_target(
                aim, collateral_base, debt_base, subsidy
            )
            debt_amount = market.from_base(debt_token, repay_base)
            withdraw_base = leverage.collateral_withdraw_base_for_repay(
                market.to_base(debt_token, debt_amount), subsidy
            )
            collateral_amount = market.from_base(collateral_token, withdraw_base)
        else:
            direction = Direction.INCREASE
            deposit_base = leverage.collateral_deposit_base_to_reach_target(
                target, collateral_base, debt_base, subsidy
            )
            collateral_amount = market.from_base(collateral_token, deposit_base)
            debt_amount = market.from_base(
                debt_token, market.to_base(collateral_token, collateral_amount)
            )

        if debt_amount <= 0 or debt_amount < exchange_threshold:
            logger.debug(
                "Quote amount %d below exchange threshold %d", debt_amount, exchange_threshold
            )
            return RebalanceQuote.none(current, target)

        quote = RebalanceQuote(
            direction=direction,
            required_debt_token_amount=debt_amount,
            collateral_token_amount=collateral_amount,
            estimated_subsidy_bps=subsidy,
            current_leverage_bps=current,
            target_leverage_bps=target,
        )
        logger.info(
            "Quote %s: leverage %d bps -> %d bps, %d %s, subsidy %d bps",
            direction.name, current, target, debt_amount, debt_token.symbol, subsidy,
        )
        return quote

    def require_rebalance(
        self, pool: PoolAdapter, market: MarketState, expected: Direction
    ) -> RebalanceQuote:
        """Return a quote in *expected* direction or raise a decline."""
        quote = self.quote(pool, market)
        check_direction(quote, expected)
        return quote


def check_direction(quote: RebalanceQuote, expected: Direction) -> None:
    if quote.direction == Direction.NONE:
        raise NoRebalanceNeeded(quote.current_leverage_bps)
    if quote.direction != expected:
        raise QuoteDirectionMismatch(expected.name, quote.direction.name)
