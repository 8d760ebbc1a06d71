"""Pure leverage math — no I/O, no state.

Notation used throughout (all integers):

* ``C`` / ``D`` — collateral / debt value in base units
* ``T`` — target leverage in bps, ``S`` — ``ONE_HUNDRED_PERCENT_BPS``
* ``k`` — subsidy in bps paid to the rebalancer

Leverage is ``C * S / (C - D)``. The closed forms below hold the
collateral/debt price ratio fixed and solve that definition for the unknown
collateral or debt delta.
"""
from __future__ import annotations

from ..errors import DivisionByZero, InsolventPosition, InvalidBoundsConfiguration
from ..models import ONE_HUNDRED_PERCENT_BPS, LeverageBounds

S = ONE_HUNDRED_PERCENT_BPS


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


# ---------------------------------------------------------------------------
# Leverage and bounds
# ---------------------------------------------------------------------------


def current_leverage_bps(collateral_base: int, debt_base: int) -> int:
    """Leverage in bps, rounded down.

    Raises:
        DivisionByZero: collateral equals debt (no equity left).
        InsolventPosition: debt exceeds collateral.
    """
    if collateral_base < 0 or debt_base < 0:
        raise ValueError("Collateral and debt values must be non-negative")
    if debt_base > collateral_base:
        raise InsolventPosition(
            f"Debt {debt_base} exceeds collateral {collateral_base}"
        )
    if collateral_base == debt_base:
        raise DivisionByZero(
            f"Leverage undefined: collateral equals debt ({collateral_base})"
        )
    return collateral_base * S // (collateral_base - debt_base)


def is_within_bounds(leverage_bps: int, bounds: LeverageBounds) -> bool:
    return bounds.lower_bound_bps <= leverage_bps <= bounds.upper_bound_bps


def validate_bounds(bounds: LeverageBounds) -> LeverageBounds:
    """Return *bounds* unchanged or raise ``InvalidBoundsConfiguration``."""
    if not (
        S <= bounds.lower_bound_bps < bounds.target_bps < bounds.upper_bound_bps
    ):
        raise InvalidBoundsConfiguration(
            "Leverage bounds must satisfy 10000 <= lower < target < upper, got "
            f"lower={bounds.lower_bound_bps} target={bounds.target_bps} "
            f"upper={bounds.upper_bound_bps}"
        )
    if not 0 <= bounds.max_subsidy_bps < S:
        raise InvalidBoundsConfiguration(
            f"max_subsidy_bps must be in [0, {S}), got {bounds.max_subsidy_bps}"
        )
    if (
        bounds.subsidy_ceiling_bps is not None
        and bounds.subsidy_ceiling_bps <= bounds.upper_bound_bps
    ):
        raise InvalidBoundsConfiguration(
            f"subsidy_ceiling_bps ({bounds.subsidy_ceiling_bps}) must exceed "
            f"upper_bound_bps ({bounds.upper_bound_bps})"
        )
    # Keeps the decrease closed form's denominator positive.
    if S * S <= bounds.max_subsidy_bps * (bounds.target_bps - S):
        raise InvalidBoundsConfiguration(
            f"max_subsidy_bps {bounds.max_subsidy_bps} too large for target "
            f"{bounds.target_bps}"
        )
    return bounds


# ---------------------------------------------------------------------------
# Subsidy
# ---------------------------------------------------------------------------


def insolvency_limit_bps(liquidation_threshold_bps: int) -> int | None:
    """Leverage at which a position with this liquidation threshold is liquidatable.

    ``None`` when the threshold allows unbounded leverage.
    """
    if liquidation_threshold_bps <= 0:
        return S
    if liquidation_threshold_bps >= S:
        return None
    return S * S // (S - liquidation_threshold_bps)


def subsidy_bps(
    leverage_bps: int,
    bounds: LeverageBounds,
    insolvency_limit: int | None = None,
) -> int:
    """Rebalancer incentive, linear in the distance outside the corridor.

    Zero at the crossed boundary and ``max_subsidy_bps`` at the limit. Above the
    upper bound the limit is the nearer of *insolvency_limit* and the
    configured ceiling (one corridor half-width past the upper bound when
    neither is known); below the lower bound it is 1x leverage.
    """
    max_subsidy = bounds.max_subsidy_bps
    if max_subsidy == 0 or is_within_bounds(leverage_bps, bounds):
        return 0

    if leverage_bps > bounds.upper_bound_bps:
        limits = [
            x for x in (insolvency_limit, bounds.subsidy_ceiling_bps) if x is not None
        ]
        if limits:
            limit = min(limits)
        else:
            limit = 2 * bounds.upper_bound_bps - bounds.target_bps
        if limit <= bounds.upper_bound_bps:
            return max_subsidy
        distance = leverage_bps - bounds.upper_bound_bps
        span = limit - bounds.upper_bound_bps
    else:
        if bounds.lower_bound_bps <= S:
            return max_subsidy
        distance = bounds.lower_bound_bps - leverage_bps
        span = bounds.lower_bound_bps - S

    return min(max_subsidy, max_subsidy * distance // span)


# ---------------------------------------------------------------------------
# Increase leverage: deposit x collateral, borrow y = x * (1 + k) debt
# ---------------------------------------------------------------------------


def collateral_deposit_base_to_reach_target(
    target_bps: int, collateral_base: int, debt_base: int, subsidy: int
) -> int:
    """x = (T(C - D) - C S) * S / (S S + T k), floored; 0 at or above target."""
    if collateral_base <= 0:
        raise ValueError("Total collateral is zero")
    if collateral_base < debt_base:
        raise InsolventPosition(
            f"Debt {debt_base} exceeds collateral {collateral_base}"
        )
    numerator = target_bps * (collateral_base - debt_base) - collateral_base * S
    if numerator <= 0:
        return 0
    return numerator * S // (S * S + target_bps * subsidy)


def debt_borrow_base_for_deposit(collateral_base: int, subsidy: int) -> int:
    """y = x * (S + k) / S, floored."""
    return collateral_base * (S + subsidy) // S


# ---------------------------------------------------------------------------
# Decrease leverage: repay y debt, withdraw x = y * (1 + k) collateral
# ---------------------------------------------------------------------------


def debt_repay_base_to_reach_target(
    target_bps: int, collateral_base: int, debt_base: int, subsidy: int
) -> int:
    """y = (C S - T(C - D)) * S / (S (S + k) - T k), floored; 0 at or below target."""
    if collateral_base <= 0:
        raise ValueError("Total collateral is zero")
    if collateral_base < debt_base:
        raise InsolventPosition(
            f"Debt {debt_base} exceeds collateral {collateral_base}"
        )
    numerator = collateral_base * S - target_bps * (collateral_base - debt_base)
    if numerator <= 0:
        return 0
    denominator = S * (S + subsidy) - target_bps * subsidy
    if denominator <= 0:
        raise InvalidBoundsConfiguration(
            f"Subsidy {subsidy} bps too large for target {target_bps} bps"
        )
    return numerator * S // denominator


def collateral_withdraw_base_for_repay(debt_base: int, subsidy: int) -> int:
    """x = y * (S + k) / S, rounded up so leverage never lands below target."""
    return _ceil_div(debt_base * (S + subsidy), S)


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------


def flash_fee(amount: int, fee_bps: int) -> int:
    """Provider fee on *amount*, rounded up."""
    return _ceil_div(amount * fee_bps, S)
