"""Leveraged vault over a ``LendingPool`` — implements ``PoolAdapter``."""
from __future__ import annotations

import logging

from ..errors import (
    DepositsDisabled,
    InsufficientOutput,
    LeverageOutOfBounds,
    PoolAdapterError,
)
from ..ledger import Ledger
from ..logic import leverage
from ..market import MarketState
from ..models import ONE_HUNDRED_PERCENT_BPS, LeverageBounds, Token
from .lending_pool import LendingPool

logger = logging.getLogger(__name__)

UNLIMITED = 2**256 - 1


class LeveragedVault:
    """Share-based vault holding one collateral/debt position in the pool.

    Deposits are levered at the vault's current leverage (target when
    empty); depositors receive the borrowed debt tokens plus shares, and
    repay their share of the debt on redeem.
    """

    def __init__(
        self,
        ledger: Ledger,
        pool: LendingPool,
        name: str,
        collateral_token: Token,
        debt_token: Token,
        bounds: LeverageBounds,
        *,
        liquidation_threshold_bps: int = 0,
        exchange_threshold: int = 0,
        deposit_cap: int | None = None,
    ) -> None:
        self.ledger = ledger
        self.pool = pool
        self._name = name
        self._collateral = collateral_token
        self._debt = debt_token
        self._bounds = leverage.validate_bounds(bounds)
        self._liquidation_threshold_bps = liquidation_threshold_bps
        self._exchange_threshold = exchange_threshold
        self.deposit_cap = deposit_cap
        self.deposits_enabled = True
        self.share_token = Token(symbol=name, decimals=collateral_token.decimals)
        self._total_shares = 0
        ledger.register(self)

    def snapshot(self) -> int:
        return self._total_shares

    def restore(self, state: int) -> None:
        self._total_shares = state

    # ------------------------------------------------------------------
    # Static properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def account(self) -> str:
        return f"vault:{self._name}"

    @property
    def collateral_token(self) -> Token:
        return self._collateral

    @property
    def debt_token(self) -> Token:
        return self._debt

    @property
    def bounds(self) -> LeverageBounds:
        return self._bounds

    @property
    def total_shares(self) -> int:
        return self._total_shares

    def exchange_threshold(self) -> int:
        return self._exchange_threshold

    def liquidation_threshold_bps(self) -> int:
        return self._liquidation_threshold_bps

    def set_deposits_enabled(self, enabled: bool) -> None:
        self.deposits_enabled = enabled
        logger.info("Deposits %s on %s", "enabled" if enabled else "disabled", self._name)

    # ------------------------------------------------------------------
    # Position views
    # ------------------------------------------------------------------

    def collateral_and_debt_amounts(self) -> tuple[int, int]:
        return (
            self.pool.supplied(self.account, self._collateral),
            self.pool.debt_of(self.account, self._debt),
        )

    def get_total_collateral_and_debt(self, market: MarketState) -> tuple[int, int]:
        collateral, debt = self.collateral_and_debt_amounts()
        collateral_base = market.to_base(self._collateral, collateral) if collateral else 0
        debt_base = market.to_base(self._debt, debt) if debt else 0
        return collateral_base, debt_base

    def get_current_leverage_bps(self, market: MarketState) -> int:
        """Current leverage; 0 for an empty vault."""
        collateral_base, debt_base = self.get_total_collateral_and_debt(market)
        if collateral_base == 0:
            return 0
        return leverage.current_leverage_bps(collateral_base, debt_base)

    def total_assets(self, market: MarketState) -> int:
        """Net equity expressed in collateral tokens."""
        collateral_base, debt_base = self.get_total_collateral_and_debt(market)
        if collateral_base <= debt_base:
            return 0
        return market.from_base(self._collateral, collateral_base - debt_base)

    # ------------------------------------------------------------------
    # ERC-4626 style deposit / redeem
    # ------------------------------------------------------------------

    def max_deposit(self, account: str) -> int:
        """0 when deposits are disabled, otherwise the remaining supply headroom."""
        if not self.deposits_enabled or not self.pool.deposits_enabled:
            return 0
        limits = [UNLIMITED]
        pool_remaining = self.pool.remaining_supply_cap(self._collateral)
        if pool_remaining is not None:
            limits.append(pool_remaining)
        if self.deposit_cap is not None:
            collateral, _ = self.collateral_and_debt_amounts()
            limits.append(max(0, self.deposit_cap - collateral))
        return min(limits)

    def _deposit_leverage_bps(self, market: MarketState) -> int:
        current = self.get_current_leverage_bps(market)
        if current == 0:
            return self._bounds.target_bps
        if not leverage.is_within_bounds(current, self._bounds):
            raise PoolAdapterError(
                f"Vault {self._name} leverage {current} bps is outside its bounds; "
                "rebalance before depositing"
            )
        return current

    def preview_deposit(self, assets: int, market: MarketState) -> int:
        equity = assets * ONE_HUNDRED_PERCENT_BPS // self._deposit_leverage_bps(market)
        total_assets = self.total_assets(market)
        if self._total_shares == 0 or total_assets == 0:
            return equity
        return equity * self._total_shares // total_assets

    def preview_mint(self, shares: int, market: MarketState) -> int:
        total_assets = self.total_assets(market)
        if self._total_shares == 0 or total_assets == 0:
            equity = shares
        else:
            equity = -(-shares * total_assets // self._total_shares)
        target = self._deposit_leverage_bps(market)
        return -(-equity * target // ONE_HUNDRED_PERCENT_BPS)

    def deposit(
        self, caller: str, assets: int, receiver: str, market: MarketState
    ) -> int:
        """Supply *assets*, borrow at the vault's leverage, mint shares.

        The borrowed debt tokens are sent to *receiver* together with the
        shares. Returns the number of shares minted.
        """
        if assets <= 0:
            raise PoolAdapterError("Deposit amount must be positive")
        limit = self.max_deposit(caller)
        if limit == 0:
            raise DepositsDisabled(f"Deposits disabled on {self._name}")
        if assets > limit:
            raise PoolAdapterError(f"Deposit of {assets} exceeds max deposit {limit}")

        with self.ledger.atomic():
            shares = self.preview_deposit(assets, market)
            if shares == 0:
                raise PoolAdapterError("Deposit too small to mint shares")
            lev = self._deposit_leverage_bps(market)
            collateral_base = market.to_base(self._collateral, assets)
            debt_base = collateral_base * (lev - ONE_HUNDRED_PERCENT_BPS) // lev
            debt_out = market.from_base(self._debt, debt_base)

            self.ledger.transfer(self._collateral, caller, self.account, assets)
            self.pool.supply(self._collateral, assets, self.account, self.account)
            self.pool.borrow(self._debt, debt_out, self.account, receiver)
            self.ledger.mint(receiver, self.share_token, shares)
            self._total_shares += shares

        logger.info(
            "Deposit %d %s into %s: %d shares, %d %s borrowed",
            assets, self._collateral.symbol, self._name, shares,
            debt_out, self._debt.symbol,
        )
        return shares

    def redeem(
        self, caller: str, shares: int, receiver: str, market: MarketState
    ) -> int:
        """Burn *shares*; *caller* repays their share of the debt.

        Returns the collateral sent to *receiver*.
        """
        if shares <= 0 or shares > self.ledger.balance_of(caller, self.share_token):
            raise PoolAdapterError(f"Cannot redeem {shares} shares for {caller}")

        with self.ledger.atomic():
            collateral, debt = self.collateral_and_debt_amounts()
            collateral_out = collateral * shares // self._total_shares
            debt_in = -(-debt * shares // self._total_shares)

            self.ledger.transfer(self._debt, caller, self.account, debt_in)
            self.pool.repay(self._debt, debt_in, self.account, self.account)
            self.pool.withdraw(self._collateral, collateral_out, self.account, receiver)
            self.ledger.burn(caller, self.share_token, shares)
            self._total_shares -= shares

        logger.info(
            "Redeem %d shares from %s: %d %s out, %d %s repaid",
            shares, self._name, collateral_out, self._collateral.symbol,
            debt_in, self._debt.symbol,
        )
        return collateral_out

    # ------------------------------------------------------------------
    # Rebalancing
    # ------------------------------------------------------------------

    def _rebalance_state(self, market: MarketState) -> int:
        market.require_price(self._collateral)
        market.require_price(self._debt)
        current = self.get_current_leverage_bps(market)
        if current == 0:
            raise PoolAdapterError(f"Vault {self._name} has no position to rebalance")
        return current

    def increase_leverage(
        self,
        caller: str,
        collateral_amount: int,
        min_output_debt: int,
        market: MarketState,
    ) -> int:
        """Take *collateral_amount* from *caller*, pay out debt plus subsidy.

        Returns the debt tokens sent to *caller*.
        """
        current = self._rebalance_state(market)
        if current >= self._bounds.target_bps:
            raise PoolAdapterError(
                f"Leverage {current} bps already at or above target "
                f"{self._bounds.target_bps} bps"
            )
        subsidy = leverage.subsidy_bps(current, self._bounds)
        collateral_base = market.to_base(self._collateral, collateral_amount)
        debt_base = leverage.debt_borrow_base_for_deposit(collateral_base, subsidy)
        debt_out = market.from_base(self._debt, debt_base)
        if debt_out < min_output_debt:
            raise InsufficientOutput(debt_out, min_output_debt)

        with self.ledger.atomic():
            self.ledger.transfer(self._collateral, caller, self.account, collateral_amount)
            self.pool.supply(self._collateral, collateral_amount, self.account, self.account)
            self.pool.borrow(self._debt, debt_out, self.account, caller)

            resulting = self.get_current_leverage_bps(market)
            if resulting > self._bounds.upper_bound_bps:
                raise LeverageOutOfBounds(resulting, self._bounds.upper_bound_bps, "upper")
        logger.info(
            "Increase leverage on %s: %d -> %d bps (subsidy %d bps)",
            self._name, current, resulting, subsidy,
        )
        return debt_out

    def decrease_leverage(
        self,
        caller: str,
        debt_amount: int,
        min_output_collateral: int,
        market: MarketState,
    ) -> int:
        """Take *debt_amount* from *caller* to repay debt, pay out collateral plus subsidy.

        Returns the collateral tokens sent to *caller*.
        """
        current = self._rebalance_state(market)
        if current <= self._bounds.target_bps:
            raise PoolAdapterError(
                f"Leverage {current} bps already at or below target "
                f"{self._bounds.target_bps} bps"
            )
        _, outstanding = self.collateral_and_debt_amounts()
        if debt_amount > outstanding:
            raise PoolAdapterError(
                f"Repay of {debt_amount} exceeds outstanding debt {outstanding}"
            )
        subsidy = leverage.subsidy_bps(
            current,
            self._bounds,
            leverage.insolvency_limit_bps(self._liquidation_threshold_bps),
        )
        debt_base = market.to_base(self._debt, debt_amount)
        collateral_base = leverage.collateral_withdraw_base_for_repay(debt_base, subsidy)
        collateral_out = market.from_base(self._collateral, collateral_base)
        if collateral_out < min_output_collateral:
            raise InsufficientOutput(collateral_out, min_output_collateral)

        with self.ledger.atomic():
            self.ledger.transfer(self._debt, caller, self.account, debt_amount)
            self.pool.repay(self._debt, debt_amount, self.account, self.account)
            self.pool.withdraw(self._collateral, collateral_out, self.account, caller)

            resulting = self.get_current_leverage_bps(market)
            if resulting < self._bounds.lower_bound_bps:
                raise LeverageOutOfBounds(resulting, self._bounds.lower_bound_bps, "lower")
        logger.info(
            "Decrease leverage on %s: %d -> %d bps (subsidy %d bps)",
            self._name, current, resulting, subsidy,
        )
        return collateral_out
