"""Pool adapter protocol — the leveraged vault's narrow mutation interface."""
from typing import Protocol

from ..market import MarketState
from ..models import LeverageBounds, Token


class PoolAdapter(Protocol):
    """Vault backed by a lending pool; all mutations go through these calls."""

    @property
    def name(self) -> str: ...

    @property
    def account(self) -> str: ...

    @property
    def collateral_token(self) -> Token: ...

    @property
    def debt_token(self) -> Token: ...

    @property
    def bounds(self) -> LeverageBounds: ...

    def exchange_threshold(self) -> int: ...

    def liquidation_threshold_bps(self) -> int: ...

    def max_deposit(self, account: str) -> int: ...

    def preview_deposit(self, assets: int, market: MarketState) -> int: ...

    def preview_mint(self, shares: int, market: MarketState) -> int: ...

    def deposit(
        self, caller: str, assets: int, receiver: str, market: MarketState
    ) -> int: ...

    def redeem(
        self, caller: str, shares: int, receiver: str, market: MarketState
    ) -> int: ...

    def increase_leverage(
        self,
        caller: str,
        collateral_amount: int,
        min_output_debt: int,
        market: MarketState,
    ) -> int: ...

    def decrease_leverage(
        self,
        caller: str,
        debt_amount: int,
        min_output_collateral: int,
        market: MarketState,
    ) -> int: ...

    def get_total_collateral_and_debt(self, market: MarketState) -> tuple[int, int]:
        """Collateral and debt of the vault in base units."""
        ...

    def get_current_leverage_bps(self, market: MarketState) -> int: ...
