"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from leverage_engine.config import (
    AppConfig,
    BoundsConfig,
    ExecutorConfig,
    FlashLoanConfig,
    KeeperConfig,
    PriceOracleConfig,
    PythConfig,
    SwapConfig,
    TokenConfig,
    VaultConfig,
)
from leverage_engine.executors import DecreaseLeverageExecutor, IncreaseLeverageExecutor
from leverage_engine.ledger import Ledger
from leverage_engine.market import MarketState
from leverage_engine.models import LeverageBounds, OraclePrice, Token
from leverage_engine.simulation import (
    FixedRateVenue,
    FlashMintProvider,
    LendingPool,
    LeveragedVault,
)
from leverage_engine.swaps import SwapRouter

ONE = 10**18
PRICE_ONE = 10**8

DEPOSITOR = "alice"
CALLER = "keeper"


# ---------------------------------------------------------------------------
# Token / bounds fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def collateral() -> Token:
    return Token(symbol="WETH", decimals=18)


@pytest.fixture()
def debt() -> Token:
    return Token(symbol="dUSD", decimals=18)


@pytest.fixture()
def bounds() -> LeverageBounds:
    return LeverageBounds(
        target_bps=30_000,
        lower_bound_bps=20_000,
        upper_bound_bps=40_000,
        max_subsidy_bps=100,
    )


@pytest.fixture()
def market(collateral: Token, debt: Token) -> MarketState:
    return MarketState(
        {
            collateral.symbol: OraclePrice(price=PRICE_ONE),
            debt.symbol: OraclePrice(price=PRICE_ONE),
        }
    )


# ---------------------------------------------------------------------------
# Simulation fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture()
def pool(ledger: Ledger, debt: Token) -> LendingPool:
    p = LendingPool(ledger, "test")
    ledger.mint(p.account, debt, 1_000 * ONE)
    return p


@pytest.fixture()
def vault(
    ledger: Ledger,
    pool: LendingPool,
    collateral: Token,
    debt: Token,
    bounds: LeverageBounds,
) -> LeveragedVault:
    return LeveragedVault(
        ledger,
        pool,
        "dLOOP-3X-WETH",
        collateral,
        debt,
        bounds,
        liquidation_threshold_bps=9_000,
    )


@pytest.fixture()
def flash(ledger: Ledger) -> FlashMintProvider:
    return FlashMintProvider(ledger, fee_bps=5)


@pytest.fixture()
def venue(ledger: Ledger, collateral: Token, debt: Token) -> FixedRateVenue:
    v = FixedRateVenue(
        ledger,
        {collateral.symbol: PRICE_ONE, debt.symbol: PRICE_ONE},
        slippage_bps=10,
    )
    ledger.mint(v.account, collateral, 1_000 * ONE)
    ledger.mint(v.account, debt, 1_000 * ONE)
    return v


@pytest.fixture()
def increase_executor(ledger: Ledger, venue: FixedRateVenue) -> IncreaseLeverageExecutor:
    return IncreaseLeverageExecutor(ledger, "executor:increase", SwapRouter(venue))


@pytest.fixture()
def decrease_executor(ledger: Ledger, venue: FixedRateVenue) -> DecreaseLeverageExecutor:
    return DecreaseLeverageExecutor(ledger, "executor:decrease", SwapRouter(venue))


@pytest.fixture()
def funded_vault(
    ledger: Ledger, vault: LeveragedVault, collateral: Token, market: MarketState
) -> LeveragedVault:
    """Vault holding 100 WETH deposited at its 3x target."""
    ledger.mint(DEPOSITOR, collateral, 100 * ONE)
    vault.deposit(DEPOSITOR, 100 * ONE, DEPOSITOR, market)
    return vault


@pytest.fixture()
def shock(venue: FixedRateVenue, collateral: Token) -> Callable[[MarketState, int], MarketState]:
    """Move the collateral price by a percentage in both the oracle and the venue."""

    def _shock(market: MarketState, percent: int) -> MarketState:
        price = market.require_price(collateral) * (100 + percent) // 100
        venue.set_price(collateral.symbol, price)
        return market.with_price(collateral, price)

    return _shock


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_vault_config() -> VaultConfig:
    return VaultConfig(
        name="dLOOP-3X-WETH",
        collateral_token="WETH",
        debt_token="dUSD",
        bounds=BoundsConfig(
            target_bps=30_000,
            lower_bound_bps=20_000,
            upper_bound_bps=40_000,
            max_subsidy_bps=100,
        ),
        collateral_amount=100.0,
        debt_amount=66.0,
        liquidation_threshold_bps=9_000,
    )


@pytest.fixture()
def sample_app_config(sample_vault_config: VaultConfig) -> AppConfig:
    return AppConfig(
        keeper=KeeperConfig(check_interval_minutes=5),
        tokens={
            "WETH": TokenConfig(symbol="WETH", decimals=18),
            "dUSD": TokenConfig(symbol="dUSD", decimals=18),
        },
        vaults=(sample_vault_config,),
        flash_loan=FlashLoanConfig(fee_bps=5),
        swap=SwapConfig(slippage_bps=10),
        executor=ExecutorConfig(),
        price_oracle=PriceOracleConfig(
            provider="static",
            pyth=PythConfig(feeds={"WETH": "aaa111", "dUSD": "bbb222"}),
            static_prices={"WETH": 1.0, "dUSD": 1.0},
        ),
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    keeper:
      check_interval_minutes: 5
    tokens:
      WETH: {decimals: 18}
      dUSD: {decimals: 18}
      sUSDe: {decimals: 18}
      PT-sUSDe: {decimals: 18, underlying: sUSDe, expiry: 1767225600}
    vaults:
      - name: dLOOP-3X-WETH
        collateral_token: WETH
        debt_token: dUSD
        collateral_amount: 100
        debt_amount: 66
        liquidation_threshold_bps: 9000
        exchange_threshold: 1000
        bounds:
          target_bps: 30000
          lower_bound_bps: 20000
          upper_bound_bps: 40000
          max_subsidy_bps: 100
    flash_loan:
      fee_bps: 5
    swap:
      slippage_bps: 10
    executor:
      min_leftover_collateral: 100
      min_leftover_debt: 0
    price_oracle:
      provider: static
      static_prices: {WETH: 1.0, dUSD: 1.0}
      pyth:
        hermes_url: "https://hermes.example.com"
        max_age_seconds: 60
        feeds: {WETH: "aaa", dUSD: "bbb"}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
