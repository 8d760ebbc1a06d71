"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .logic.leverage import validate_bounds
from .models import LeverageBounds, Token

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenConfig:
    symbol: str = ""
    decimals: int = 18
    underlying: str | None = None
    expiry: int | None = None


@dataclass(frozen=True)
class BoundsConfig:
    target_bps: int = 30_000
    lower_bound_bps: int = 20_000
    upper_bound_bps: int = 40_000
    max_subsidy_bps: int = 100
    subsidy_ceiling_bps: int | None = None


@dataclass(frozen=True)
class VaultConfig:
    name: str = ""
    collateral_token: str = ""
    debt_token: str = ""
    bounds: BoundsConfig = field(default_factory=BoundsConfig)
    collateral_amount: float = 0.0
    debt_amount: float = 0.0
    liquidation_threshold_bps: int = 0
    exchange_threshold: int = 0
    deposit_cap: int | None = None


@dataclass(frozen=True)
class FlashLoanConfig:
    fee_bps: int = 0


@dataclass(frozen=True)
class SwapConfig:
    slippage_bps: int = 0


@dataclass(frozen=True)
class ExecutorConfig:
    min_leftover_collateral: int = 0
    min_leftover_debt: int = 0


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    max_age_seconds: int = 120


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "static"
    pyth: PythConfig = field(default_factory=PythConfig)
    static_prices: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class KeeperConfig:
    check_interval_minutes: int = 15


@dataclass(frozen=True)
class AppConfig:
    keeper: KeeperConfig = field(default_factory=KeeperConfig)
    tokens: dict[str, TokenConfig] = field(default_factory=dict)
    vaults: tuple[VaultConfig, ...] = ()
    flash_loan: FlashLoanConfig = field(default_factory=FlashLoanConfig)
    swap: SwapConfig = field(default_factory=SwapConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)


_PROVIDERS = ("static", "pyth")

# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_keeper(raw: dict[str, Any]) -> KeeperConfig:
    return KeeperConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 15)),
    )


def _build_tokens(raw: dict[str, Any]) -> dict[str, TokenConfig]:
    tokens: dict[str, TokenConfig] = {}
    for symbol, cfg in raw.items():
        cfg = cfg or {}
        tokens[symbol] = TokenConfig(
            symbol=symbol,
            decimals=int(cfg.get("decimals", 18)),
            underlying=cfg.get("underlying"),
            expiry=_optional_int(cfg.get("expiry")),
        )
    return tokens


def _build_bounds(raw: dict[str, Any]) -> BoundsConfig:
    return BoundsConfig(
        target_bps=int(raw.get("target_bps", 30_000)),
        lower_bound_bps=int(raw.get("lower_bound_bps", 20_000)),
        upper_bound_bps=int(raw.get("upper_bound_bps", 40_000)),
        max_subsidy_bps=int(raw.get("max_subsidy_bps", 100)),
        subsidy_ceiling_bps=_optional_int(raw.get("subsidy_ceiling_bps")),
    )


def _build_vaults(raw: list[dict[str, Any]]) -> tuple[VaultConfig, ...]:
    vaults: list[VaultConfig] = []
    for v in raw:
        vaults.append(
            VaultConfig(
                name=v.get("name", ""),
                collateral_token=v.get("collateral_token", ""),
                debt_token=v.get("debt_token", ""),
                bounds=_build_bounds(v.get("bounds", {})),
                collateral_amount=float(v.get("collateral_amount", 0.0)),
                debt_amount=float(v.get("debt_amount", 0.0)),
                liquidation_threshold_bps=int(v.get("liquidation_threshold_bps", 0)),
                exchange_threshold=int(v.get("exchange_threshold", 0)),
                deposit_cap=_optional_int(v.get("deposit_cap")),
            )
        )
    return tuple(vaults)


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "static"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
            max_age_seconds=int(pyth_raw.get("max_age_seconds", 120)),
        ),
        static_prices={k: float(v) for k, v in raw.get("static_prices", {}).items()},
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    flash_raw = raw.get("flash_loan", {})
    swap_raw = raw.get("swap", {})
    executor_raw = raw.get("executor", {})
    cfg = AppConfig(
        keeper=_build_keeper(raw.get("keeper", {})),
        tokens=_build_tokens(raw.get("tokens", {})),
        vaults=_build_vaults(raw.get("vaults", [])),
        flash_loan=FlashLoanConfig(fee_bps=int(flash_raw.get("fee_bps", 0))),
        swap=SwapConfig(slippage_bps=int(swap_raw.get("slippage_bps", 0))),
        executor=ExecutorConfig(
            min_leftover_collateral=int(executor_raw.get("min_leftover_collateral", 0)),
            min_leftover_debt=int(executor_raw.get("min_leftover_debt", 0)),
        ),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.vaults:
        raise ValueError("At least one vault must be configured")

    for token in cfg.tokens.values():
        if token.decimals <= 0:
            raise ValueError(f"Token '{token.symbol}' must have positive decimals")
        if token.underlying is not None and token.underlying not in cfg.tokens:
            raise ValueError(
                f"Token '{token.symbol}' references unknown underlying '{token.underlying}'"
            )

    for vault in cfg.vaults:
        if not vault.name:
            raise ValueError("Every vault must have a name")
        for role, symbol in (
            ("collateral", vault.collateral_token),
            ("debt", vault.debt_token),
        ):
            if symbol not in cfg.tokens:
                raise ValueError(
                    f"Vault '{vault.name}' references unknown {role} token '{symbol}'"
                )
        validate_bounds(vault_bounds(vault))

    if cfg.price_oracle.provider not in _PROVIDERS:
        raise ValueError(f"Unknown price provider '{cfg.price_oracle.provider}'")
    if cfg.price_oracle.provider == "static":
        for vault in cfg.vaults:
            for symbol in (vault.collateral_token, vault.debt_token):
                if symbol not in cfg.price_oracle.static_prices:
                    raise ValueError(f"No static price configured for '{symbol}'")


def vault_bounds(vault: VaultConfig) -> LeverageBounds:
    b = vault.bounds
    return LeverageBounds(
        target_bps=b.target_bps,
        lower_bound_bps=b.lower_bound_bps,
        upper_bound_bps=b.upper_bound_bps,
        max_subsidy_bps=b.max_subsidy_bps,
        subsidy_ceiling_bps=b.subsidy_ceiling_bps,
    )


def resolve_token(cfg: AppConfig, symbol: str) -> Token:
    """Build the ``Token`` for *symbol*, including its underlying chain."""
    token_cfg = cfg.tokens[symbol]
    underlying = (
        resolve_token(cfg, token_cfg.underlying) if token_cfg.underlying else None
    )
    return Token(
        symbol=symbol,
        decimals=token_cfg.decimals,
        underlying=underlying,
        expiry=token_cfg.expiry,
    )
