"""Command-line interface for the leverage engine."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import AppConfig, VaultConfig, load_config
from .errors import LogicalDecline
from .logging_setup import configure_logging
from .models import RebalanceResult
from .oracles import build_market_state
from .services import Keeper
from .services.keeper import format_leverage
from .simulation import build_simulation, run_rebalance


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="leverage-engine",
        description="Leveraged vault rebalance engine",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("quote", help="Quote every configured vault once")

    simulate_parser = sub.add_parser(
        "simulate", help="Run a rebalance against an in-memory vault"
    )
    simulate_parser.add_argument(
        "--vault",
        default=None,
        help="Vault name (default: first configured vault)",
    )
    simulate_parser.add_argument(
        "--price-shock",
        type=float,
        default=0.0,
        help="Collateral price move in percent applied after the deposit, e.g. -20",
    )
    simulate_parser.add_argument(
        "--prefund-pct",
        type=int,
        default=0,
        help="Percent of the quoted debt amount the caller supplies up front",
    )

    keeper_parser = sub.add_parser("keeper", help="Continuous keeper loop")
    keeper_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    return parser


def _select_vault(config: AppConfig, name: str | None) -> VaultConfig:
    if name is None:
        return config.vaults[0]
    for vault in config.vaults:
        if vault.name == name:
            return vault
    raise SystemExit(f"Unknown vault '{name}'")


def _print_result(result: RebalanceResult) -> None:
    print(f"direction:          {result.direction.name}")
    print(f"debt amount:        {result.debt_amount}")
    print(f"flash borrowed:     {result.flash_borrowed} (fee {result.flash_fee})")
    print(f"collateral to caller: {result.collateral_to_caller}")
    print(f"debt to caller:     {result.debt_to_caller}")
    print(f"leftover swept:     {result.leftover_swept}")
    print(f"resulting leverage: {format_leverage(result.resulting_leverage_bps)}")


async def _simulate(config: AppConfig, keeper: Keeper, args: argparse.Namespace) -> None:
    vault_cfg = _select_vault(config, args.vault)
    market = build_market_state(await keeper.fetch_prices())
    sim = build_simulation(config, vault_cfg, market)
    print(f"{vault_cfg.name}: {format_leverage(sim.vault.get_current_leverage_bps(sim.market))}")
    if args.price_shock:
        sim.shock_price(args.price_shock)
        print(
            f"after {args.price_shock:+.2f}% shock: "
            f"{format_leverage(sim.vault.get_current_leverage_bps(sim.market))}"
        )
    try:
        result = run_rebalance(sim, prefund_pct=args.prefund_pct)
    except LogicalDecline as e:
        print(f"declined: {e}")
        return
    _print_result(result)


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    keeper = Keeper(config)

    if args.command == "quote":
        await keeper.check_once()
    elif args.command == "simulate":
        await _simulate(config, keeper, args)
    elif args.command == "keeper":
        await keeper.run_continuous(args.interval)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
