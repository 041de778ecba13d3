"""tradebench.cli

Command line interface entry point for tradebench.

Design constraints:
- argparse-based.
- Lazy imports: do not import numpy or pydantic at parse time.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CliContext:
    repo_root: Path


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tradebench",
        description="Backtest the EMA crossover / ATR exit strategy against historical candles.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: config/user.yaml, else config/default.yaml).",
    )

    # --config is also accepted after the subcommand name.
    sub_common = argparse.ArgumentParser(add_help=False)
    sub_common.add_argument("--config", type=Path, default=argparse.SUPPRESS, help="Config file (same as the top-level --config).")

    sub = parser.add_subparsers(dest="command")

    p_bt = sub.add_parser("backtest", parents=[sub_common], help="Run one backtest over a CSV file")
    p_bt.add_argument("--csv", type=Path, required=True, help="timestamp,open,high,low,close[,volume]; ms timestamps")
    p_bt.add_argument("--symbol", default=None, help="Symbol override (default: first configured target symbol).")
    p_bt.add_argument("--capital", type=float, default=None, help="Initial capital (USD).")
    p_bt.add_argument("--trade-amount", type=float, default=None, help="Fixed USD notional per trade.")
    p_bt.add_argument("--json", action="store_true", help="Print the full result as JSON.")

    ov = p_bt.add_argument_group("strategy overrides", "All five numeric overrides or none.")
    ov.add_argument("--ema-short", type=int, default=None)
    ov.add_argument("--ema-medium", type=int, default=None)
    ov.add_argument("--atr-period", type=int, default=None)
    ov.add_argument("--stop-loss-mult", type=float, default=None)
    ov.add_argument("--take-profit-mult", type=float, default=None)
    ov.add_argument("--timeframe", default=None)

    sub.add_parser("config", parents=[sub_common], help="Print the strategy configuration document")

    return parser


def _print_version() -> None:
    from tradebench import __version__

    print(f"tradebench v{__version__}")


def _load_config(ctx: CliContext, args: argparse.Namespace):
    from tradebench.core.config import Config

    if args.config is not None:
        return Config.from_yaml(args.config)
    return Config.from_repo_defaults(ctx.repo_root)


def _cmd_backtest(ctx: CliContext, args: argparse.Namespace) -> int:
    # Lazy imports
    from tradebench.backtest.engine import BacktestRequest, StrategyOverrides, run_backtest
    from tradebench.core.exceptions import ConfigurationError
    from tradebench.core.logging import configure_logging

    try:
        config = _load_config(ctx, args)
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    logger = configure_logging(config.logging)

    csv_path: Path = args.csv
    if not csv_path.exists():
        print(f"error: CSV file not found: {csv_path}", file=sys.stderr)
        return 2

    request = BacktestRequest(
        historical_csv=csv_path.read_text(encoding="utf-8"),
        initial_capital=args.capital if args.capital is not None else config.backtest.initial_capital,
        trade_amount_usd=args.trade_amount if args.trade_amount is not None else config.backtest.trade_amount_usd,
        target_symbol_override=args.symbol,
        overrides=StrategyOverrides(
            ema_short_period=args.ema_short,
            ema_medium_period=args.ema_medium,
            atr_period=args.atr_period,
            stop_loss_multiplier=args.stop_loss_mult,
            take_profit_multiplier=args.take_profit_mult,
            timeframe=args.timeframe,
        ),
    )
    result = run_backtest(request, strategy=config.strategy, logger=logger.getChild("backtest"))

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.ok else 1

    if not result.ok:
        print(f"backtest failed: {result.error_message}", file=sys.stderr)
        return 1

    wire = result.to_dict()
    print(f"tradebench backtest: {wire['symbolTested']}")
    print(f"- trades: {wire['totalTrades']} ({wire['winningTrades']} won, {wire['losingTrades']} lost)")
    print(f"- win rate: {wire['winRate']}%")
    print(f"- profit factor: {wire['profitFactor']}")
    print(f"- net profit: {wire['netProfit']} ({wire['netProfitPercentage']}%)")
    print(f"- capital: {wire['initialCapital']} -> {wire['finalCapital']}")
    print(f"- max drawdown: {wire['maxDrawdownPercentage']}%")
    return 0


def _cmd_config(ctx: CliContext, args: argparse.Namespace) -> int:
    from tradebench.core.exceptions import ConfigurationError

    try:
        config = _load_config(ctx, args)
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(json.dumps(config.strategy.model_dump(mode="json"), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd())

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "backtest": _cmd_backtest,
        "config": _cmd_config,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    return int(fn(ctx, args))


if __name__ == "__main__":
    raise SystemExit(main())
