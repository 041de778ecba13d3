"""tradebench.backtest

Backtest engine.

- indicators: EMA + ATR
- io: CSV text -> PriceSeries
- simulator: bar-by-bar EMA crossover entries, ATR stop / target exits
- metrics: trade log -> performance summary
- engine: request -> BacktestResult (errors included, never raised)
"""

from tradebench.backtest.engine import (
    BacktestRequest,
    BacktestResult,
    ConfigUsed,
    StrategyOverrides,
    resolve_strategy,
    run_backtest,
)
from tradebench.backtest.simulator import ExitKind, Side, SimulatedTrade, StrategyParameters

__all__ = [
    "BacktestRequest",
    "BacktestResult",
    "ConfigUsed",
    "ExitKind",
    "Side",
    "SimulatedTrade",
    "StrategyOverrides",
    "StrategyParameters",
    "resolve_strategy",
    "run_backtest",
]
