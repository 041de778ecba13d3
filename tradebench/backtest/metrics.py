"""tradebench.backtest.metrics

Performance metrics over a closed-trade log.

Full precision in, full precision out. Rounding belongs to whoever renders
the numbers.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from tradebench.backtest.simulator import SimulatedTrade


@dataclass(frozen=True, slots=True)
class PerformanceSummary:
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float  # percent
    gross_profit: float
    gross_loss: float  # positive magnitude
    profit_factor: float | None  # math.inf when there are no losses but some profit
    average_win_amount: float | None
    average_loss_amount: float | None
    net_profit: float
    net_profit_percentage: float
    max_drawdown_percentage: float


def max_drawdown(equity: np.ndarray) -> float:
    """Largest peak-to-trough decline as a (negative) fraction of the peak."""

    if equity.size == 0:
        return 0.0
    peak = np.maximum.accumulate(equity)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peak > 0, (equity / peak) - 1.0, 0.0)
    return float(dd.min())


def profit_factor(gross_profit: float, gross_loss: float) -> float | None:
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return math.inf
    return None


def summarize(
    trades: Sequence[SimulatedTrade],
    *,
    initial_capital: float,
    final_capital: float,
    capital_path: np.ndarray | None = None,
) -> PerformanceSummary:
    wins = [t.pnl for t in trades if t.pnl > 0]
    losses = [t.pnl for t in trades if t.pnl < 0]

    total = len(trades)
    gross_profit = float(sum(wins))
    gross_loss = abs(float(sum(losses)))
    net = float(final_capital) - float(initial_capital)

    path = capital_path if capital_path is not None else np.array([initial_capital, final_capital], dtype=np.float64)

    return PerformanceSummary(
        total_trades=total,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=(len(wins) / total) * 100.0 if total else 0.0,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        profit_factor=profit_factor(gross_profit, gross_loss),
        average_win_amount=gross_profit / len(wins) if wins else None,
        average_loss_amount=gross_loss / len(losses) if losses else None,
        net_profit=net,
        net_profit_percentage=(net / initial_capital) * 100.0 if initial_capital else 0.0,
        max_drawdown_percentage=abs(max_drawdown(path)) * 100.0,
    )
