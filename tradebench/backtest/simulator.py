"""tradebench.backtest.simulator

Single-symbol trade simulator.

Walks the series one bar at a time with at most one open position:
- exit check first: ATR stop / target off the entry price, stop wins when
  one bar's range spans both
- then entry check: EMA(short) crossing EMA(medium) on closes, fixed USD
  notional per trade, only while capital exceeds that notional
- a position still open after the last bar is closed at the last close

No fees, no slippage, no partial fills. Exits fill exactly at the level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

import numpy as np

from tradebench.backtest.io import PriceBar, PriceSeries


class Side(StrEnum):
    LONG = "long"
    SHORT = "short"


class ExitKind(StrEnum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    END_OF_DATA = "end_of_data"


@dataclass(frozen=True, slots=True)
class StrategyParameters:
    ema_short_period: int
    ema_medium_period: int
    atr_period: int
    stop_loss_multiplier: float
    take_profit_multiplier: float

    @property
    def max_period(self) -> int:
        return max(self.ema_short_period, self.ema_medium_period, self.atr_period)

    @property
    def min_bars(self) -> int:
        # Warm-up plus a few bars left over to trade on.
        return self.max_period + 5


@dataclass(frozen=True, slots=True)
class IndicatorSeries:
    ema_short: np.ndarray
    ema_medium: np.ndarray
    atr: np.ndarray

    def ready(self, i: int) -> bool:
        return bool(np.isfinite(self.ema_short[i]) and np.isfinite(self.ema_medium[i]) and np.isfinite(self.atr[i]))

    def first_ready(self) -> int | None:
        mask = np.isfinite(self.ema_short) & np.isfinite(self.ema_medium) & np.isfinite(self.atr)
        hits = np.flatnonzero(mask)
        return int(hits[0]) if hits.size else None


@dataclass(slots=True)
class OpenPosition:
    symbol: str
    side: Side
    entry_price: float
    entry_timestamp: int
    quantity: float
    entry_reason: str
    highest_price: float
    lowest_price: float

    def levels(self, *, atr: float, params: StrategyParameters) -> tuple[float, float]:
        """Return (stop, target) for the given ATR."""

        sl = atr * params.stop_loss_multiplier
        tp = atr * params.take_profit_multiplier
        if self.side is Side.LONG:
            return self.entry_price - sl, self.entry_price + tp
        return self.entry_price + sl, self.entry_price - tp

    def pnl_at(self, price: float) -> float:
        if self.side is Side.LONG:
            return (price - self.entry_price) * self.quantity
        return (self.entry_price - price) * self.quantity


@dataclass(frozen=True, slots=True)
class SimulatedTrade:
    symbol: str
    side: Side
    entry_price: float
    entry_timestamp: int
    quantity: float
    entry_reason: str
    exit_price: float
    exit_timestamp: int
    exit_kind: ExitKind
    exit_reason: str
    pnl: float
    pnl_percentage: float
    highest_price_reached: float
    lowest_price_reached: float


@dataclass(frozen=True, slots=True)
class SimConfig:
    initial_capital: float
    trade_amount_usd: float


@dataclass(frozen=True, slots=True)
class SimResult:
    trades: list[SimulatedTrade]
    final_capital: float
    capital_path: np.ndarray  # initial capital, then capital after each close


def _close(pos: OpenPosition, *, price: float, timestamp: int, kind: ExitKind, reason: str) -> SimulatedTrade:
    pnl = pos.pnl_at(price)
    notional = pos.entry_price * pos.quantity
    return SimulatedTrade(
        symbol=pos.symbol,
        side=pos.side,
        entry_price=pos.entry_price,
        entry_timestamp=pos.entry_timestamp,
        quantity=pos.quantity,
        entry_reason=pos.entry_reason,
        exit_price=price,
        exit_timestamp=timestamp,
        exit_kind=kind,
        exit_reason=reason,
        pnl=pnl,
        pnl_percentage=(pnl / notional) * 100.0 if notional != 0 else 0.0,
        highest_price_reached=max(pos.highest_price, price),
        lowest_price_reached=min(pos.lowest_price, price),
    )


def _check_exit(pos: OpenPosition, bar: PriceBar, *, atr: float, params: StrategyParameters) -> tuple[float, ExitKind] | None:
    stop, target = pos.levels(atr=atr, params=params)
    if pos.side is Side.LONG:
        if bar.low <= stop:
            return stop, ExitKind.STOP_LOSS
        if bar.high >= target:
            return target, ExitKind.TAKE_PROFIT
        return None

    if bar.high >= stop:
        return stop, ExitKind.STOP_LOSS
    if bar.low <= target:
        return target, ExitKind.TAKE_PROFIT
    return None


def _cross(prev_s: float, prev_m: float, cur_s: float, cur_m: float) -> Side | None:
    if prev_s <= prev_m and cur_s > cur_m:
        return Side.LONG
    if prev_s >= prev_m and cur_s < cur_m:
        return Side.SHORT
    return None


def _entry_reason(side: Side, params: StrategyParameters, prev_s: float, prev_m: float, cur_s: float, cur_m: float) -> str:
    direction = "Up" if side is Side.LONG else "Down"
    return (
        f"EMA({params.ema_short_period}) cross EMA({params.ema_medium_period}) {direction}. "
        f"Prev S:{prev_s:.2f}, M:{prev_m:.2f}. Curr S:{cur_s:.2f}, M:{cur_m:.2f}"
    )


def _exit_reason(kind: ExitKind, price: float) -> str:
    if kind is ExitKind.STOP_LOSS:
        return f"Stop Loss hit at {price:.4f}"
    if kind is ExitKind.TAKE_PROFIT:
        return f"Take Profit hit at {price:.4f}"
    return "End of data"


def simulate(
    *,
    series: PriceSeries,
    indicators: IndicatorSeries,
    params: StrategyParameters,
    symbol: str,
    cfg: SimConfig,
    logger: logging.Logger | None = None,
) -> SimResult:
    log = logger or logging.getLogger(__name__)

    t_len = len(series)
    if not (indicators.ema_short.shape[0] == indicators.ema_medium.shape[0] == indicators.atr.shape[0] == t_len):
        raise ValueError("indicator arrays must be aligned to the price series")

    capital = float(cfg.initial_capital)
    capital_path = [capital]
    trades: list[SimulatedTrade] = []
    position: OpenPosition | None = None

    def book(trade: SimulatedTrade) -> None:
        nonlocal capital
        capital += trade.pnl
        capital_path.append(capital)
        trades.append(trade)
        log.debug(
            "position_closed",
            extra={"symbol": symbol, "side": str(trade.side), "exit_kind": str(trade.exit_kind), "pnl": trade.pnl},
        )

    start = indicators.first_ready()
    for i in range(start if start is not None else t_len, t_len):
        if not indicators.ready(i):
            continue

        bar = series.bar(i)
        cur_atr = float(indicators.atr[i])

        if position is not None:
            position.highest_price = max(position.highest_price, bar.high)
            position.lowest_price = min(position.lowest_price, bar.low)
            hit = _check_exit(position, bar, atr=cur_atr, params=params)
            if hit is not None:
                price, kind = hit
                book(_close(position, price=price, timestamp=bar.timestamp, kind=kind, reason=_exit_reason(kind, price)))
                position = None

        if position is not None or capital <= cfg.trade_amount_usd or i == 0 or bar.close <= 0:
            continue

        prev_s = float(indicators.ema_short[i - 1])
        prev_m = float(indicators.ema_medium[i - 1])
        if not (np.isfinite(prev_s) and np.isfinite(prev_m)):
            continue

        cur_s = float(indicators.ema_short[i])
        cur_m = float(indicators.ema_medium[i])
        side = _cross(prev_s, prev_m, cur_s, cur_m)
        if side is None:
            continue

        position = OpenPosition(
            symbol=symbol,
            side=side,
            entry_price=bar.close,
            entry_timestamp=bar.timestamp,
            quantity=cfg.trade_amount_usd / bar.close,
            entry_reason=_entry_reason(side, params, prev_s, prev_m, cur_s, cur_m),
            highest_price=bar.close,
            lowest_price=bar.close,
        )
        log.debug("position_opened", extra={"symbol": symbol, "side": str(side), "price": bar.close, "bar": i})

    if position is not None:
        last = series.bar(t_len - 1)
        book(
            _close(
                position,
                price=last.close,
                timestamp=last.timestamp,
                kind=ExitKind.END_OF_DATA,
                reason=_exit_reason(ExitKind.END_OF_DATA, last.close),
            )
        )

    return SimResult(trades=trades, final_capital=capital, capital_path=np.array(capital_path, dtype=np.float64))
