"""tradebench.backtest.engine

Backtest entry point.

One call, one linear pass:
- resolve strategy parameters (stored document or a complete override set)
- load the price series, compute EMA(short), EMA(medium), ATR(period)
- simulate, then summarize

Callers always get a BacktestResult back. Validation, parse and config
failures come back as ``error_message`` with zeroed statistics; they are
not raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from typing import Any, Literal

from tradebench.backtest.indicators import atr, ema
from tradebench.backtest.io import parse_prices_csv
from tradebench.backtest.metrics import PerformanceSummary, summarize
from tradebench.backtest.simulator import IndicatorSeries, SimConfig, SimulatedTrade, StrategyParameters, simulate
from tradebench.core.config import AtrExit, StrategyConfig
from tradebench.core.exceptions import ConfigurationError, TradebenchError


@dataclass(frozen=True, slots=True)
class StrategyOverrides:
    """Per-run replacement for the stored strategy parameters.

    All five numeric fields or none. ``timeframe`` is informational.
    """

    ema_short_period: int | None = None
    ema_medium_period: int | None = None
    atr_period: int | None = None
    stop_loss_multiplier: float | None = None
    take_profit_multiplier: float | None = None
    timeframe: str | None = None

    def _numeric(self) -> list[int | float | None]:
        return [
            self.ema_short_period,
            self.ema_medium_period,
            self.atr_period,
            self.stop_loss_multiplier,
            self.take_profit_multiplier,
        ]

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self._numeric())

    @property
    def is_complete(self) -> bool:
        return all(v is not None for v in self._numeric())


@dataclass(frozen=True, slots=True)
class BacktestRequest:
    historical_csv: str
    initial_capital: float
    trade_amount_usd: float
    target_symbol_override: str | None = None
    overrides: StrategyOverrides | None = None


@dataclass(frozen=True, slots=True)
class ConfigUsed:
    source: Literal["global", "override"]
    params: dict[str, Any]


@dataclass(frozen=True, slots=True)
class BacktestResult:
    symbol_tested: str
    initial_capital: float
    final_capital: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    gross_profit: float
    gross_loss: float
    profit_factor: float | None
    average_win_amount: float | None
    average_loss_amount: float | None
    net_profit: float
    net_profit_percentage: float
    max_drawdown_percentage: float
    simulated_trades: list[SimulatedTrade]
    parameters: StrategyParameters | None = None
    config_used: ConfigUsed | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_message is None

    @classmethod
    def from_summary(
        cls,
        summary: PerformanceSummary,
        *,
        symbol: str,
        initial_capital: float,
        final_capital: float,
        trades: list[SimulatedTrade],
        parameters: StrategyParameters,
        config_used: ConfigUsed | None,
    ) -> BacktestResult:
        return cls(
            symbol_tested=symbol,
            initial_capital=initial_capital,
            final_capital=final_capital,
            total_trades=summary.total_trades,
            winning_trades=summary.winning_trades,
            losing_trades=summary.losing_trades,
            win_rate=summary.win_rate,
            gross_profit=summary.gross_profit,
            gross_loss=summary.gross_loss,
            profit_factor=summary.profit_factor,
            average_win_amount=summary.average_win_amount,
            average_loss_amount=summary.average_loss_amount,
            net_profit=summary.net_profit,
            net_profit_percentage=summary.net_profit_percentage,
            max_drawdown_percentage=summary.max_drawdown_percentage,
            simulated_trades=trades,
            parameters=parameters,
            config_used=config_used,
        )

    @classmethod
    def failed(
        cls,
        message: str,
        *,
        initial_capital: float,
        symbol: str = "NONE",
        config_used: ConfigUsed | None = None,
    ) -> BacktestResult:
        # Capital is echoed back unchanged so net profit stays consistent at zero.
        return cls(
            symbol_tested=symbol,
            initial_capital=initial_capital,
            final_capital=initial_capital,
            total_trades=0,
            winning_trades=0,
            losing_trades=0,
            win_rate=0.0,
            gross_profit=0.0,
            gross_loss=0.0,
            profit_factor=None,
            average_win_amount=None,
            average_loss_amount=None,
            net_profit=0.0,
            net_profit_percentage=0.0,
            max_drawdown_percentage=0.0,
            simulated_trades=[],
            config_used=config_used,
            error_message=message,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON wire form: camelCase keys, money and percentages at 2 decimals."""

        out: dict[str, Any] = {
            "symbolTested": self.symbol_tested,
            "initialCapital": _r2(self.initial_capital),
            "finalCapital": _r2(self.final_capital),
            "totalTrades": self.total_trades,
            "winningTrades": self.winning_trades,
            "losingTrades": self.losing_trades,
            "winRate": _r2(self.win_rate),
            "grossProfit": _r2(self.gross_profit),
            "grossLoss": _r2(self.gross_loss),
            "profitFactor": _profit_factor_wire(self.profit_factor),
            "averageWinAmount": _r2(self.average_win_amount),
            "averageLossAmount": _r2(self.average_loss_amount),
            "netProfit": _r2(self.net_profit),
            "netProfitPercentage": _r2(self.net_profit_percentage),
            "maxDrawdownPercentage": _r2(self.max_drawdown_percentage),
            "simulatedTrades": [_trade_to_dict(t) for t in self.simulated_trades],
            "strategyParameters": _camel(_asdict(self.parameters)) if self.parameters is not None else None,
            "configUsed": (
                {"type": self.config_used.source, "params": _camel(self.config_used.params)}
                if self.config_used is not None
                else None
            ),
        }
        if self.error_message is not None:
            out["errorMessage"] = self.error_message
        return out


def _r2(v: float | None) -> float | None:
    return round(float(v), 2) if v is not None else None


def _profit_factor_wire(v: float | None) -> float | str | None:
    if v is None:
        return None
    if math.isinf(v):
        return "Infinity"
    return round(v, 2)


def _camel_key(k: str) -> str:
    head, *rest = k.split("_")
    return head + "".join(p.title() for p in rest)


def _camel(d: dict[str, Any]) -> dict[str, Any]:
    return {_camel_key(k): _camel(v) if isinstance(v, dict) else v for k, v in d.items()}


def _asdict(obj: Any) -> dict[str, Any]:
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def _trade_to_dict(t: SimulatedTrade) -> dict[str, Any]:
    d = _camel(_asdict(t))
    d["side"] = str(t.side)
    d["exitKind"] = str(t.exit_kind)
    d["pnl"] = _r2(t.pnl)
    d["pnlPercentage"] = _r2(t.pnl_percentage)
    return d


def _require_positive(name: str, v: float | None, *, integer: bool = False) -> None:
    if v is None:
        raise ConfigurationError(f"Missing strategy parameter: {name}")
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ConfigurationError(f"Strategy parameter {name} must be a number, got {v!r}")
    if not math.isfinite(v) or v <= 0:
        raise ConfigurationError(f"Strategy parameter {name} must be positive, got {v!r}")
    if integer and int(v) != v:
        raise ConfigurationError(f"Strategy parameter {name} must be an integer, got {v!r}")


def validate_parameters(params: StrategyParameters) -> StrategyParameters:
    _require_positive("ema_short_period", params.ema_short_period, integer=True)
    _require_positive("ema_medium_period", params.ema_medium_period, integer=True)
    _require_positive("atr_period", params.atr_period, integer=True)
    _require_positive("stop_loss_multiplier", params.stop_loss_multiplier)
    _require_positive("take_profit_multiplier", params.take_profit_multiplier)
    return replace(
        params,
        ema_short_period=int(params.ema_short_period),
        ema_medium_period=int(params.ema_medium_period),
        atr_period=int(params.atr_period),
        stop_loss_multiplier=float(params.stop_loss_multiplier),
        take_profit_multiplier=float(params.take_profit_multiplier),
    )


def describe_source(strategy: StrategyConfig | None, overrides: StrategyOverrides | None = None) -> ConfigUsed | None:
    if overrides is not None and not overrides.is_empty:
        return ConfigUsed(source="override", params=_asdict(overrides))
    if strategy is not None:
        return ConfigUsed(source="global", params=strategy.model_dump(mode="json"))
    return None


def resolve_strategy(
    strategy: StrategyConfig | None,
    overrides: StrategyOverrides | None = None,
) -> tuple[StrategyParameters, list[str]]:
    """Pick the parameter set for one run.

    Returns (parameters, configured target symbols). Overrides carry no symbols.
    """

    ov = overrides or StrategyOverrides()
    if not ov.is_empty:
        if not ov.is_complete:
            raise ConfigurationError(
                "Override parameters are all-or-none: set ema_short_period, ema_medium_period, "
                "atr_period, stop_loss_multiplier and take_profit_multiplier together"
            )
        params = StrategyParameters(
            ema_short_period=ov.ema_short_period,
            ema_medium_period=ov.ema_medium_period,
            atr_period=ov.atr_period,
            stop_loss_multiplier=ov.stop_loss_multiplier,
            take_profit_multiplier=ov.take_profit_multiplier,
        )
        return validate_parameters(params), []

    if strategy is None:
        raise ConfigurationError("Failed to load strategy configuration")

    if not isinstance(strategy.exit, AtrExit):
        raise ConfigurationError("Strategy has no ATR exit configured; backtests need ATR stop loss and take profit")

    params = StrategyParameters(
        ema_short_period=strategy.ema_short_period,
        ema_medium_period=strategy.ema_medium_period,
        atr_period=strategy.exit.period,
        stop_loss_multiplier=strategy.exit.stop_loss_multiplier,
        take_profit_multiplier=strategy.exit.take_profit_multiplier,
    )
    return validate_parameters(params), list(strategy.target_symbols)


def compute_indicators(*, close, high, low, params: StrategyParameters) -> IndicatorSeries:
    return IndicatorSeries(
        ema_short=ema(close, params.ema_short_period),
        ema_medium=ema(close, params.ema_medium_period),
        atr=atr(high, low, close, params.atr_period),
    )


def run_backtest(
    request: BacktestRequest,
    *,
    strategy: StrategyConfig | None = None,
    logger: logging.Logger | None = None,
) -> BacktestResult:
    log = logger or logging.getLogger(__name__)

    capital = request.initial_capital
    override_symbol = (request.target_symbol_override or "").strip()
    symbol = override_symbol or "NONE"
    config_used = describe_source(strategy, request.overrides)

    try:
        _require_run_value("initial_capital", request.initial_capital)
        _require_run_value("trade_amount_usd", request.trade_amount_usd)

        params, symbols = resolve_strategy(strategy, request.overrides)
        if not override_symbol:
            if not symbols:
                raise ConfigurationError("No target symbol specified: set target_symbols or pass a symbol override")
            symbol = symbols[0]

        log.info("backtest_started", extra={"symbol": symbol, "source": config_used.source if config_used else None})

        series = parse_prices_csv(request.historical_csv, min_rows=params.min_bars)
        indicators = compute_indicators(close=series.close, high=series.high, low=series.low, params=params)
        sim = simulate(
            series=series,
            indicators=indicators,
            params=params,
            symbol=symbol,
            cfg=SimConfig(initial_capital=capital, trade_amount_usd=request.trade_amount_usd),
            logger=log,
        )
    except TradebenchError as e:
        log.warning("backtest_failed", extra={"symbol": symbol, "error": str(e), "error_type": type(e).__name__})
        return BacktestResult.failed(
            str(e),
            initial_capital=capital if _is_number(capital) else 0.0,
            symbol=symbol,
            config_used=config_used,
        )

    summary = summarize(
        sim.trades,
        initial_capital=capital,
        final_capital=sim.final_capital,
        capital_path=sim.capital_path,
    )
    log.info(
        "backtest_completed",
        extra={
            "symbol": symbol,
            "bars": len(series),
            "trades": summary.total_trades,
            "net_profit": summary.net_profit,
        },
    )
    return BacktestResult.from_summary(
        summary,
        symbol=symbol,
        initial_capital=capital,
        final_capital=sim.final_capital,
        trades=sim.trades,
        parameters=params,
        config_used=config_used,
    )


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _require_run_value(name: str, v: Any) -> None:
    if not _is_number(v) or v <= 0:
        raise ConfigurationError(f"{name} must be a positive number, got {v!r}")
