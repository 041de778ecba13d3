from __future__ import annotations

import json
import logging

import pytest

from tests.unit._backtest_data import T0, bars_to_csv, closes_to_bars, uptrend_cross_closes, wave_closes
from tradebench.backtest.engine import (
    BacktestRequest,
    StrategyOverrides,
    describe_source,
    resolve_strategy,
    run_backtest,
)
from tradebench.backtest.simulator import ExitKind
from tradebench.core.config import NoAtrExit, StrategyConfig
from tradebench.core.exceptions import ConfigurationError

FULL_OVERRIDES = StrategyOverrides(
    ema_short_period=3,
    ema_medium_period=5,
    atr_period=5,
    stop_loss_multiplier=1.0,
    take_profit_multiplier=100.0,
    timeframe="1h",
)


def _request(csv: str, **kw) -> BacktestRequest:
    base = dict(historical_csv=csv, initial_capital=10_000.0, trade_amount_usd=100.0)
    base.update(kw)
    return BacktestRequest(**base)


def _assert_zeroed(res) -> None:
    assert res.total_trades == 0
    assert res.winning_trades == 0
    assert res.losing_trades == 0
    assert res.win_rate == 0.0
    assert res.net_profit == 0.0
    assert res.net_profit_percentage == 0.0
    assert res.simulated_trades == []


def test_uptrend_crossover_single_trade_to_end_of_data():
    closes = uptrend_cross_closes()
    res = run_backtest(_request(bars_to_csv(closes_to_bars(closes)), target_symbol_override=" btc/usdt ", overrides=FULL_OVERRIDES))

    assert res.ok
    assert res.symbol_tested == "btc/usdt"
    assert res.total_trades == 1
    t = res.simulated_trades[0]
    assert t.entry_price == closes[10]
    assert t.entry_timestamp == T0 + 10 * 3_600_000
    assert t.exit_kind is ExitKind.END_OF_DATA
    assert t.exit_price == closes[-1]
    assert t.pnl > 0
    assert res.winning_trades == 1
    assert res.win_rate == pytest.approx(100.0)
    assert res.final_capital == pytest.approx(10_000.0 + t.pnl)
    assert res.config_used is not None and res.config_used.source == "override"


def test_insufficient_data_returns_error_result():
    csv = bars_to_csv(closes_to_bars([100.0 + i for i in range(10)]))
    overrides = StrategyOverrides(
        ema_short_period=9,
        ema_medium_period=55,
        atr_period=14,
        stop_loss_multiplier=2.0,
        take_profit_multiplier=3.0,
    )
    res = run_backtest(_request(csv, target_symbol_override="BTC/USDT", overrides=overrides))

    assert not res.ok
    assert "Not enough historical data" in res.error_message
    _assert_zeroed(res)
    assert res.symbol_tested == "BTC/USDT"


def test_stored_strategy_used_when_no_overrides(default_config):
    csv = bars_to_csv(closes_to_bars(wave_closes()))
    res = run_backtest(_request(csv), strategy=default_config.strategy)

    assert res.ok
    assert res.symbol_tested == "BTC/USDT"
    assert res.config_used.source == "global"
    assert res.parameters.ema_short_period == 9
    assert res.parameters.atr_period == 14
    assert res.final_capital == pytest.approx(res.initial_capital + sum(t.pnl for t in res.simulated_trades))


def test_same_inputs_same_output(default_config):
    csv = bars_to_csv(closes_to_bars(wave_closes()))
    a = run_backtest(_request(csv), strategy=default_config.strategy)
    b = run_backtest(_request(csv), strategy=default_config.strategy)
    assert json.dumps(a.to_dict(), sort_keys=True) == json.dumps(b.to_dict(), sort_keys=True)


@pytest.mark.parametrize(
    ("kw", "needle"),
    [
        ({"initial_capital": 0.0}, "initial_capital"),
        ({"initial_capital": -5.0}, "initial_capital"),
        ({"trade_amount_usd": 0.0}, "trade_amount_usd"),
        ({"overrides": StrategyOverrides(ema_short_period=3)}, "all-or-none"),
        (
            {
                "overrides": StrategyOverrides(
                    ema_short_period=3,
                    ema_medium_period=5,
                    atr_period=5,
                    stop_loss_multiplier=-1.0,
                    take_profit_multiplier=2.0,
                )
            },
            "stop_loss_multiplier",
        ),
    ],
)
def test_invalid_inputs_become_error_results(default_config, kw, needle):
    csv = bars_to_csv(closes_to_bars(wave_closes(60)))
    res = run_backtest(_request(csv, **kw), strategy=default_config.strategy)
    assert not res.ok
    assert needle in res.error_message
    _assert_zeroed(res)


def test_missing_strategy_config_is_error():
    res = run_backtest(_request(bars_to_csv(closes_to_bars(wave_closes(60)))), strategy=None)
    assert not res.ok
    assert "strategy configuration" in res.error_message
    assert res.config_used is None


def test_no_symbol_resolvable_is_error():
    strategy = StrategyConfig(target_symbols=[])
    res = run_backtest(_request(bars_to_csv(closes_to_bars(wave_closes(60)))), strategy=strategy)
    assert not res.ok
    assert "symbol" in res.error_message
    assert res.symbol_tested == "NONE"


def test_strategy_without_atr_exit_is_error():
    strategy = StrategyConfig(exit=NoAtrExit())
    res = run_backtest(_request(bars_to_csv(closes_to_bars(wave_closes(60)))), strategy=strategy)
    assert not res.ok
    assert "ATR" in res.error_message
    assert res.config_used.source == "global"


def test_malformed_csv_is_error_result(default_config):
    res = run_backtest(_request("timestamp,open,high,low,close\n1,a,b,c,d\n"), strategy=default_config.strategy)
    assert not res.ok
    assert "not a number" in res.error_message


@pytest.mark.parametrize(("stamp", "needle"), [("1e30", "out of range"), ("1800000000000.7", "whole milliseconds")])
def test_unusable_timestamp_is_error_result(stamp: str, needle: str):
    lines = bars_to_csv(closes_to_bars(uptrend_cross_closes())).splitlines()
    lines[-1] = stamp + lines[-1][lines[-1].index(",") :]
    res = run_backtest(_request("\n".join(lines) + "\n", target_symbol_override="BTC/USDT", overrides=FULL_OVERRIDES))

    assert not res.ok
    assert needle in res.error_message
    assert f"row {len(lines)}" in res.error_message
    _assert_zeroed(res)


def test_error_result_wire_shape():
    res = run_backtest(_request("timestamp,open\n1,2\n", overrides=FULL_OVERRIDES, target_symbol_override="X"))
    wire = res.to_dict()
    assert wire["errorMessage"]
    assert wire["totalTrades"] == 0
    assert wire["netProfit"] == 0.0
    assert wire["profitFactor"] is None
    assert wire["simulatedTrades"] == []
    json.dumps(wire)


def test_wire_format_rounding_and_infinity():
    closes = uptrend_cross_closes()
    res = run_backtest(_request(bars_to_csv(closes_to_bars(closes)), target_symbol_override="BTC/USDT", overrides=FULL_OVERRIDES))
    wire = res.to_dict()

    assert wire["profitFactor"] == "Infinity"
    assert wire["averageLossAmount"] is None
    assert wire["netProfit"] == round(res.net_profit, 2)
    assert wire["configUsed"]["type"] == "override"
    assert wire["configUsed"]["params"]["emaShortPeriod"] == 3
    assert wire["strategyParameters"]["takeProfitMultiplier"] == 100.0
    trade = wire["simulatedTrades"][0]
    assert trade["side"] == "long"
    assert trade["exitKind"] == "end_of_data"
    assert trade["exitReason"] == "End of data"
    assert "errorMessage" not in wire
    json.dumps(wire)


def test_resolve_strategy_prefers_complete_overrides(default_config):
    params, symbols = resolve_strategy(default_config.strategy, FULL_OVERRIDES)
    assert params.ema_medium_period == 5
    assert symbols == []
    assert describe_source(default_config.strategy, FULL_OVERRIDES).source == "override"
    assert describe_source(default_config.strategy, StrategyOverrides()).source == "global"
    assert describe_source(None, None) is None


def test_resolve_strategy_rejects_partial_overrides(default_config):
    with pytest.raises(ConfigurationError):
        resolve_strategy(default_config.strategy, StrategyOverrides(atr_period=14, stop_loss_multiplier=2.0))


def test_resolve_strategy_rejects_fractional_period():
    ov = StrategyOverrides(
        ema_short_period=2.5,
        ema_medium_period=5,
        atr_period=5,
        stop_loss_multiplier=1.0,
        take_profit_multiplier=1.0,
    )
    with pytest.raises(ConfigurationError):
        resolve_strategy(None, ov)


def test_logs_completion_event(default_config, caplog: pytest.LogCaptureFixture):
    logger = logging.getLogger("test.backtest")
    csv = bars_to_csv(closes_to_bars(wave_closes()))
    with caplog.at_level(logging.INFO, logger="test.backtest"):
        run_backtest(_request(csv), strategy=default_config.strategy, logger=logger)
    events = [r.getMessage() for r in caplog.records]
    assert "backtest_started" in events
    assert "backtest_completed" in events


def test_logs_failure_event(caplog: pytest.LogCaptureFixture):
    logger = logging.getLogger("test.backtest.fail")
    with caplog.at_level(logging.WARNING, logger="test.backtest.fail"):
        run_backtest(_request("x\n1\n", overrides=FULL_OVERRIDES, target_symbol_override="X"), logger=logger)
    failed = [r for r in caplog.records if r.getMessage() == "backtest_failed"]
    assert len(failed) == 1
    assert failed[0].error_type == "SchemaError"
