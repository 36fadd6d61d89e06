"""Tests for the threshold, spread and peakshave strategies."""

import pytest

from core.arbitrage.metrics import realized_cycles
from core.arbitrage.models import Action
from core.arbitrage.rule_strategies import (
    BUY,
    HOLD,
    SELL,
    follow_signals,
    optimize_peakshave,
    optimize_spread,
    optimize_threshold,
    peakshave_signals,
    spread_signals,
    threshold_signals,
    trailing_bands,
)
from core.arbitrage.schedule_executor import execute_schedule
from core.arbitrage.settings import BatterySettings, OptimizerSettings
from core.arbitrage.strategies import run_optimization


def _indices(decisions, action):
    return [i for i, decision in enumerate(decisions) if decision.action is action]


def test_threshold_signals():
    assert threshold_signals([10.0, 30.0, 50.0, 80.0, 120.0], 30.0, 80.0) == [
        BUY,
        BUY,
        HOLD,
        SELL,
        SELL,
    ]


def test_threshold_buys_trough_and_sells_peak(battery_settings, trough_peak_prices):
    decisions = optimize_threshold(trough_peak_prices, battery_settings)

    charging = _indices(decisions, Action.CHARGE)
    discharging = _indices(decisions, Action.DISCHARGE)
    # 25 full intervals store 98.8 MWh, the 26th tops up
    assert charging == list(range(72, 98))
    assert discharging and all(216 <= i < 252 for i in discharging)

    execution = execute_schedule(trough_peak_prices, decisions, battery_settings)
    assert execution.soc_history[98] == pytest.approx(100.0)
    assert execution.soc_history[-1] == pytest.approx(0.0, abs=1e-6)
    assert {op.price for op in execution.operations if op.energy_bought_mwh > 0} == {20.0}


def test_threshold_from_optimizer_settings(battery_settings, trough_peak_prices):
    settings = OptimizerSettings(threshold_charge_price=10.0, threshold_discharge_price=90.0)

    decisions = optimize_threshold(trough_peak_prices, battery_settings, settings)

    # Nothing is cheap enough to buy, and the battery starts empty
    assert all(decision.action is Action.IDLE for decision in decisions)


def test_charge_budget_caps_cycles(trough_peak_prices):
    settings = BatterySettings(max_cycles=0.5)
    decisions = optimize_threshold(trough_peak_prices, settings)

    execution = execute_schedule(
        trough_peak_prices, decisions, settings, min_run_intervals=0
    )
    stored = sum(op.energy_stored_mwh for op in execution.operations)

    assert stored == pytest.approx(50.0)
    assert realized_cycles(execution.operations, settings.capacity_mwh) <= 0.5 + 1e-9
    # The budget-limited interval is throttled below rated power
    charges = [d for d in decisions if d.action is Action.CHARGE]
    assert charges[-1].power_mw < settings.power_mw


def test_zero_cycle_budget_never_charges(trough_peak_prices):
    settings = BatterySettings(max_cycles=0.0)
    decisions = optimize_threshold(trough_peak_prices, settings)
    assert not _indices(decisions, Action.CHARGE)


def test_follow_signals_ignores_impossible_actions(battery_settings):
    prices = [10.0, 10.0, 100.0]
    # Sell while empty is dropped
    decisions = follow_signals(prices, [SELL, BUY, SELL], battery_settings)

    assert [d.action for d in decisions] == [Action.IDLE, Action.CHARGE, Action.DISCHARGE]

    full = BatterySettings(initial_soc_mwh=100.0)
    decisions = follow_signals(prices, [BUY, BUY, HOLD], full)
    assert all(d.action is Action.IDLE for d in decisions)


def test_trailing_bands_include_current_price():
    means, stds = trailing_bands([1.0, 2.0, 3.0, 4.0], 2)

    assert means.tolist() == pytest.approx([1.0, 1.5, 2.0, 3.0])
    assert stds[0] == 0.0
    assert stds[1] == pytest.approx(0.5)


def test_spread_signals_flag_dips_and_spikes():
    prices = [50.0] * 30 + [10.0] + [50.0] * 5 + [120.0] + [50.0] * 5

    signals = spread_signals(prices, 24, 1.5)

    expected = [HOLD] * len(prices)
    expected[30] = BUY
    expected[36] = SELL
    assert signals == expected


def test_spread_holds_on_flat_prices(battery_settings, flat_prices):
    decisions = optimize_spread(flat_prices, battery_settings)
    assert all(d.action is Action.IDLE for d in decisions)


def test_peakshave_signals_follow_the_clock():
    prices = [40.0] * 144 + [60.0] * 144

    signals = peakshave_signals(prices, (7, 9), (17, 21), 50.0, 5)

    assert signals[0] == BUY
    assert signals[83] == BUY
    assert signals[84] == SELL  # 07:00
    assert signals[107] == SELL
    assert signals[108] == BUY  # 09:00
    assert signals[150] == HOLD  # off-peak but too expensive
    assert signals[204] == SELL  # 17:00
    assert signals[251] == SELL
    assert signals[252] == HOLD


def test_peakshave_discharges_from_morning_peak(flat_prices):
    settings = BatterySettings(initial_soc_mwh=50.0)

    decisions = optimize_peakshave(flat_prices, settings)

    # 50 MWh at 50 MW is 12 five-minute intervals
    assert _indices(decisions, Action.DISCHARGE) == list(range(84, 96))
    assert not _indices(decisions, Action.CHARGE)


def test_peakshave_hours_from_settings(flat_prices):
    settings = BatterySettings(initial_soc_mwh=50.0)
    optimizer_settings = OptimizerSettings(
        morning_peak_hours=(0, 0), evening_peak_hours=[12, 13]
    )

    decisions = optimize_peakshave(flat_prices, settings, optimizer_settings)

    assert _indices(decisions, Action.DISCHARGE)[0] == 144


@pytest.mark.parametrize("strategy", ["threshold", "spread", "peakshave"])
def test_rule_strategy_pipeline(strategy, battery_settings, trough_peak_prices):
    result = run_optimization(trough_peak_prices, battery_settings, strategy)

    assert result.strategy == strategy
    assert result.calibration is None
    assert result.cycles <= battery_settings.max_cycles + 1e-9
    assert all(0.0 <= soc <= battery_settings.capacity_mwh for soc in result.soc_history)
