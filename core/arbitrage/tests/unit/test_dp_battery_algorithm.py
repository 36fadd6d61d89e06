"""
Tests for the DP battery optimizer: value grid, replay, reservation prices and
throughput cost calibration.
"""

import math
import time

import pytest

from core.arbitrage.dp_battery_algorithm import (
    _smooth,
    calibrate_throughput_cost,
    optimize_battery_schedule,
    optimize_dp_decisions,
    solve_dp,
)
from core.arbitrage.exceptions import ConfigError, InsufficientDataError, PriceDataError
from core.arbitrage.models import Action, OptimizationResult
from core.arbitrage.settings import BatterySettings, OptimizerSettings


def test_solution_structure(battery_settings, trough_peak_prices):
    solution = solve_dp(trough_peak_prices, battery_settings)

    assert len(solution.decisions) == 288
    assert len(solution.operations) == 288
    assert len(solution.soc_history) == 289
    assert solution.reservation_prices is not None
    assert len(solution.reservation_prices.charge) == 288
    assert len(solution.reservation_prices.discharge) == 288


def test_buys_low_and_sells_high(battery_settings, trough_peak_prices):
    solution = solve_dp(trough_peak_prices, battery_settings)

    charge_prices = {op.price for op in solution.operations if op.energy_bought_mwh > 0}
    discharge_prices = {op.price for op in solution.operations if op.energy_sold_mwh > 0}
    assert charge_prices == {20.0}
    assert discharge_prices == {100.0}
    assert sum(op.revenue for op in solution.operations) > 0


def test_flat_prices_stay_idle(battery_settings, flat_prices):
    solution = solve_dp(flat_prices, battery_settings, throughput_cost=0.0)

    assert all(d.action is Action.IDLE for d in solution.decisions)
    assert solution.cycles == 0.0


def test_initial_soc_is_snapped_to_grid(trough_peak_prices):
    settings = BatterySettings(initial_soc_mwh=50.2)
    solution = solve_dp(trough_peak_prices, settings, throughput_cost=0.0)
    assert solution.soc_history[0] == pytest.approx(50.0)


def test_fixed_throughput_cost_skips_calibration(battery_settings, trough_peak_prices):
    solution = solve_dp(trough_peak_prices, battery_settings, throughput_cost=7.5)

    assert solution.calibration is None
    assert solution.throughput_cost == 7.5


def test_uncalibrated_when_cycle_limit_not_binding(battery_settings, trough_peak_prices):
    calibration, best = calibrate_throughput_cost(trough_peak_prices, battery_settings)

    assert calibration.throughput_cost == 0.0
    assert calibration.iterations == 0
    assert calibration.converged
    assert best.cycles <= battery_settings.max_cycles


def test_calibration_keeps_cycles_within_limit(trough_peak_prices):
    settings = BatterySettings(max_cycles=0.5)
    solution = solve_dp(trough_peak_prices, settings)

    assert solution.calibration is not None
    assert solution.calibration.converged
    assert solution.throughput_cost > 0
    assert solution.cycles <= 0.5 + 1e-9


def test_calibration_flags_exhausted_iteration_budget(trough_peak_prices):
    settings = BatterySettings(max_cycles=0.3)
    optimizer_settings = OptimizerSettings(calibration_max_iterations=1)

    result = optimize_battery_schedule(trough_peak_prices, settings, optimizer_settings)

    assert isinstance(result, OptimizationResult)
    assert not result.converged
    assert result.calibration.iterations == 1
    # Still a usable, feasible schedule
    assert result.cycles <= 0.3 + 1e-9


def test_reservation_prices_bracket_trades(battery_settings, trough_peak_prices):
    solution = solve_dp(trough_peak_prices, battery_settings, throughput_cost=0.0)
    charge = solution.reservation_prices.charge
    discharge = solution.reservation_prices.discharge

    # Empty at the start of the day, so discharging is infeasible
    assert math.isnan(discharge[0])
    assert not math.isnan(charge[0])
    # Full after the trough, so charging is infeasible
    full_index = next(i for i, soc in enumerate(solution.soc_history) if soc >= 100.0 - 1e-6)
    assert math.isnan(charge[full_index])


def test_reservation_smoothing_is_centered_window_mean():
    smoothed = _smooth([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], 5)

    # Windows shrink at the edges of the day
    assert smoothed == pytest.approx([2.0, 2.5, 3.0, 4.0, 4.5, 5.0])


def test_reservation_smoothing_skips_nan_neighbours():
    smoothed = _smooth([10.0, math.nan, 20.0, 30.0, math.nan, 40.0], 5)

    assert math.isnan(smoothed[1])
    assert math.isnan(smoothed[4])
    assert smoothed[0] == pytest.approx(15.0)
    assert smoothed[2] == pytest.approx(20.0)
    assert smoothed[3] == pytest.approx(30.0)
    assert smoothed[5] == pytest.approx(35.0)


def test_full_day_with_binding_cycle_limit_solves_quickly(two_peak_prices):
    settings = BatterySettings(max_cycles=1.0)

    start = time.perf_counter()
    solution = solve_dp(two_peak_prices, settings)
    elapsed = time.perf_counter() - start

    assert solution.calibration.iterations > 0
    assert solution.cycles <= 1.0 + 1e-9
    assert elapsed < 2.0


def test_terminal_anchor_returns_to_target(trough_peak_prices):
    settings = BatterySettings(initial_soc_mwh=50.0)
    optimizer_settings = OptimizerSettings(terminal_soc_mwh=50.0)

    solution = solve_dp(
        trough_peak_prices, settings, optimizer_settings, throughput_cost=5.0
    )
    assert abs(solution.soc_history[-1] - 50.0) <= 5.0


def test_without_anchor_battery_sells_out(trough_peak_prices):
    settings = BatterySettings(initial_soc_mwh=50.0)
    solution = solve_dp(trough_peak_prices, settings, throughput_cost=0.0)
    # Salvage value is far below the evening price
    assert solution.soc_history[-1] < 5.0


def test_optimize_dp_decisions(battery_settings, trough_peak_prices):
    decisions = optimize_dp_decisions(trough_peak_prices, battery_settings)
    assert len(decisions) == len(trough_peak_prices)
    assert any(d.action is Action.CHARGE for d in decisions)


def test_rejects_short_series(battery_settings):
    with pytest.raises(InsufficientDataError):
        solve_dp([50.0], battery_settings)


def test_rejects_non_finite_prices(battery_settings):
    with pytest.raises(PriceDataError):
        solve_dp([50.0, float("nan"), 60.0], battery_settings)


def test_rejects_invalid_settings_before_optimizing(trough_peak_prices):
    settings = BatterySettings()
    settings.capacity_mwh = -1.0
    with pytest.raises(ConfigError):
        solve_dp(trough_peak_prices, settings)


def test_rejects_unreachable_terminal_target(battery_settings, trough_peak_prices):
    with pytest.raises(ConfigError):
        solve_dp(
            trough_peak_prices,
            battery_settings,
            OptimizerSettings(terminal_soc_mwh=500.0),
        )
