"""Tests for the backtest summary aggregation."""

import pytest

from core.arbitrage.backtest import DayResult, _max_drawdown, summarize_backtest
from core.arbitrage.strategies import run_optimization


def test_max_drawdown_of_cumulative_revenue():
    # Cumulative: 100, 50, 80, -20, 30; peak 100, trough -20
    assert _max_drawdown([100.0, -50.0, 30.0, -100.0, 50.0]) == pytest.approx(120.0)
    assert _max_drawdown([10.0, 20.0, 30.0]) == 0.0
    assert _max_drawdown([]) == 0.0


def test_max_drawdown_counts_losses_from_the_start():
    assert _max_drawdown([-40.0, 10.0]) == pytest.approx(40.0)


def test_summary_without_successful_days(battery_settings):
    days = [DayResult(date="2025-01-01", status="failed", error="boom")]
    summary = summarize_backtest("dp", days, battery_settings)

    assert summary.total_revenue == 0.0
    assert summary.best_day is None
    assert len(summary.failed_days) == 1
    assert summary.perfect_hindsight_capture is None


def test_summary_aggregates_days(battery_settings, trough_peak_prices, flat_prices):
    busy = run_optimization(trough_peak_prices, battery_settings, "heuristic")
    quiet = run_optimization(flat_prices, battery_settings, "heuristic")
    days = [
        DayResult("2025-01-01", "ok", busy, benchmark_revenue=busy.total_revenue * 2),
        DayResult("2025-01-02", "ok", quiet, benchmark_revenue=0.0),
        DayResult("2025-01-03", "failed", error="no data"),
    ]

    summary = summarize_backtest("heuristic", days, battery_settings)

    assert summary.total_revenue == pytest.approx(busy.total_revenue)
    assert summary.daily_avg_revenue == pytest.approx(busy.total_revenue / 2)
    assert summary.annualized_revenue == pytest.approx(summary.daily_avg_revenue * 365)
    assert summary.total_cycles == pytest.approx(busy.cycles)
    assert summary.capacity_utilization == pytest.approx(busy.cycles / (2 * 2.0) * 100)
    assert summary.best_day == ("2025-01-01", pytest.approx(busy.total_revenue))
    assert summary.worst_day[0] == "2025-01-02"
    assert summary.perfect_hindsight_capture == pytest.approx(50.0)
    assert summary.revenue_vs_benchmark == pytest.approx(-50.0)
    assert summary.implementation_shortfall == pytest.approx(busy.total_revenue)
    assert summary.avg_charge_price == pytest.approx(busy.avg_charge_price)
    assert 0 < summary.win_rate < 100
    assert [day.date for day in summary.successful_days] == ["2025-01-01", "2025-01-02"]


def test_summary_without_benchmark(battery_settings, trough_peak_prices):
    result = run_optimization(trough_peak_prices, battery_settings, "heuristic")
    summary = summarize_backtest(
        "heuristic", [DayResult("2025-01-01", "ok", result)], battery_settings
    )

    assert summary.benchmark_revenue is None
    assert summary.perfect_hindsight_capture is None
    # Single day has no spread of outcomes
    assert summary.daily_volatility == 0.0
    assert summary.sharpe_ratio == pytest.approx(result.total_revenue)
