"""
Multi-day backtest driver.

Runs one independent optimization per trading day on a thread pool. A day
that raises, or does not finish within the per-run timeout, is recorded as
failed and the remaining days carry on. Each day can also be solved with the
DP strategy as a perfect-hindsight benchmark, so the summary can report how
much of the achievable revenue a strategy captured.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field

import numpy as np

from .models import OptimizationResult
from .settings import BatterySettings, OptimizerSettings, PriceSettings
from .strategies import OptimizationStrategy, run_optimization

logger = logging.getLogger(__name__)

__all__ = [
    "BacktestSummary",
    "DayResult",
    "run_backtest",
    "summarize_backtest",
]

DAYS_PER_YEAR = 365
DEFAULT_MAX_WORKERS = 4
DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class DayResult:
    """Outcome of one trading day in a backtest."""

    date: str
    status: str  # "ok" or "failed"
    result: OptimizationResult | None = None
    benchmark_revenue: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def revenue(self) -> float:
        return self.result.total_revenue if self.result else 0.0

    @property
    def cycles(self) -> float:
        return self.result.cycles if self.result else 0.0


@dataclass(frozen=True)
class BacktestSummary:
    """Aggregate performance over the successful days of a backtest."""

    strategy: str
    days: list[DayResult] = field(default_factory=list)

    # Financial
    total_revenue: float = 0.0
    daily_avg_revenue: float = 0.0
    annualized_revenue: float = 0.0

    # Operational
    total_cycles: float = 0.0
    daily_avg_cycles: float = 0.0
    capacity_utilization: float = 0.0  # percent of max_cycles per day

    # Risk
    max_drawdown: float = 0.0  # $ below the running peak of cumulative revenue
    sharpe_ratio: float = 0.0
    win_rate: float = 0.0  # percent of intervals with positive cash flow
    daily_volatility: float = 0.0
    best_day: tuple[str, float] | None = None
    worst_day: tuple[str, float] | None = None

    # Spread
    avg_charge_price: float = 0.0
    avg_discharge_price: float = 0.0
    realized_spread: float = 0.0

    # Benchmark
    benchmark_revenue: float | None = None
    revenue_vs_benchmark: float | None = None  # percent
    perfect_hindsight_capture: float | None = None  # percent
    implementation_shortfall: float | None = None  # $

    @property
    def successful_days(self) -> list[DayResult]:
        return [day for day in self.days if day.ok]

    @property
    def failed_days(self) -> list[DayResult]:
        return [day for day in self.days if not day.ok]


def _max_drawdown(daily_revenues: Sequence[float]) -> float:
    """Largest drop of cumulative revenue below its running peak."""
    if not daily_revenues:
        return 0.0
    cumulative = np.concatenate(([0.0], np.cumsum(daily_revenues)))
    running_peak = np.maximum.accumulate(cumulative)
    return float(np.max(running_peak - cumulative))


def summarize_backtest(
    strategy: str,
    days: Sequence[DayResult],
    battery_settings: BatterySettings,
) -> BacktestSummary:
    """Aggregate day results into portfolio-level performance metrics."""
    ok_days = [day for day in days if day.ok]
    if not ok_days:
        return BacktestSummary(strategy=strategy, days=list(days))

    n_days = len(ok_days)
    revenues = np.array([day.revenue for day in ok_days])
    total_revenue = float(revenues.sum())
    daily_avg = total_revenue / n_days
    volatility = float(np.std(revenues))
    total_cycles = sum(day.cycles for day in ok_days)

    if battery_settings.max_cycles > 0:
        utilization = total_cycles / (n_days * battery_settings.max_cycles) * 100
    else:
        utilization = 0.0

    operations = [op for day in ok_days for op in day.result.operations]
    winning = sum(1 for op in operations if op.revenue > 0)
    win_rate = winning / len(operations) * 100 if operations else 0.0

    bought = sum(day.result.metrics.energy_charged_mwh for day in ok_days)
    sold = sum(day.result.metrics.energy_discharged_mwh for day in ok_days)
    avg_charge = (
        sum(op.price * op.energy_bought_mwh for op in operations) / bought
        if bought > 0
        else 0.0
    )
    avg_discharge = (
        sum(op.price * op.energy_sold_mwh for op in operations) / sold
        if sold > 0
        else 0.0
    )

    best = max(ok_days, key=lambda day: day.revenue)
    worst = min(ok_days, key=lambda day: day.revenue)

    benchmark_revenue = revenue_vs_benchmark = capture = shortfall = None
    if all(day.benchmark_revenue is not None for day in ok_days):
        benchmark_revenue = sum(day.benchmark_revenue for day in ok_days)
        shortfall = benchmark_revenue - total_revenue
        if benchmark_revenue > 0:
            capture = total_revenue / benchmark_revenue * 100
            revenue_vs_benchmark = capture - 100

    return BacktestSummary(
        strategy=strategy,
        days=list(days),
        total_revenue=total_revenue,
        daily_avg_revenue=daily_avg,
        annualized_revenue=daily_avg * DAYS_PER_YEAR,
        total_cycles=total_cycles,
        daily_avg_cycles=total_cycles / n_days,
        capacity_utilization=utilization,
        max_drawdown=_max_drawdown(revenues.tolist()),
        # Risk-free rate taken as zero
        sharpe_ratio=daily_avg / (volatility or 1.0),
        win_rate=win_rate,
        daily_volatility=volatility,
        best_day=(best.date, best.revenue),
        worst_day=(worst.date, worst.revenue),
        avg_charge_price=avg_charge,
        avg_discharge_price=avg_discharge,
        realized_spread=avg_discharge * math.sqrt(battery_settings.round_trip_efficiency)
        - avg_charge,
        benchmark_revenue=benchmark_revenue,
        revenue_vs_benchmark=revenue_vs_benchmark,
        perfect_hindsight_capture=capture,
        implementation_shortfall=shortfall,
    )


def _run_day(
    prices: Sequence[float | None],
    battery_settings: BatterySettings,
    strategy: OptimizationStrategy,
    price_settings: PriceSettings | None,
    optimizer_settings: OptimizerSettings | None,
    benchmark: bool,
) -> tuple[OptimizationResult, float | None]:
    result = run_optimization(
        prices, battery_settings, strategy, price_settings, optimizer_settings
    )
    if not benchmark:
        return result, None
    if strategy is OptimizationStrategy.DP:
        return result, result.total_revenue
    reference = run_optimization(
        prices,
        battery_settings,
        OptimizationStrategy.DP,
        price_settings,
        optimizer_settings,
    )
    return result, reference.total_revenue


def run_backtest(
    price_days: Mapping[str, Sequence[float | None]],
    battery_settings: BatterySettings,
    strategy: OptimizationStrategy | str = OptimizationStrategy.DP,
    price_settings: PriceSettings | None = None,
    optimizer_settings: OptimizerSettings | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS,
    benchmark: bool = True,
) -> BacktestSummary:
    """Backtest a strategy over several independent trading days.

    A day that times out is recorded as failed, but its worker thread cannot
    be interrupted: it keeps running, and logging, after this returns. The
    pool is shut down without waiting for it, so callers that tear down
    logging sinks right away should expect late records from such days.

    Args:
        price_days: Raw day prices keyed by date label
        battery_settings: Shared, read-only battery settings
        strategy: Optimizer under test
        price_settings: Cleaning mode and thresholds
        optimizer_settings: DP tuning and minimum run length
        max_workers: Worker threads
        timeout_seconds: Wait limit per day result; None waits indefinitely
        benchmark: Also solve each day with DP as the perfect-hindsight reference

    Returns:
        BacktestSummary with one DayResult per input day, in date order
    """
    strategy = OptimizationStrategy(strategy)
    logger.info(
        f"Starting {strategy.value} backtest over {len(price_days)} days "
        f"with {max_workers} workers"
    )

    days: list[DayResult] = []
    executor = ThreadPoolExecutor(max_workers=max_workers)
    try:
        future_to_date = {
            executor.submit(
                _run_day,
                prices,
                battery_settings,
                strategy,
                price_settings,
                optimizer_settings,
                benchmark,
            ): date
            for date, prices in sorted(price_days.items())
        }
        for future, date in future_to_date.items():
            try:
                result, benchmark_revenue = future.result(timeout=timeout_seconds)
            except FutureTimeoutError:
                future.cancel()
                logger.error(f"Day {date} timed out after {timeout_seconds}s")
                days.append(
                    DayResult(
                        date=date,
                        status="failed",
                        error=f"Timed out after {timeout_seconds}s",
                    )
                )
            except Exception as e:
                logger.error(f"Day {date} failed: {e}")
                days.append(DayResult(date=date, status="failed", error=str(e)))
            else:
                days.append(
                    DayResult(
                        date=date,
                        status="ok",
                        result=result,
                        benchmark_revenue=benchmark_revenue,
                    )
                )
    finally:
        # Timed-out runs cannot be interrupted; do not block on them
        executor.shutdown(wait=False, cancel_futures=True)

    summary = summarize_backtest(strategy.value, days, battery_settings)
    logger.info(
        f"Backtest complete: {len(summary.successful_days)} ok, "
        f"{len(summary.failed_days)} failed, total revenue ${summary.total_revenue:,.2f}"
    )
    return summary
