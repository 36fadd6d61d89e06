"""
Strategy dispatch and the single-day optimization pipeline.

A strategy is a plain function `(prices, battery_settings, optimizer_settings)`
returning a `StrategyPlan`. The closed `OptimizationStrategy` enum maps names
to those functions: the DP optimizer, the greedy heuristic and the rule-based
threshold, spread and peakshave strategies. `run_optimization` wires the whole
day together:

    validate -> clean -> optimize -> execute (minimum run filter) -> metrics
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from .dp_battery_algorithm import solve_dp
from .heuristic_algorithm import optimize_heuristic
from .metrics import calculate_metrics
from .models import CalibrationResult, Decision, OptimizationResult, ReservationPrices
from .price_cleaning import clean_prices, validate_price_series
from .rule_strategies import optimize_peakshave, optimize_spread, optimize_threshold
from .schedule_executor import execute_schedule
from .settings import BatterySettings, OptimizerSettings, PriceSettings

logger = logging.getLogger(__name__)

__all__ = [
    "OptimizationStrategy",
    "StrategyPlan",
    "optimize",
    "run_optimization",
]


class OptimizationStrategy(Enum):
    """Available optimizers."""

    DP = "dp"
    HEURISTIC = "heuristic"
    THRESHOLD = "threshold"
    SPREAD = "spread"
    PEAKSHAVE = "peakshave"


@dataclass(frozen=True)
class StrategyPlan:
    """Decisions from one strategy plus any optimizer diagnostics."""

    decisions: list[Decision]
    throughput_cost: float = 0.0
    calibration: CalibrationResult | None = None
    reservation_prices: ReservationPrices | None = None


def _plan_dp(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
) -> StrategyPlan:
    solution = solve_dp(prices, battery_settings, optimizer_settings)
    return StrategyPlan(
        decisions=solution.decisions,
        throughput_cost=solution.throughput_cost,
        calibration=solution.calibration,
        reservation_prices=solution.reservation_prices,
    )


def _plan_heuristic(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
) -> StrategyPlan:
    return StrategyPlan(decisions=optimize_heuristic(prices, battery_settings))


def _plan_threshold(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
) -> StrategyPlan:
    return StrategyPlan(
        decisions=optimize_threshold(prices, battery_settings, optimizer_settings)
    )


def _plan_spread(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
) -> StrategyPlan:
    return StrategyPlan(
        decisions=optimize_spread(prices, battery_settings, optimizer_settings)
    )


def _plan_peakshave(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
) -> StrategyPlan:
    return StrategyPlan(
        decisions=optimize_peakshave(prices, battery_settings, optimizer_settings)
    )


_STRATEGIES: dict[
    OptimizationStrategy,
    Callable[[Sequence[float], BatterySettings, OptimizerSettings], StrategyPlan],
] = {
    OptimizationStrategy.DP: _plan_dp,
    OptimizationStrategy.HEURISTIC: _plan_heuristic,
    OptimizationStrategy.THRESHOLD: _plan_threshold,
    OptimizationStrategy.SPREAD: _plan_spread,
    OptimizationStrategy.PEAKSHAVE: _plan_peakshave,
}


def optimize(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    strategy: OptimizationStrategy | str = OptimizationStrategy.DP,
    optimizer_settings: OptimizerSettings | None = None,
) -> list[Decision]:
    """Run one strategy on cleaned prices and return its raw decisions."""
    return _plan(prices, battery_settings, strategy, optimizer_settings).decisions


def _plan(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    strategy: OptimizationStrategy | str,
    optimizer_settings: OptimizerSettings | None,
) -> StrategyPlan:
    strategy = OptimizationStrategy(strategy)
    if optimizer_settings is None:
        optimizer_settings = OptimizerSettings()
    return _STRATEGIES[strategy](prices, battery_settings, optimizer_settings)


def run_optimization(
    raw_prices: Sequence[float | None],
    battery_settings: BatterySettings,
    strategy: OptimizationStrategy | str = OptimizationStrategy.DP,
    price_settings: PriceSettings | None = None,
    optimizer_settings: OptimizerSettings | None = None,
) -> OptimizationResult:
    """Optimize and execute one trading day.

    Args:
        raw_prices: Day prices in $/MWh, possibly with gaps
        battery_settings: Battery limits, efficiencies and cycle target
        strategy: Optimizer to use
        price_settings: Cleaning mode and thresholds
        optimizer_settings: DP tuning and minimum run length

    Returns:
        OptimizationResult built from the executed schedule

    Raises:
        ConfigError: If the battery settings are invalid
        InsufficientDataError: If fewer than 2 prices are given
        InvariantViolation: If execution breaches a battery bound
    """
    strategy = OptimizationStrategy(strategy)
    if price_settings is None:
        price_settings = PriceSettings()
    if optimizer_settings is None:
        optimizer_settings = OptimizerSettings()

    battery_settings.validate()
    validate_price_series(raw_prices)
    prices = clean_prices(raw_prices, price_settings.cleaning_mode, price_settings)

    plan = _plan(prices, battery_settings, strategy, optimizer_settings)
    execution = execute_schedule(
        prices,
        plan.decisions,
        battery_settings,
        min_run_intervals=optimizer_settings.min_run_intervals,
    )
    metrics = calculate_metrics(execution.operations, battery_settings)

    logger.info(
        f"{strategy.value} run: revenue=${metrics.revenue:,.2f}, "
        f"cycles={metrics.cycles:.2f}, spread={metrics.realized_spread:.2f} $/MWh"
    )

    return OptimizationResult(
        strategy=strategy.value,
        metrics=metrics,
        operations=execution.operations,
        soc_history=execution.soc_history,
        throughput_cost=plan.throughput_cost,
        calibration=plan.calibration,
        reservation_prices=plan.reservation_prices,
        prices=prices,
    )
