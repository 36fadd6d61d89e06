"""
Dynamic Programming Algorithm for battery energy arbitrage against spot prices.

This module finds the revenue-maximizing charge/discharge schedule for one
trading day with perfect price foresight, using backward induction over a
discretized state of charge (SoC) grid.

ALGORITHM OVERVIEW:
The SoC range [0, capacity] is split into evenly spaced levels (201 by default).
Walking backwards from the end of the day, every level evaluates three
candidate actions for the interval:

- CHARGE: draw grid energy e = min(power x dt, headroom / eta_charge), store
  e x eta_charge, pay price x e
- DISCHARGE: draw stored energy e = min(power x dt, SoC), sell e x eta_discharge
  at the interval price
- IDLE: keep the SoC

Each candidate also pays the throughput cost per MWh moved (grid energy for
charging, stored energy for discharging) and inherits the value of the SoC it
lands on, linearly interpolated between the two nearest grid levels. The best
candidate is stored in a policy table; ties go to IDLE.

TERMINAL VALUE:
Energy left at the end of the day is valued at a salvage rate (10% of the mean
price by default) so the schedule does not dump all energy before the close.
An optional terminal SoC anchor adds a steep linear penalty for ending away
from a target SoC.

FORWARD REPLAY:
Starting from the initial SoC snapped to the nearest grid level, each interval
looks up the policy at the grid level nearest the actual SoC and executes it
with the schedule executor's physics, so the replayed trace never drifts from
what the executor would produce.

RESERVATION PRICES:
Along the replayed trajectory, the price at which charging (or discharging)
becomes as valuable as idling is recorded and smoothed with a centered moving
average. These are diagnostics only.

CYCLE CALIBRATION:
Realized cycles fall as the throughput cost rises. When the unpenalized
schedule exceeds max_cycles, a bounded bisection searches for the smallest
throughput cost that keeps cycles within the limit. An exhausted iteration
budget returns the best feasible candidate flagged as non-converged.
"""

__all__ = [
    "DPSolution",
    "calibrate_throughput_cost",
    "optimize_battery_schedule",
    "optimize_dp_decisions",
    "solve_dp",
]


import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .exceptions import ConfigError, PriceDataError
from .metrics import calculate_metrics, realized_cycles
from .models import (
    Action,
    CalibrationResult,
    Decision,
    OptimizationResult,
    Operation,
    ReservationPrices,
)
from .price_cleaning import validate_price_series
from .schedule_executor import step
from .settings import BatterySettings, OptimizerSettings

logger = logging.getLogger(__name__)

# Policy codes, in tie-breaking order
IDLE, CHARGE, DISCHARGE = 0, 1, 2

# Below this an action moves no meaningful energy
MIN_ENERGY_MWH = 1e-9
CYCLE_EPSILON = 1e-9


@dataclass(frozen=True)
class DPSolution:
    """Replayed DP schedule with its diagnostics."""

    decisions: list[Decision]
    operations: list[Operation]
    soc_history: list[float]
    throughput_cost: float
    cycles: float
    reservation_prices: ReservationPrices | None = None
    calibration: CalibrationResult | None = None


def _soc_grid(battery_settings: BatterySettings, soc_levels: int) -> np.ndarray:
    return np.linspace(0.0, battery_settings.capacity_mwh, soc_levels)


def _salvage_rate(prices: np.ndarray, optimizer_settings: OptimizerSettings) -> float:
    return optimizer_settings.salvage_fraction * float(np.mean(prices))


def _terminal_values(
    levels: np.ndarray,
    prices: np.ndarray,
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
) -> np.ndarray:
    """Value of each SoC level after the last interval."""
    salvage_rate = _salvage_rate(prices, optimizer_settings)
    values = levels * salvage_rate

    target = optimizer_settings.terminal_soc_mwh
    if target is not None:
        # Steeper than any per-MWh gain available from moving energy
        penalty = (2 * float(np.max(np.abs(prices))) + abs(salvage_rate) + 1) / (
            battery_settings.round_trip_efficiency
        )
        values = values - penalty * np.abs(levels - target)

    return values


def _backward_induction(
    prices: np.ndarray,
    levels: np.ndarray,
    terminal: np.ndarray,
    battery_settings: BatterySettings,
    throughput_cost: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Fill the value grid V[t, level] and the policy table policy[t, level]."""
    horizon = len(prices)
    n_levels = len(levels)
    capacity = battery_settings.capacity_mwh
    max_energy = battery_settings.energy_per_interval_mwh
    eta_c = battery_settings.efficiency_charge
    eta_d = battery_settings.efficiency_discharge

    V = np.empty((horizon + 1, n_levels))
    policy = np.zeros((horizon, n_levels), dtype=np.int8)
    V[horizon] = terminal

    # Candidate energies and landing levels do not depend on time
    charge_grid = np.minimum(max_energy, np.maximum(capacity - levels, 0.0) / eta_c)
    charge_landing = np.minimum(capacity, levels + charge_grid * eta_c)
    discharge_drawn = np.minimum(max_energy, levels)
    discharge_landing = levels - discharge_drawn

    candidates = np.empty((3, n_levels))
    for t in range(horizon - 1, -1, -1):
        price = prices[t]
        v_next = V[t + 1]

        candidates[IDLE] = v_next
        candidates[CHARGE] = -(price + throughput_cost) * charge_grid + np.interp(
            charge_landing, levels, v_next
        )
        candidates[DISCHARGE] = (
            price * eta_d - throughput_cost
        ) * discharge_drawn + np.interp(discharge_landing, levels, v_next)

        best = candidates.argmax(axis=0)
        policy[t] = best
        V[t] = candidates.max(axis=0)

    return V, policy


def _reservation_thresholds(
    soc: float,
    v_next: np.ndarray,
    levels: np.ndarray,
    battery_settings: BatterySettings,
    throughput_cost: float,
) -> tuple[float, float]:
    """Prices at which charging/discharging from soc match idling."""
    max_energy = battery_settings.energy_per_interval_mwh
    eta_c = battery_settings.efficiency_charge
    eta_d = battery_settings.efficiency_discharge
    value_here = float(np.interp(soc, levels, v_next))

    charge_threshold = math.nan
    grid = min(max_energy, max(0.0, battery_settings.capacity_mwh - soc) / eta_c)
    if grid > MIN_ENERGY_MWH:
        value_up = float(np.interp(soc + grid * eta_c, levels, v_next))
        charge_threshold = (value_up - value_here) / grid - throughput_cost

    discharge_threshold = math.nan
    drawn = min(max_energy, soc)
    if drawn > MIN_ENERGY_MWH:
        value_down = float(np.interp(soc - drawn, levels, v_next))
        discharge_threshold = (value_here - value_down + throughput_cost * drawn) / (
            drawn * eta_d
        )

    return charge_threshold, discharge_threshold


def _smooth(series: Sequence[float], window: int) -> list[float]:
    """Centered moving average ignoring NaN; NaN entries stay NaN."""
    values = np.asarray(series, dtype=float)
    half = window // 2
    smoothed = np.full(len(values), np.nan)
    for i in range(len(values)):
        if np.isnan(values[i]):
            continue
        chunk = values[max(0, i - half) : i + half + 1]
        smoothed[i] = chunk[~np.isnan(chunk)].mean()
    return smoothed.tolist()


_DECISION_FOR_CODE = {
    IDLE: lambda power: Decision.idle(),
    CHARGE: lambda power: Decision(Action.CHARGE, power),
    DISCHARGE: lambda power: Decision(Action.DISCHARGE, power),
}


def _forward_replay(
    prices: np.ndarray,
    levels: np.ndarray,
    V: np.ndarray,
    policy: np.ndarray,
    battery_settings: BatterySettings,
    throughput_cost: float,
    with_reservation: bool,
) -> tuple[list[Decision], list[Operation], list[float], tuple[list, list] | None]:
    """Follow the policy from the snapped initial SoC using the actual SoC."""
    level_step = levels[1] - levels[0]
    last_level = len(levels) - 1

    def nearest_level(soc: float) -> int:
        return min(max(0, int(round(soc / level_step))), last_level)

    soc = float(levels[nearest_level(battery_settings.initial_soc_mwh)])
    decisions: list[Decision] = []
    operations: list[Operation] = []
    soc_history = [soc]
    charge_thresholds: list[float] = []
    discharge_thresholds: list[float] = []

    for t, price in enumerate(prices):
        if with_reservation:
            charge_at, discharge_at = _reservation_thresholds(
                soc, V[t + 1], levels, battery_settings, throughput_cost
            )
            charge_thresholds.append(charge_at)
            discharge_thresholds.append(discharge_at)

        code = int(policy[t, nearest_level(soc)])
        decision = _DECISION_FOR_CODE[code](battery_settings.power_mw)
        operation = step(t, float(price), decision, soc, battery_settings)

        decisions.append(decision)
        operations.append(operation)
        soc = operation.soc_end_mwh
        soc_history.append(soc)

    thresholds = (charge_thresholds, discharge_thresholds) if with_reservation else None
    return decisions, operations, soc_history, thresholds


def _validate_inputs(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
) -> np.ndarray:
    validate_price_series(prices)
    battery_settings.validate()
    price_array = np.asarray(prices, dtype=float)
    if not np.all(np.isfinite(price_array)):
        raise PriceDataError("Prices must be finite; clean the series before optimizing")
    terminal = optimizer_settings.terminal_soc_mwh
    if terminal is not None and not 0 <= terminal <= battery_settings.capacity_mwh:
        raise ConfigError(
            field="terminal_soc_mwh",
            message=f"Terminal SoC {terminal} MWh outside [0, {battery_settings.capacity_mwh}] MWh",
        )
    return price_array


def _solve_fixed_cost(
    prices: np.ndarray,
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings,
    throughput_cost: float,
    with_reservation: bool = False,
) -> DPSolution:
    levels = _soc_grid(battery_settings, optimizer_settings.soc_levels)
    terminal = _terminal_values(levels, prices, battery_settings, optimizer_settings)
    V, policy = _backward_induction(
        prices, levels, terminal, battery_settings, throughput_cost
    )
    decisions, operations, soc_history, thresholds = _forward_replay(
        prices, levels, V, policy, battery_settings, throughput_cost, with_reservation
    )

    reservation = None
    if thresholds is not None:
        window = optimizer_settings.reservation_smoothing_window
        reservation = ReservationPrices(
            charge=_smooth(thresholds[0], window),
            discharge=_smooth(thresholds[1], window),
        )

    return DPSolution(
        decisions=decisions,
        operations=operations,
        soc_history=soc_history,
        throughput_cost=throughput_cost,
        cycles=realized_cycles(operations, battery_settings.capacity_mwh),
        reservation_prices=reservation,
    )


def _within_target(cycles: float, target: float) -> bool:
    # Summed float energies land a hair above whole cycle counts
    return cycles <= target + CYCLE_EPSILON


def _cost_upper_bound(prices: np.ndarray, optimizer_settings: OptimizerSettings) -> float:
    """A throughput cost at which no action beats idling."""
    salvage_rate = _salvage_rate(prices, optimizer_settings)
    return 2 * float(np.max(np.abs(prices))) + abs(salvage_rate) + 1.0


def calibrate_throughput_cost(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings | None = None,
) -> tuple[CalibrationResult, DPSolution]:
    """Find the smallest throughput cost keeping cycles within max_cycles.

    Bisection over [0, upper bound] with an explicit iteration budget. Stops
    when the best feasible schedule is within the cycle tolerance of the target
    or the cost bracket has collapsed.

    Returns:
        The calibration record and the best feasible solution found
    """
    if optimizer_settings is None:
        optimizer_settings = OptimizerSettings()
    price_array = _validate_inputs(prices, battery_settings, optimizer_settings)
    target = battery_settings.max_cycles
    cycle_tolerance = optimizer_settings.calibration_cycle_tolerance
    cost_tolerance = optimizer_settings.calibration_cost_tolerance

    best = _solve_fixed_cost(price_array, battery_settings, optimizer_settings, 0.0)
    if _within_target(best.cycles, target):
        logger.debug(
            f"No throughput cost needed: {best.cycles:.3f} cycles <= {target}"
        )
        return CalibrationResult(0.0, best.cycles, target, 0, True), best

    low = 0.0
    high = _cost_upper_bound(price_array, optimizer_settings)
    best = _solve_fixed_cost(price_array, battery_settings, optimizer_settings, high)
    if not _within_target(best.cycles, target):
        logger.warning(
            f"Cycle target {target} unreachable even at throughput cost {high:.2f}: "
            f"{best.cycles:.3f} cycles"
        )
        return CalibrationResult(high, best.cycles, target, 0, False), best

    def bracket_closed() -> bool:
        return target - best.cycles <= cycle_tolerance or high - low <= cost_tolerance

    iterations = 0
    while not bracket_closed() and iterations < optimizer_settings.calibration_max_iterations:
        iterations += 1
        mid = (low + high) / 2
        candidate = _solve_fixed_cost(
            price_array, battery_settings, optimizer_settings, mid
        )
        if _within_target(candidate.cycles, target):
            high, best = mid, candidate
        else:
            low = mid
        logger.debug(
            f"Calibration iteration {iterations}: cost={mid:.4f}, "
            f"cycles={candidate.cycles:.3f}, bracket=[{low:.4f}, {high:.4f}]"
        )

    converged = bracket_closed()
    if not converged:
        logger.warning(
            f"Throughput cost calibration did not converge after {iterations} "
            f"iterations; using cost {high:.4f} with {best.cycles:.3f} cycles"
        )

    return (
        CalibrationResult(
            throughput_cost=high,
            cycles=best.cycles,
            target_cycles=target,
            iterations=iterations,
            converged=converged,
        ),
        best,
    )


def solve_dp(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings | None = None,
    throughput_cost: float | None = None,
) -> DPSolution:
    """Solve the DP for a cleaned price series.

    Args:
        prices: Cleaned prices ($/MWh)
        battery_settings: Battery limits, efficiencies and cycle target
        optimizer_settings: Grid size, terminal value and calibration tuning
        throughput_cost: Fixed $/MWh throughput cost; None calibrates it
            against battery_settings.max_cycles

    Returns:
        DPSolution with the replayed schedule, reservation prices and, when
        calibrated, the calibration record
    """
    if optimizer_settings is None:
        optimizer_settings = OptimizerSettings()
    price_array = _validate_inputs(prices, battery_settings, optimizer_settings)

    logger.info(
        f"Starting DP optimization: horizon={len(price_array)}, "
        f"levels={optimizer_settings.soc_levels}, "
        f"initial_soc={battery_settings.initial_soc_mwh:.1f} MWh, "
        f"max_cycles={battery_settings.max_cycles}"
    )

    calibration = None
    if throughput_cost is None:
        calibration, _ = calibrate_throughput_cost(
            price_array, battery_settings, optimizer_settings
        )
        throughput_cost = calibration.throughput_cost

    solution = _solve_fixed_cost(
        price_array,
        battery_settings,
        optimizer_settings,
        throughput_cost,
        with_reservation=True,
    )

    logger.info(
        f"DP result: throughput_cost={throughput_cost:.4f}, cycles={solution.cycles:.3f}, "
        f"final_soc={solution.soc_history[-1]:.2f} MWh"
    )

    return DPSolution(
        decisions=solution.decisions,
        operations=solution.operations,
        soc_history=solution.soc_history,
        throughput_cost=throughput_cost,
        cycles=solution.cycles,
        reservation_prices=solution.reservation_prices,
        calibration=calibration,
    )


def optimize_dp_decisions(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings | None = None,
) -> list[Decision]:
    """DP strategy entry point: the decision schedule only."""
    return solve_dp(prices, battery_settings, optimizer_settings).decisions


def optimize_battery_schedule(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings | None = None,
    throughput_cost: float | None = None,
) -> OptimizationResult:
    """Optimize one day and return the DP's own replayed trace as a result.

    No minimum run filter is applied here; `strategies.run_optimization`
    passes the decisions through the schedule executor for that.
    """
    solution = solve_dp(prices, battery_settings, optimizer_settings, throughput_cost)
    return OptimizationResult(
        strategy="dp",
        metrics=calculate_metrics(solution.operations, battery_settings),
        operations=solution.operations,
        soc_history=solution.soc_history,
        throughput_cost=solution.throughput_cost,
        calibration=solution.calibration,
        reservation_prices=solution.reservation_prices,
        prices=[float(p) for p in prices],
    )
