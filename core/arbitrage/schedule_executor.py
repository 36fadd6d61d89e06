"""
Schedule execution for battery arbitrage.

Turns a per-interval Decision schedule into energy flows against a price
series. This module owns the battery physics used everywhere else:

- Charging draws grid energy up to power x interval length, limited by the
  remaining headroom; the battery stores `grid * efficiency_charge`.
- Discharging draws stored energy up to power x interval length, limited by
  the current SoC; the grid receives `drawn * efficiency_discharge`.

Before simulating, runs of the same non-idle action shorter than the minimum
run length are converted to idle, since a real battery cannot switch that fast.
"""

import logging
from collections.abc import Sequence
from itertools import groupby

from .exceptions import InvariantViolation
from .models import Action, Decision, Operation, ScheduleExecution
from .settings import MIN_RUN_INTERVALS, BatterySettings
from .time_utils import period_to_time_label

logger = logging.getLogger(__name__)

__all__ = [
    "apply_minimum_run_length",
    "decisions_from_operations",
    "execute_schedule",
    "step",
]

# Relative tolerance for floating point noise on SoC and power bounds
BOUND_TOLERANCE = 1e-9


def apply_minimum_run_length(
    decisions: Sequence[Decision], min_run_intervals: int = MIN_RUN_INTERVALS
) -> list[Decision]:
    """Convert non-idle runs shorter than min_run_intervals to idle.

    Args:
        decisions: Raw per-interval decisions
        min_run_intervals: Minimum contiguous intervals of one action

    Returns:
        A new list of the same length
    """
    filtered: list[Decision] = []
    removed_runs = 0

    for action, run in groupby(decisions, key=lambda d: d.action):
        run = list(run)
        if action is not Action.IDLE and len(run) < min_run_intervals:
            filtered.extend(Decision.idle() for _ in run)
            removed_runs += 1
        else:
            filtered.extend(run)

    if removed_runs:
        logger.debug(
            f"Minimum run filter removed {removed_runs} runs shorter than "
            f"{min_run_intervals} intervals"
        )
    return filtered


def _where(index: int, battery_settings: BatterySettings) -> str:
    return f"interval {index} ({period_to_time_label(index, battery_settings.interval_minutes)})"


def _check_bounds(
    index: int, decision: Decision, soc: float, battery_settings: BatterySettings
) -> None:
    tolerance = BOUND_TOLERANCE * max(1.0, battery_settings.capacity_mwh)
    if soc < -tolerance or soc > battery_settings.capacity_mwh + tolerance:
        raise InvariantViolation(
            index=index,
            message=(
                f"SoC {soc:.6f} MWh outside [0, {battery_settings.capacity_mwh}] "
                f"at {_where(index, battery_settings)}"
            ),
        )
    power_tolerance = BOUND_TOLERANCE * max(1.0, battery_settings.power_mw)
    if not -power_tolerance <= decision.power_mw <= battery_settings.power_mw + power_tolerance:
        raise InvariantViolation(
            index=index,
            message=(
                f"Decision power {decision.power_mw:.3f} MW outside "
                f"[0, {battery_settings.power_mw}] at {_where(index, battery_settings)}"
            ),
        )


def step(
    index: int,
    price: float,
    decision: Decision,
    soc: float,
    battery_settings: BatterySettings,
) -> Operation:
    """Execute one decision for one interval starting from soc.

    Raises:
        InvariantViolation: If the SoC or the decision power is out of bounds
    """
    _check_bounds(index, decision, soc, battery_settings)

    dt = battery_settings.interval_hours
    capacity = battery_settings.capacity_mwh
    bought = stored = drawn = sold = 0.0
    revenue = 0.0
    power = 0.0

    if decision.action is Action.CHARGE:
        headroom = max(0.0, capacity - soc)
        bought = min(decision.power_mw * dt, headroom / battery_settings.efficiency_charge)
        stored = bought * battery_settings.efficiency_charge
        revenue = -bought * price
        power = -bought / dt
    elif decision.action is Action.DISCHARGE:
        drawn = min(decision.power_mw * dt, max(0.0, soc))
        sold = drawn * battery_settings.efficiency_discharge
        revenue = sold * price
        power = sold / dt

    soc_end = soc + stored - drawn
    _check_bounds(index, decision, soc_end, battery_settings)
    # Within tolerance; snap float noise back onto the physical range
    soc_end = min(max(soc_end, 0.0), capacity)

    return Operation(
        index=index,
        price=price,
        decision=decision,
        energy_bought_mwh=bought,
        energy_stored_mwh=stored,
        energy_drawn_mwh=drawn,
        energy_sold_mwh=sold,
        soc_start_mwh=soc,
        soc_end_mwh=soc_end,
        revenue=revenue,
        power_mw=power,
    )


def execute_schedule(
    prices: Sequence[float],
    decisions: Sequence[Decision],
    battery_settings: BatterySettings,
    min_run_intervals: int = MIN_RUN_INTERVALS,
    initial_soc: float | None = None,
) -> ScheduleExecution:
    """Replay a decision schedule against a cleaned price series.

    Args:
        prices: Cleaned prices ($/MWh), one per interval
        decisions: One decision per interval, from any optimizer
        battery_settings: Battery limits and efficiencies
        min_run_intervals: Minimum run length; 0 or 1 disables the filter
        initial_soc: Starting SoC in MWh (defaults to the configured one)

    Returns:
        ScheduleExecution with the operations and the SoC history

    Raises:
        ValueError: If prices and decisions differ in length
        InvariantViolation: If any interval breaches a battery bound
    """
    if len(prices) != len(decisions):
        raise ValueError(
            f"Got {len(decisions)} decisions for {len(prices)} price intervals"
        )

    soc = battery_settings.initial_soc_mwh if initial_soc is None else initial_soc
    filtered = apply_minimum_run_length(decisions, min_run_intervals)

    operations: list[Operation] = []
    soc_history = [soc]
    for index, (price, decision) in enumerate(zip(prices, filtered, strict=True)):
        operation = step(index, price, decision, soc, battery_settings)
        operations.append(operation)
        soc = operation.soc_end_mwh
        soc_history.append(soc)

    logger.debug(
        f"Executed {len(operations)} intervals, "
        f"{sum(op.is_active for op in operations)} active, final SoC {soc:.2f} MWh"
    )
    return ScheduleExecution(operations=operations, soc_history=soc_history)


def decisions_from_operations(operations: Sequence[Operation]) -> list[Decision]:
    """Recover the executed decision schedule from an operations trace."""
    return [operation.decision for operation in operations]
