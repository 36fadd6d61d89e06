"""Metrics derived from an executed operations trace."""

import logging
import math
from collections.abc import Sequence

from .models import Operation, TradingMetrics
from .settings import BatterySettings

logger = logging.getLogger(__name__)

__all__ = ["calculate_metrics", "realized_cycles"]


def realized_cycles(operations: Sequence[Operation], capacity_mwh: float) -> float:
    """Full cycles completed: the smaller of stored and drawn energy over capacity."""
    stored = sum(op.energy_stored_mwh for op in operations)
    drawn = sum(op.energy_drawn_mwh for op in operations)
    return min(stored, drawn) / capacity_mwh


def calculate_metrics(
    operations: Sequence[Operation], battery_settings: BatterySettings
) -> TradingMetrics:
    """Calculate revenue, spread, cycle and utilization metrics.

    Cycles are counted on the battery side (energy stored vs energy drawn),
    average prices are weighted by grid energy bought and sold. Revenue is
    summed from the interval cash flows; `spread_revenue` rebuilds it from the
    average prices and must agree to within rounding.
    """
    bought = sum(op.energy_bought_mwh for op in operations)
    sold = sum(op.energy_sold_mwh for op in operations)
    stored = sum(op.energy_stored_mwh for op in operations)
    drawn = sum(op.energy_drawn_mwh for op in operations)
    capacity = battery_settings.capacity_mwh

    cycles = min(stored, drawn) / capacity
    throughput_cycles = (stored + drawn) / (2 * capacity)

    avg_charge_price = (
        sum(op.price * op.energy_bought_mwh for op in operations) / bought
        if bought > 0
        else 0.0
    )
    avg_discharge_price = (
        sum(op.price * op.energy_sold_mwh for op in operations) / sold
        if sold > 0
        else 0.0
    )
    realized_spread = (
        avg_discharge_price * math.sqrt(battery_settings.round_trip_efficiency)
        - avg_charge_price
    )

    revenue = sum(op.revenue for op in operations)
    spread_revenue = avg_discharge_price * sold - avg_charge_price * bought

    active_intervals = sum(1 for op in operations if op.is_active)
    total_intervals = len(operations)
    if battery_settings.max_cycles > 0:
        utilization = cycles / battery_settings.max_cycles * 100
    elif total_intervals:
        utilization = active_intervals / total_intervals * 100
    else:
        utilization = 0.0

    if abs(revenue - spread_revenue) > 1e-6 * max(1.0, abs(revenue)):
        logger.warning(
            f"Revenue {revenue:.2f} does not reconcile with spread estimate "
            f"{spread_revenue:.2f}"
        )

    return TradingMetrics(
        energy_charged_mwh=bought,
        energy_discharged_mwh=sold,
        energy_stored_mwh=stored,
        energy_drawn_mwh=drawn,
        cycles=cycles,
        throughput_cycles=throughput_cycles,
        avg_charge_price=avg_charge_price,
        avg_discharge_price=avg_discharge_price,
        realized_spread=realized_spread,
        revenue=revenue,
        spread_revenue=spread_revenue,
        utilization=utilization,
        active_intervals=active_intervals,
        total_intervals=total_intervals,
    )
