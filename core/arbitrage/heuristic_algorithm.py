"""
Greedy peak/trough heuristic for battery arbitrage.

Finds local price troughs and peaks, then pairs the cheapest troughs with the
most expensive later peaks. Each pairing reserves a charge window at the
trough and a discharge window at the peak, each long enough for a full
charge at rated power. Used as the baseline the DP optimizer is compared
against.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from .models import Action, Decision
from .settings import BatterySettings

logger = logging.getLogger(__name__)

__all__ = [
    "ArbitrageOpportunity",
    "find_arbitrage_opportunities",
    "intervals_for_full_charge",
    "optimize_heuristic",
]


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """A trough/peak pairing with its reserved charge and discharge windows.

    Window ends are exclusive interval indices.
    """

    charge_start: int
    charge_end: int
    discharge_start: int
    discharge_end: int
    charge_price: float
    discharge_price: float
    gross_spread: float
    net_spread: float


def _local_extrema(
    prices: Sequence[float],
) -> tuple[list[tuple[int, float]], list[tuple[int, float]]]:
    """Interior troughs and peaks; plateaus count as both neighbours allow."""
    troughs = []
    peaks = []
    for i in range(1, len(prices) - 1):
        prev, curr, nxt = prices[i - 1], prices[i], prices[i + 1]
        if curr <= prev and curr <= nxt:
            troughs.append((i, curr))
        if curr >= prev and curr >= nxt:
            peaks.append((i, curr))
    return troughs, peaks


def intervals_for_full_charge(battery_settings: BatterySettings) -> int:
    """Intervals needed to charge from empty to full at rated power."""
    hours = battery_settings.capacity_mwh / battery_settings.power_mw
    # Round first so 2h / (5/60)h is 24, not 25
    return math.ceil(round(hours / battery_settings.interval_hours, 9))


def find_arbitrage_opportunities(
    prices: Sequence[float], battery_settings: BatterySettings
) -> list[ArbitrageOpportunity]:
    """Pair troughs with later peaks, greedily and without overlapping windows.

    Troughs are visited cheapest first; for each one the most expensive later
    peak that is at least one full charge away is taken, provided
    `peak * sqrt(round_trip) - trough > 0` and both windows are still free.
    Stops once max_cycles pairings exist.

    Returns:
        Opportunities ordered by charge start
    """
    troughs, peaks = _local_extrema(prices)
    troughs.sort(key=lambda point: point[1])
    peaks.sort(key=lambda point: point[1], reverse=True)

    n_intervals = len(prices)
    needed = intervals_for_full_charge(battery_settings)
    efficiency = math.sqrt(battery_settings.round_trip_efficiency)

    opportunities: list[ArbitrageOpportunity] = []
    used: set[int] = set()

    for trough_index, trough_price in troughs:
        if len(opportunities) >= battery_settings.max_cycles:
            break

        for peak_index, peak_price in peaks:
            if peak_index <= trough_index + needed:
                continue
            net_spread = peak_price * efficiency - trough_price
            if net_spread <= 0:
                continue

            charge_window = range(trough_index, min(trough_index + needed, n_intervals))
            discharge_window = range(peak_index, min(peak_index + needed, n_intervals))
            if any(i in used for i in charge_window) or any(
                i in used for i in discharge_window
            ):
                continue

            used.update(charge_window)
            used.update(discharge_window)
            opportunities.append(
                ArbitrageOpportunity(
                    charge_start=charge_window.start,
                    charge_end=charge_window.stop,
                    discharge_start=discharge_window.start,
                    discharge_end=discharge_window.stop,
                    charge_price=trough_price,
                    discharge_price=peak_price,
                    gross_spread=peak_price - trough_price,
                    net_spread=net_spread,
                )
            )
            break

    opportunities.sort(key=lambda opp: opp.charge_start)
    logger.debug(
        f"Heuristic found {len(opportunities)} opportunities from "
        f"{len(troughs)} troughs and {len(peaks)} peaks"
    )
    return opportunities


def optimize_heuristic(
    prices: Sequence[float], battery_settings: BatterySettings
) -> list[Decision]:
    """Full-power decision schedule built from the greedy opportunities."""
    decisions = [Decision.idle() for _ in prices]
    power = battery_settings.power_mw

    for opp in find_arbitrage_opportunities(prices, battery_settings):
        for i in range(opp.charge_start, opp.charge_end):
            decisions[i] = Decision(Action.CHARGE, power)
        for i in range(opp.discharge_start, opp.discharge_end):
            decisions[i] = Decision(Action.DISCHARGE, power)

    return decisions
