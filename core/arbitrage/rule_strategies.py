"""
Rule-based trading strategies for backtest comparison.

Each strategy reduces the day's prices to a per-interval signal (buy, sell or
hold) and then walks the battery forward with the executor's physics, so a
signal only becomes a charge or discharge decision when it can move energy:

- threshold: buy at or below a fixed price, sell at or above another.
- spread: buy when the price drops more than k standard deviations below its
  trailing moving average, sell when it rises as far above it.
- peakshave: sell through the morning and evening peak hours, buy off-peak
  while the price is below a ceiling.

None of them look ahead. They are the realistic baselines that the DP
perfect-hindsight benchmark is measured against.

Buying stops once the energy stored during the day reaches max_cycles full
charges.
"""

import logging
from collections.abc import Sequence

import numpy as np

from .models import Action, Decision
from .schedule_executor import step
from .settings import BatterySettings, OptimizerSettings
from .time_utils import period_to_hour

logger = logging.getLogger(__name__)

__all__ = [
    "follow_signals",
    "optimize_peakshave",
    "optimize_spread",
    "optimize_threshold",
    "peakshave_signals",
    "spread_signals",
    "threshold_signals",
    "trailing_bands",
]

# Signal values
HOLD, BUY, SELL = 0, 1, -1

MIN_ENERGY_MWH = 1e-9


def threshold_signals(
    prices: Sequence[float], charge_price: float, discharge_price: float
) -> list[int]:
    """Buy at or below charge_price, sell at or above discharge_price."""
    signals = []
    for price in prices:
        if price <= charge_price:
            signals.append(BUY)
        elif price >= discharge_price:
            signals.append(SELL)
        else:
            signals.append(HOLD)
    return signals


def trailing_bands(
    prices: Sequence[float], window: int
) -> tuple[np.ndarray, np.ndarray]:
    """Mean and population standard deviation of each price and the `window` before it."""
    values = np.asarray(prices, dtype=float)
    means = np.empty(len(values))
    stds = np.empty(len(values))
    for i in range(len(values)):
        chunk = values[max(0, i - window) : i + 1]
        means[i] = chunk.mean()
        stds[i] = chunk.std()
    return means, stds


def spread_signals(
    prices: Sequence[float], window: int, multiplier: float
) -> list[int]:
    """Buy below mean - k*std, sell above mean + k*std of the trailing window."""
    values = np.asarray(prices, dtype=float)
    means, stds = trailing_bands(values, window)
    signals = np.where(
        values < means - multiplier * stds,
        BUY,
        np.where(values > means + multiplier * stds, SELL, HOLD),
    )
    return signals.tolist()


def peakshave_signals(
    prices: Sequence[float],
    morning_peak_hours: tuple[int, int],
    evening_peak_hours: tuple[int, int],
    charge_price: float,
    interval_minutes: float,
) -> list[int]:
    """Sell in peak hours, buy off-peak below charge_price.

    Peak windows are (start, end) hours of the trading day, end exclusive.
    """
    signals = []
    for index, price in enumerate(prices):
        hour = period_to_hour(index, interval_minutes)
        if any(
            start <= hour < end
            for start, end in (morning_peak_hours, evening_peak_hours)
        ):
            signals.append(SELL)
        elif price < charge_price:
            signals.append(BUY)
        else:
            signals.append(HOLD)
    return signals


def follow_signals(
    prices: Sequence[float],
    signals: Sequence[int],
    battery_settings: BatterySettings,
) -> list[Decision]:
    """Turn signals into decisions the battery can act on.

    A buy charges while there is headroom and the day's charge budget
    (max_cycles x capacity of stored energy) is not used up; the charge that
    reaches the budget is throttled to fit it. A sell discharges while any
    energy is stored. Everything else is idle.
    """
    capacity = battery_settings.capacity_mwh
    charge_rate = battery_settings.efficiency_charge * battery_settings.interval_hours
    budget = battery_settings.max_cycles * capacity

    soc = battery_settings.initial_soc_mwh
    stored_total = 0.0
    decisions: list[Decision] = []

    for index, (price, signal) in enumerate(zip(prices, signals, strict=True)):
        decision = Decision.idle()
        remaining = budget - stored_total
        has_room = soc < capacity - MIN_ENERGY_MWH
        if signal == BUY and has_room and remaining > MIN_ENERGY_MWH:
            power = min(battery_settings.power_mw, remaining / charge_rate)
            decision = Decision(Action.CHARGE, power)
        elif signal == SELL and soc > MIN_ENERGY_MWH:
            decision = Decision(Action.DISCHARGE, battery_settings.power_mw)

        operation = step(index, price, decision, soc, battery_settings)
        soc = operation.soc_end_mwh
        stored_total += operation.energy_stored_mwh
        decisions.append(decision)

    return decisions


def _log_plan(name: str, decisions: Sequence[Decision]) -> None:
    charging = sum(d.action is Action.CHARGE for d in decisions)
    discharging = sum(d.action is Action.DISCHARGE for d in decisions)
    logger.debug(
        f"{name} plan: {charging} charge and {discharging} discharge intervals "
        f"of {len(decisions)}"
    )


def optimize_threshold(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings | None = None,
) -> list[Decision]:
    """Fixed price threshold strategy."""
    if optimizer_settings is None:
        optimizer_settings = OptimizerSettings()
    signals = threshold_signals(
        prices,
        optimizer_settings.threshold_charge_price,
        optimizer_settings.threshold_discharge_price,
    )
    decisions = follow_signals(prices, signals, battery_settings)
    _log_plan("threshold", decisions)
    return decisions


def optimize_spread(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings | None = None,
) -> list[Decision]:
    """Moving average spread strategy."""
    if optimizer_settings is None:
        optimizer_settings = OptimizerSettings()
    signals = spread_signals(
        prices, optimizer_settings.spread_window, optimizer_settings.spread_multiplier
    )
    decisions = follow_signals(prices, signals, battery_settings)
    _log_plan("spread", decisions)
    return decisions


def optimize_peakshave(
    prices: Sequence[float],
    battery_settings: BatterySettings,
    optimizer_settings: OptimizerSettings | None = None,
) -> list[Decision]:
    """Peak shaving strategy: discharge through fixed daily peak windows."""
    if optimizer_settings is None:
        optimizer_settings = OptimizerSettings()
    signals = peakshave_signals(
        prices,
        optimizer_settings.morning_peak_hours,
        optimizer_settings.evening_peak_hours,
        optimizer_settings.peakshave_charge_price,
        battery_settings.interval_minutes,
    )
    decisions = follow_signals(prices, signals, battery_settings)
    _log_plan("peakshave", decisions)
    return decisions
