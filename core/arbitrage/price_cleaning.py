"""
Price series cleaning for the arbitrage engine.

Raw market prices arrive with gaps (None/NaN) and occasional extreme values.
Three modes are supported:

- raw: gaps become 0, everything else passes through unchanged, including
  spikes and negative prices.
- clamp: as raw, then bounded to the NEM market floor and cap.
- despike: as raw, then isolated excursions far from the local mean of a
  5-interval window are replaced by that mean.

The despike window mean includes the spike itself, so one extreme interval
lifts the mean of every window that contains it. Neighbours within the
window can then cross the threshold too and get replaced by an elevated
mean: a lone 20000 $/MWh among 50s comes back as five intervals of about
4040 $/MWh. Use clamp when the spike energy must stay in one interval.
"""

import logging
import math
from collections.abc import Sequence

import numpy as np

from .exceptions import InsufficientDataError, PriceDataError
from .models import PriceInterval
from .settings import CleaningMode, PriceSettings

logger = logging.getLogger(__name__)

__all__ = [
    "CleaningMode",
    "clean_prices",
    "prices_from_intervals",
    "validate_price_series",
]


def _substitute_missing(prices: Sequence[float | None]) -> np.ndarray:
    """Replace None, NaN and infinities with 0."""
    values = np.array(
        [
            float(p) if p is not None and math.isfinite(float(p)) else 0.0
            for p in prices
        ],
        dtype=float,
    )
    return values


def _despike(values: np.ndarray, threshold: float, half_window: int) -> np.ndarray:
    """Replace values deviating from their local window mean by more than threshold.

    The window spans `half_window` intervals either side; indices past the
    ends are clamped to the first/last interval.
    """
    n = len(values)
    if n == 0:
        return values

    offsets = np.arange(-half_window, half_window + 1)
    window_idx = np.clip(np.arange(n)[:, None] + offsets, 0, n - 1)
    local_mean = values[window_idx].mean(axis=1)

    spikes = np.abs(values - local_mean) > threshold
    if spikes.any():
        logger.debug(
            f"Despiked {int(spikes.sum())} of {n} intervals "
            f"(threshold {threshold:.0f} $/MWh)"
        )
    return np.where(spikes, local_mean, values)


def clean_prices(
    prices: Sequence[float | None],
    mode: CleaningMode | str = CleaningMode.RAW,
    settings: PriceSettings | None = None,
) -> list[float]:
    """Sanitize a raw price sequence.

    Args:
        prices: Raw prices in $/MWh, possibly containing None/NaN/inf
        mode: Cleaning mode, as enum or its string value
        settings: Floor, cap and despike parameters (defaults if None)

    Returns:
        A list of finite prices with the same length as the input
    """
    mode = CleaningMode(mode)
    if settings is None:
        settings = PriceSettings()

    values = _substitute_missing(prices)

    if mode is CleaningMode.CLAMP:
        values = np.clip(values, settings.price_floor, settings.price_cap)
    elif mode is CleaningMode.DESPIKE:
        values = _despike(
            values, settings.despike_threshold, settings.despike_half_window
        )

    return values.tolist()


def validate_price_series(prices: Sequence[float | None]) -> None:
    """Reject series too short to optimize.

    Raises:
        InsufficientDataError: If fewer than 2 prices are given
    """
    if len(prices) < 2:
        raise InsufficientDataError(count=len(prices))


def prices_from_intervals(intervals: Sequence[PriceInterval]) -> list[float | None]:
    """Extract the price list from an ordered interval sequence.

    Raises:
        InsufficientDataError: If fewer than 2 intervals are given
        PriceDataError: If indices are not strictly increasing
    """
    validate_price_series(intervals)
    for previous, current in zip(intervals, intervals[1:]):
        if current.index <= previous.index:
            raise PriceDataError(
                f"Interval indices must be strictly increasing: "
                f"{previous.index} followed by {current.index}"
            )
    return [interval.price for interval in intervals]
