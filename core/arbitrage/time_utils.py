"""Time utilities for trading interval handling.

KEY PRINCIPLE: All price arrays start at index 0 = trading day 00:00 and
advance at a fixed interval length. Timezone normalization happens upstream,
so indices here are plain offsets from the start of the day.
"""

import logging

logger = logging.getLogger(__name__)

# Constants
MINUTES_PER_DAY = 24 * 60
DEFAULT_INTERVAL_MINUTES = 5
PERIODS_PER_DAY_NORMAL = MINUTES_PER_DAY // DEFAULT_INTERVAL_MINUTES  # 288


def get_period_count(interval_minutes: float = DEFAULT_INTERVAL_MINUTES) -> int:
    """Get number of trading intervals in a day.

    Args:
        interval_minutes: Interval length in minutes

    Returns:
        Number of intervals covering 24 hours (288 for 5-minute data)
    """
    if interval_minutes <= 0:
        raise ValueError(f"Interval length must be positive, got {interval_minutes}")
    return int(MINUTES_PER_DAY // interval_minutes)


def period_to_time_label(
    period_index: int, interval_minutes: float = DEFAULT_INTERVAL_MINUTES
) -> str:
    """Convert a period index to an "HH:MM" label of its start time.

    Example:
        >>> period_to_time_label(0)
        '00:00'
        >>> period_to_time_label(222)
        '18:30'

    Raises:
        ValueError: If period_index is negative
    """
    if period_index < 0:
        raise ValueError(f"Period index must be non-negative, got {period_index}")

    minutes = int(round(period_index * interval_minutes))
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def period_to_hour(
    period_index: int, interval_minutes: float = DEFAULT_INTERVAL_MINUTES
) -> int:
    """Hour of the trading day (0-based) that a period starts in."""
    return int(period_index * interval_minutes // 60)


def group_periods_by_hour(
    period_count: int, interval_minutes: float = DEFAULT_INTERVAL_MINUTES
) -> dict[int, list[int]]:
    """Group period indices by the hour they start in.

    Returns:
        Ordered mapping of hour -> list of period indices
    """
    groups: dict[int, list[int]] = {}
    for period in range(period_count):
        groups.setdefault(period_to_hour(period, interval_minutes), []).append(period)

    if period_count != get_period_count(interval_minutes):
        logger.debug(
            f"Grouped {period_count} periods of {interval_minutes} min "
            f"(not a full {MINUTES_PER_DAY // 60}h day)"
        )
    return groups
