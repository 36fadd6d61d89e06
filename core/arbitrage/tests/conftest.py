"""Shared test fixtures for the arbitrage engine tests."""

import logging
import os
import sys

import pytest

# Add the project root to Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../.."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from core.arbitrage.settings import BatterySettings, OptimizerSettings  # noqa: E402

PERIODS_PER_DAY = 288
BASELINE_PRICE = 50.0
TROUGH_PRICE = 20.0
PEAK_PRICE = 100.0


def _flat_day(price=BASELINE_PRICE):
    return [price] * PERIODS_PER_DAY


@pytest.fixture
def battery_settings():
    """100 MWh / 50 MW battery, 90% round trip, 2 cycles per day, empty."""
    return BatterySettings()


@pytest.fixture
def optimizer_settings():
    return OptimizerSettings()


@pytest.fixture
def trough_peak_prices():
    """Morning trough 06:00-09:00 at 20, evening peak 18:00-21:00 at 100, else 50."""
    prices = _flat_day()
    for i in range(72, 108):
        prices[i] = TROUGH_PRICE
    for i in range(216, 252):
        prices[i] = PEAK_PRICE
    return prices


@pytest.fixture
def two_peak_prices():
    """Two trough/peak pairs: 20 at 06:00 and 15:00, 100 at 12:00 and 18:00."""
    prices = _flat_day()
    for start in (72, 180):
        for i in range(start, start + 36):
            prices[i] = TROUGH_PRICE
    for start in (144, 216):
        for i in range(start, start + 36):
            prices[i] = PEAK_PRICE
    return prices


@pytest.fixture
def spike_prices(trough_peak_prices):
    """Trough/peak day with a 200 spike followed by a -50 dip."""
    prices = list(trough_peak_prices)
    prices[150] = 200.0
    prices[151] = -50.0
    return prices


@pytest.fixture
def flat_prices():
    return _flat_day()
