"""Battery energy storage arbitrage engine for NEM spot prices."""

# Define public API - only include what users should directly access
__all__ = [
    "Action",
    "BatterySettings",
    "Decision",
    "OptimizationResult",
    "OptimizationStrategy",
    "OptimizerSettings",
    "PriceSettings",
    "run_backtest",
    "run_optimization",
]

# Import settings used by other modules
from .settings import (  # noqa: I001
    BatterySettings,
    OptimizerSettings,
    PriceSettings,
)

from .models import Action, Decision, OptimizationResult

# Import the entry points (single day and multi-day)
from .strategies import OptimizationStrategy, run_optimization
from .backtest import run_backtest
