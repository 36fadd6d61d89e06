# core/arbitrage/models.py
"""
Data models for the arbitrage engine.

This module contains dataclasses representing the data passed between the
optimizers, the schedule executor and the metrics calculator. Result types are
frozen: they are created once per run and owned by the caller.

"""

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

__all__ = [
    "Action",
    "CalibrationResult",
    "Decision",
    "OptimizationResult",
    "Operation",
    "PriceInterval",
    "ReservationPrices",
    "ScheduleExecution",
    "TradingMetrics",
]


class Action(Enum):
    """Battery action for one trading interval."""

    CHARGE = "CHARGE"
    DISCHARGE = "DISCHARGE"
    IDLE = "IDLE"


@dataclass(frozen=True)
class PriceInterval:
    """One point of a day's price series."""

    index: int
    price: float


@dataclass(frozen=True)
class Decision:
    """Planned action for one interval and its target power magnitude (MW)."""

    action: Action = Action.IDLE
    power_mw: float = 0.0

    @classmethod
    def idle(cls) -> "Decision":
        return cls(Action.IDLE, 0.0)


@dataclass(frozen=True)
class Operation:
    """Executed energy flows for one interval.

    Grid-side quantities (bought/sold) carry the cash flow; battery-side
    quantities (stored/drawn) move the state of charge.
    """

    index: int
    price: float
    decision: Decision
    energy_bought_mwh: float  # grid energy drawn to charge
    energy_stored_mwh: float  # energy added to SoC
    energy_drawn_mwh: float  # energy removed from SoC
    energy_sold_mwh: float  # grid energy delivered
    soc_start_mwh: float
    soc_end_mwh: float
    revenue: float  # $ cash flow, negative when buying
    power_mw: float  # signed grid power, negative when charging

    @property
    def action(self) -> Action:
        return self.decision.action

    @property
    def is_active(self) -> bool:
        """True when energy actually moved in this interval."""
        return self.energy_stored_mwh > 0 or self.energy_drawn_mwh > 0


@dataclass(frozen=True)
class ScheduleExecution:
    """Executor output: operations plus the SoC history (initial SoC first)."""

    operations: list[Operation]
    soc_history: list[float]

    @property
    def decisions(self) -> list[Decision]:
        return [op.decision for op in self.operations]

    @property
    def final_soc_mwh(self) -> float:
        return self.soc_history[-1]


@dataclass(frozen=True)
class ReservationPrices:
    """Diagnostic price thresholds along the replayed trajectory ($/MWh).

    Charging is value-maximizing at or below `charge`, discharging at or
    above `discharge`. NaN marks intervals where the action was infeasible.
    """

    charge: list[float]
    discharge: list[float]


@dataclass(frozen=True)
class CalibrationResult:
    """Outcome of the throughput cost bisection."""

    throughput_cost: float  # $/MWh of throughput
    cycles: float
    target_cycles: float
    iterations: int
    converged: bool


@dataclass(frozen=True)
class TradingMetrics:
    """Metrics derived from an operations trace."""

    energy_charged_mwh: float  # grid energy bought
    energy_discharged_mwh: float  # grid energy sold
    energy_stored_mwh: float
    energy_drawn_mwh: float
    cycles: float
    throughput_cycles: float
    avg_charge_price: float
    avg_discharge_price: float
    realized_spread: float
    revenue: float
    spread_revenue: float  # avg_discharge * sold - avg_charge * bought
    utilization: float  # percent
    active_intervals: int
    total_intervals: int


@dataclass(frozen=True)
class OptimizationResult:
    """Result structure returned for one optimization run."""

    strategy: str
    metrics: TradingMetrics
    operations: list[Operation]
    soc_history: list[float]
    throughput_cost: float = 0.0
    calibration: CalibrationResult | None = None
    reservation_prices: ReservationPrices | None = None
    prices: list[float] = field(default_factory=list)

    @property
    def total_revenue(self) -> float:
        return self.metrics.revenue

    @property
    def cycles(self) -> float:
        return self.metrics.cycles

    @property
    def energy_charged_mwh(self) -> float:
        return self.metrics.energy_charged_mwh

    @property
    def energy_discharged_mwh(self) -> float:
        return self.metrics.energy_discharged_mwh

    @property
    def avg_charge_price(self) -> float:
        return self.metrics.avg_charge_price

    @property
    def avg_discharge_price(self) -> float:
        return self.metrics.avg_discharge_price

    @property
    def decisions(self) -> list[Decision]:
        return [op.decision for op in self.operations]

    @property
    def converged(self) -> bool:
        """False only when cycle calibration exhausted its iteration budget."""
        return self.calibration is None or self.calibration.converged
