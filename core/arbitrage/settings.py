"""Core configuration values and types for the arbitrage engine using dataclasses."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import ConfigError

# Battery settings defaults
BATTERY_CAPACITY_MWH = 100.0
BATTERY_POWER_MW = 50.0
BATTERY_ROUND_TRIP_EFFICIENCY = 0.90
BATTERY_MAX_CYCLES = 2.0  # per trading day
BATTERY_INITIAL_SOC_MWH = 0.0
INTERVAL_MINUTES = 5  # NEM dispatch interval

# Price cleaning defaults
CLEANING_MODE = "raw"
MARKET_PRICE_FLOOR = -1000.0  # $/MWh
MARKET_PRICE_CAP = 16600.0  # $/MWh
DESPIKE_THRESHOLD = 500.0  # $/MWh deviation from local mean
DESPIKE_HALF_WINDOW = 2  # intervals either side

# Optimizer defaults
SOC_LEVELS = 201
SALVAGE_FRACTION = 0.10  # of mean price, per MWh left at end of day
CALIBRATION_MAX_ITERATIONS = 50
CALIBRATION_CYCLE_TOLERANCE = 0.01
CALIBRATION_COST_TOLERANCE = 1e-6  # $/MWh bracket width
RESERVATION_SMOOTHING_WINDOW = 5
MIN_RUN_INTERVALS = 3  # 15 minutes at 5-minute resolution

# Rule-based strategy defaults
THRESHOLD_CHARGE_PRICE = 30.0  # $/MWh
THRESHOLD_DISCHARGE_PRICE = 80.0  # $/MWh
SPREAD_WINDOW = 24  # trailing intervals
SPREAD_MULTIPLIER = 1.5  # standard deviations
MORNING_PEAK_HOURS = (7, 9)  # start inclusive, end exclusive
EVENING_PEAK_HOURS = (17, 21)
PEAKSHAVE_CHARGE_PRICE = 50.0  # $/MWh, off-peak charging only below this


class CleaningMode(Enum):
    """How raw prices are sanitized before optimization."""

    RAW = "raw"
    CLAMP = "clamp"
    DESPIKE = "despike"


def _split_round_trip(round_trip: float, split: str) -> tuple[float, float]:
    """Split a round-trip efficiency into charge and discharge legs."""
    if split == "symmetric":
        leg = math.sqrt(round_trip)
        return leg, leg
    if split == "discharge":
        return 1.0, round_trip
    raise ConfigError(
        field="split", message=f"Unknown efficiency split '{split}'"
    )


DEFAULT_EFFICIENCY_CHARGE, DEFAULT_EFFICIENCY_DISCHARGE = _split_round_trip(
    BATTERY_ROUND_TRIP_EFFICIENCY, "symmetric"
)


@dataclass
class BatterySettings:
    """Battery settings for one optimization run.

    Efficiencies are per leg: charging stores `grid * efficiency_charge`,
    discharging delivers `drawn * efficiency_discharge`.
    """

    capacity_mwh: float = BATTERY_CAPACITY_MWH
    power_mw: float = BATTERY_POWER_MW
    efficiency_charge: float = DEFAULT_EFFICIENCY_CHARGE
    efficiency_discharge: float = DEFAULT_EFFICIENCY_DISCHARGE
    max_cycles: float = BATTERY_MAX_CYCLES
    initial_soc_mwh: float = BATTERY_INITIAL_SOC_MWH
    interval_minutes: float = INTERVAL_MINUTES

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_round_trip(
        cls, round_trip_efficiency: float, split: str = "symmetric", **kwargs: Any
    ) -> "BatterySettings":
        """Create settings from a single round-trip efficiency.

        `split="symmetric"` applies the square root to each leg,
        `split="discharge"` puts the whole loss on the delivery leg.
        """
        if not 0 < round_trip_efficiency <= 1:
            raise ConfigError(
                field="round_trip_efficiency",
                message=f"Round-trip efficiency must be in (0, 1], got {round_trip_efficiency}",
            )
        charge, discharge = _split_round_trip(round_trip_efficiency, split)
        return cls(efficiency_charge=charge, efficiency_discharge=discharge, **kwargs)

    @classmethod
    def from_config(cls, config: dict) -> "BatterySettings":
        """Create instance from the `battery` section of an options dict."""
        battery_config = config.get("battery", {})
        kwargs = {
            key: battery_config[key]
            for key in (
                "capacity_mwh",
                "power_mw",
                "max_cycles",
                "initial_soc_mwh",
                "interval_minutes",
            )
            if key in battery_config
        }
        if "round_trip_efficiency" in battery_config:
            return cls.from_round_trip(
                battery_config["round_trip_efficiency"],
                split=battery_config.get("efficiency_split", "symmetric"),
                **kwargs,
            )
        for key in ("efficiency_charge", "efficiency_discharge"):
            if key in battery_config:
                kwargs[key] = battery_config[key]
        return cls(**kwargs)

    def validate(self) -> None:
        """Reject settings that cannot describe a physical battery."""
        if not self.capacity_mwh > 0:
            raise ConfigError(
                field="capacity_mwh",
                message=f"Capacity must be positive, got {self.capacity_mwh}",
            )
        if not self.power_mw > 0:
            raise ConfigError(
                field="power_mw",
                message=f"Power must be positive, got {self.power_mw}",
            )
        for name in ("efficiency_charge", "efficiency_discharge"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ConfigError(
                    field=name, message=f"{name} must be in (0, 1], got {value}"
                )
        if not self.max_cycles >= 0:
            raise ConfigError(
                field="max_cycles",
                message=f"Max cycles must be non-negative, got {self.max_cycles}",
            )
        if not 0 <= self.initial_soc_mwh <= self.capacity_mwh:
            raise ConfigError(
                field="initial_soc_mwh",
                message=(
                    f"Initial SoC {self.initial_soc_mwh} MWh outside "
                    f"[0, {self.capacity_mwh}] MWh"
                ),
            )
        if not self.interval_minutes > 0:
            raise ConfigError(
                field="interval_minutes",
                message=f"Interval length must be positive, got {self.interval_minutes}",
            )

    def update(self, **kwargs: Any) -> None:
        """Update settings from dict."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

        self.__post_init__()

    @property
    def round_trip_efficiency(self) -> float:
        return self.efficiency_charge * self.efficiency_discharge

    @property
    def interval_hours(self) -> float:
        return self.interval_minutes / 60.0

    @property
    def energy_per_interval_mwh(self) -> float:
        """Maximum energy movable in one interval at full power."""
        return self.power_mw * self.interval_hours


@dataclass
class PriceSettings:
    """Price cleaning settings."""

    cleaning_mode: str = CLEANING_MODE
    price_floor: float = MARKET_PRICE_FLOOR
    price_cap: float = MARKET_PRICE_CAP
    despike_threshold: float = DESPIKE_THRESHOLD
    despike_half_window: int = DESPIKE_HALF_WINDOW

    def __post_init__(self):
        try:
            self.cleaning_mode = CleaningMode(self.cleaning_mode).value
        except ValueError as e:
            raise ConfigError(
                field="cleaning_mode",
                message=(
                    f"Unknown cleaning mode '{self.cleaning_mode}', expected one of "
                    f"{[mode.value for mode in CleaningMode]}"
                ),
            ) from e
        if self.price_floor > self.price_cap:
            raise ConfigError(
                field="price_floor",
                message=f"Price floor {self.price_floor} exceeds cap {self.price_cap}",
            )
        if self.despike_half_window < 1:
            raise ConfigError(field="despike_half_window")

    def update(self, **kwargs: Any) -> None:
        """Update settings from dict."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

        self.__post_init__()

    @classmethod
    def from_config(cls, config: dict) -> "PriceSettings":
        """Create instance from the `prices` section of an options dict."""
        price_config = config.get("prices", {})
        settings = cls()
        settings.update(**price_config)
        return settings


@dataclass
class OptimizerSettings:
    """Dynamic programming, executor and rule-based strategy tuning."""

    soc_levels: int = SOC_LEVELS
    salvage_fraction: float = SALVAGE_FRACTION
    terminal_soc_mwh: float | None = None
    calibration_max_iterations: int = CALIBRATION_MAX_ITERATIONS
    calibration_cycle_tolerance: float = CALIBRATION_CYCLE_TOLERANCE
    calibration_cost_tolerance: float = CALIBRATION_COST_TOLERANCE
    reservation_smoothing_window: int = RESERVATION_SMOOTHING_WINDOW
    min_run_intervals: int = MIN_RUN_INTERVALS

    # Rule-based strategies
    threshold_charge_price: float = THRESHOLD_CHARGE_PRICE
    threshold_discharge_price: float = THRESHOLD_DISCHARGE_PRICE
    spread_window: int = SPREAD_WINDOW
    spread_multiplier: float = SPREAD_MULTIPLIER
    morning_peak_hours: tuple[int, int] = MORNING_PEAK_HOURS
    evening_peak_hours: tuple[int, int] = EVENING_PEAK_HOURS
    peakshave_charge_price: float = PEAKSHAVE_CHARGE_PRICE

    def __post_init__(self):
        if self.soc_levels < 2:
            raise ConfigError(
                field="soc_levels",
                message=f"At least 2 SoC levels are required, got {self.soc_levels}",
            )
        if self.calibration_max_iterations < 1:
            raise ConfigError(field="calibration_max_iterations")
        if self.reservation_smoothing_window < 1:
            raise ConfigError(field="reservation_smoothing_window")
        if self.min_run_intervals < 0:
            raise ConfigError(field="min_run_intervals")
        if self.threshold_charge_price > self.threshold_discharge_price:
            raise ConfigError(
                field="threshold_charge_price",
                message=(
                    f"Charge threshold {self.threshold_charge_price} exceeds "
                    f"discharge threshold {self.threshold_discharge_price}"
                ),
            )
        if self.spread_window < 1:
            raise ConfigError(field="spread_window")
        if self.spread_multiplier < 0:
            raise ConfigError(field="spread_multiplier")
        for name in ("morning_peak_hours", "evening_peak_hours"):
            hours = tuple(getattr(self, name))
            if len(hours) != 2 or not 0 <= hours[0] <= hours[1] <= 24:
                raise ConfigError(
                    field=name,
                    message=f"{name} must be a (start, end) pair within 0-24, got {hours}",
                )
            setattr(self, name, hours)

    def update(self, **kwargs: Any) -> None:
        """Update settings from dict."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

        self.__post_init__()

    @classmethod
    def from_config(cls, config: dict) -> "OptimizerSettings":
        """Create instance from the `optimizer` section of an options dict."""
        optimizer_config = config.get("optimizer", {})
        settings = cls()
        settings.update(**optimizer_config)
        return settings
