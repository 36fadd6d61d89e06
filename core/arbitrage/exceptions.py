"""Custom exception classes for the arbitrage engine.

Configuration and price data problems are rejected at the entry point, before
any optimization runs. InvariantViolation signals an implementation bug and is
never expected in correct code.
"""


class ArbitrageException(Exception):
    """Base exception for all arbitrage engine components."""
    pass


class ConfigError(ArbitrageException):
    """Raised when battery or optimizer settings are invalid."""

    def __init__(self, field=None, message=None):
        if message is None:
            if field:
                message = f"Invalid configuration value for {field}"
            else:
                message = "Invalid configuration"
        super().__init__(message)
        self.field = field


class PriceDataError(ArbitrageException):
    """Raised when a price series cannot be used for optimization."""

    def __init__(self, message=None):
        super().__init__(message or "Invalid price data")


class InsufficientDataError(PriceDataError):
    """Raised when fewer than two price points are available."""

    def __init__(self, count=None, message=None):
        if message is None:
            if count is not None:
                message = f"At least 2 price points are required, got {count}"
            else:
                message = "Not enough price data"
        super().__init__(message)
        self.count = count


class InvariantViolation(ArbitrageException):
    """Raised when a state-of-charge or power bound is breached."""

    def __init__(self, index=None, message=None):
        if message is None:
            if index is not None:
                message = f"Battery invariant violated at interval {index}"
            else:
                message = "Battery invariant violated"
        super().__init__(message)
        self.index = index
