"""Exception types raised by the forecasting pipeline."""
from __future__ import annotations


class ForecastError(Exception):
    """Base class for pipeline failures reported to callers."""


class TransportError(ForecastError):
    """Candle retrieval from the market-data provider failed."""


class InsufficientDataError(ForecastError):
    """Too few usable records to build training and testing windows."""

    def __init__(self, message: str, available: int = 0, required: int = 0) -> None:
        super().__init__(message)
        self.available = available
        self.required = required


class DegenerateMetricError(ForecastError):
    """A metric could not be computed because its denominator is zero."""
