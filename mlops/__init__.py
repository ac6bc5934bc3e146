"""Data preparation and forecasting pipeline for candle-based LSTM models."""

from .errors import DegenerateMetricError, ForecastError, InsufficientDataError, TransportError
from .pipeline import ForecastResult, PipelineConfig, run_forecast

__all__ = [
    "DegenerateMetricError",
    "ForecastError",
    "ForecastResult",
    "InsufficientDataError",
    "PipelineConfig",
    "TransportError",
    "run_forecast",
]
