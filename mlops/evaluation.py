"""Evaluation utilities for next-close regression forecasts."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn import metrics

from mlops.errors import DegenerateMetricError
from mlops.normalization import MaxScaler
from mlops.windows import TARGET_COLUMN, WindowedDataset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionSummary:
    """Denormalized test-range predictions and the one-step extrapolation."""

    test_dates: List[pd.Timestamp]
    test_actual: List[float]
    test_predictions: List[float]
    future_date: pd.Timestamp
    future_prediction: float
    percentage_difference: Optional[float]
    test_metrics: Dict[str, float] = field(default_factory=dict)


def regression_metrics(y_true, y_pred) -> Dict[str, float]:
    """Compute standard regression metrics."""

    y_true = np.asarray(y_true, dtype=np.float64)
    y_pred = np.asarray(y_pred, dtype=np.float64)
    if y_true.size == 0:
        return {"mae": float("nan"), "rmse": float("nan"), "mape": float("nan")}

    return {
        "mae": float(metrics.mean_absolute_error(y_true, y_pred)),
        "rmse": float(np.sqrt(metrics.mean_squared_error(y_true, y_pred))),
        "mape": float(metrics.mean_absolute_percentage_error(y_true, y_pred)),
    }


def percentage_difference(value: float, reference: float) -> float:
    """Relative change of ``value`` against ``reference`` in percent."""

    if reference == 0:
        raise DegenerateMetricError("Cannot compute percentage difference against a zero reference")
    return (value - reference) / reference * 100.0


def assemble_predictions(model, dataset: WindowedDataset, scaler: MaxScaler) -> PredictionSummary:
    """Run ``model`` over the testing windows and map results back to prices.

    The future prediction comes from the last ``input_size`` testing records.
    Its date is the timestamp of the last testing record; the series carries
    no candle beyond it.
    """

    normalized_predictions = np.asarray(model.predict(dataset.test_inputs), dtype=np.float64)
    test_predictions = np.atleast_1d(scaler.inverse_value(TARGET_COLUMN, normalized_predictions))
    test_actual = np.atleast_1d(scaler.inverse_value(TARGET_COLUMN, dataset.test_labels))

    future_prediction = scaler.inverse_value(TARGET_COLUMN, model.predict(dataset.future_window))

    labelled = dataset.labelled_test_records
    test_dates = [pd.Timestamp(value) for value in labelled["datetime"]]
    future_date = pd.Timestamp(dataset.test_records["datetime"].iloc[-1])

    try:
        pct = percentage_difference(future_prediction, float(test_predictions[-1]))
    except DegenerateMetricError as exc:
        logger.warning("Percentage difference undefined: %s", exc)
        pct = None

    return PredictionSummary(
        test_dates=test_dates,
        test_actual=[float(v) for v in test_actual],
        test_predictions=[float(v) for v in test_predictions],
        future_date=future_date,
        future_prediction=float(future_prediction),
        percentage_difference=pct,
        test_metrics=regression_metrics(test_actual, test_predictions),
    )
