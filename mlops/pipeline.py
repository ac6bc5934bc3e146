"""End-to-end forecasting pipeline from raw candles to denormalized predictions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

import pandas as pd

from mlops.evaluation import assemble_predictions
from mlops.features import FEATURE_COLUMNS, RSI_PERIOD, SMA_PERIODS, add_indicators
from mlops.normalization import MaxScaler
from mlops.split import TRAIN_FRACTION, chronological_split
from mlops.windows import INPUT_SIZE, MIN_RECORDS, build_dataset, ensure_sufficient
from models.lstm_model import LSTMForecaster, LSTMTrainingConfig

logger = logging.getLogger(__name__)

SCALE_SCOPES = ("full", "train")


@dataclass
class PipelineConfig:
    input_size: int = INPUT_SIZE
    train_fraction: float = TRAIN_FRACTION
    min_records: int = MIN_RECORDS
    feature_columns: Tuple[str, ...] = tuple(FEATURE_COLUMNS)
    sma_periods: Mapping[str, int] = field(default_factory=lambda: dict(SMA_PERIODS))
    rsi_period: int = RSI_PERIOD
    # "full" fits scale factors on the whole series, test partition included.
    # "train" fits them on the training partition only.
    scale_scope: str = "full"
    seed: Optional[int] = None
    training: LSTMTrainingConfig = field(default_factory=LSTMTrainingConfig)

    def __post_init__(self) -> None:
        if self.scale_scope not in SCALE_SCOPES:
            raise ValueError(f"scale_scope must be one of {SCALE_SCOPES}, got {self.scale_scope!r}")
        if self.input_size <= 0:
            raise ValueError("input_size must be positive")


@dataclass(frozen=True)
class ForecastResult:
    historical: Tuple[Tuple[pd.Timestamp, float], ...]
    test_dates: Tuple[pd.Timestamp, ...]
    test_actual: Tuple[float, ...]
    test_predictions: Tuple[float, ...]
    future_date: pd.Timestamp
    future_prediction: float
    percentage_difference: Optional[float]
    loss_history: Tuple[float, ...]
    test_metrics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        """JSON-ready payload with ISO-8601 dates."""

        return {
            "historical": [
                {"date": date.isoformat(), "close": float(close)} for date, close in self.historical
            ],
            "testDates": [date.isoformat() for date in self.test_dates],
            "testActual": list(self.test_actual),
            "testPredictions": list(self.test_predictions),
            "futureDate": self.future_date.isoformat(),
            "futurePrediction": self.future_prediction,
            "percentageDifference": self.percentage_difference,
            "lossHistory": list(self.loss_history),
            "testMetrics": dict(self.test_metrics),
        }


def _ensure_datetime(candles: pd.DataFrame) -> pd.DataFrame:
    candles = candles.sort_values("timestamp").reset_index(drop=True)
    if "datetime" not in candles.columns:
        candles["datetime"] = pd.to_datetime(candles["timestamp"], unit="ms", utc=True)
    return candles


def fit_scaler(usable: pd.DataFrame, config: PipelineConfig) -> MaxScaler:
    """Fit scale factors over the records selected by ``config.scale_scope``."""

    if config.scale_scope == "train":
        basis, _ = chronological_split(usable, config.train_fraction)
    else:
        basis = usable
    return MaxScaler().fit(basis, config.feature_columns)


def run_forecast(candles: pd.DataFrame, config: Optional[PipelineConfig] = None) -> ForecastResult:
    """Train a fresh model on ``candles`` and forecast the test range.

    Raises
    ------
    InsufficientDataError
        Before any model is built, when too few usable records are available.
    """

    cfg = config or PipelineConfig()
    columns = list(cfg.feature_columns)

    candles = _ensure_datetime(candles)
    enriched = add_indicators(candles, sma_periods=cfg.sma_periods, rsi_period=cfg.rsi_period)
    usable = ensure_sufficient(enriched, columns, cfg.min_records)

    scaler = fit_scaler(usable, cfg)
    normalized = scaler.transform(usable)
    dataset = build_dataset(
        normalized,
        columns,
        input_size=cfg.input_size,
        train_fraction=cfg.train_fraction,
        min_records=cfg.min_records,
    )
    logger.info(
        "Built dataset: %d records, split at %d, %d training / %d testing windows",
        len(normalized),
        dataset.split_index,
        len(dataset.train_inputs),
        len(dataset.test_inputs),
    )

    model = LSTMForecaster(
        input_size=cfg.input_size,
        n_features=dataset.n_features,
        config=cfg.training,
        seed=cfg.seed,
    )
    loss_history = model.fit(dataset.train_inputs, dataset.train_labels)
    logger.info("Training finished after %d epochs (final loss %.6f)", len(loss_history), loss_history[-1])

    summary = assemble_predictions(model, dataset, scaler)
    historical = tuple(
        (pd.Timestamp(date), float(close)) for date, close in zip(usable["datetime"], usable["close"])
    )
    return ForecastResult(
        historical=historical,
        test_dates=tuple(summary.test_dates),
        test_actual=tuple(summary.test_actual),
        test_predictions=tuple(summary.test_predictions),
        future_date=summary.future_date,
        future_prediction=summary.future_prediction,
        percentage_difference=summary.percentage_difference,
        loss_history=tuple(loss_history),
        test_metrics=dict(summary.test_metrics),
    )
