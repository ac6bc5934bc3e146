"""Tests for prediction assembly and metrics."""

import math

import numpy as np
import pytest

from mlops.errors import DegenerateMetricError
from mlops.evaluation import assemble_predictions, percentage_difference, regression_metrics
from mlops.features import FEATURE_COLUMNS, add_indicators
from mlops.normalization import MaxScaler
from mlops.windows import build_dataset


class _ConstantModel:
    """Predicts a fixed normalized value for every window."""

    def __init__(self, value):
        self.value = value

    def predict(self, windows):
        windows = np.asarray(windows)
        if windows.ndim == 2:
            return float(self.value)
        return np.full(len(windows), self.value, dtype=np.float64)


class _LastCloseModel:
    """Predicts the last normalized close inside each window."""

    close_idx = FEATURE_COLUMNS.index("close")

    def predict(self, windows):
        windows = np.asarray(windows, dtype=np.float64)
        if windows.ndim == 2:
            return float(windows[-1, self.close_idx])
        return windows[:, -1, self.close_idx]


@pytest.fixture
def prepared(linear_candles):
    scaler = MaxScaler()
    normalized = scaler.fit_transform(add_indicators(linear_candles), FEATURE_COLUMNS)
    return build_dataset(normalized, FEATURE_COLUMNS, input_size=7), scaler


class TestPercentageDifference:
    def test_basic(self):
        assert percentage_difference(110.0, 100.0) == pytest.approx(10.0)
        assert percentage_difference(90.0, 100.0) == pytest.approx(-10.0)

    def test_zero_reference(self):
        with pytest.raises(DegenerateMetricError):
            percentage_difference(1.0, 0.0)


class TestRegressionMetrics:
    def test_perfect_prediction(self):
        result = regression_metrics([1.0, 2.0], [1.0, 2.0])

        assert result == {"mae": 0.0, "rmse": 0.0, "mape": 0.0}

    def test_values(self):
        result = regression_metrics([100.0, 200.0], [110.0, 180.0])

        assert result["mae"] == pytest.approx(15.0)
        assert result["rmse"] == pytest.approx(math.sqrt((100 + 400) / 2))
        assert result["mape"] == pytest.approx(0.1)

    def test_empty(self):
        assert all(math.isnan(v) for v in regression_metrics([], []).values())


class TestAssemblePredictions:
    def test_denormalizes_with_close_scale(self, prepared):
        dataset, scaler = prepared
        summary = assemble_predictions(_LastCloseModel(), dataset, scaler)

        # The single test window ends at close 138; its label is 139.
        assert summary.test_predictions == [pytest.approx(138.0)]
        assert summary.test_actual == [pytest.approx(139.0)]
        assert summary.future_prediction == pytest.approx(139.0)
        assert summary.percentage_difference == pytest.approx((139.0 - 138.0) / 138.0 * 100)
        assert summary.test_metrics["mae"] == pytest.approx(1.0, rel=1e-5)

    def test_future_date_is_last_test_record(self, prepared, linear_candles):
        dataset, scaler = prepared
        summary = assemble_predictions(_LastCloseModel(), dataset, scaler)

        assert summary.future_date == linear_candles["datetime"].iloc[-1]
        assert summary.test_dates == [linear_candles["datetime"].iloc[-1]]

    def test_zero_prediction_is_degenerate(self, prepared):
        dataset, scaler = prepared
        summary = assemble_predictions(_ConstantModel(0.0), dataset, scaler)

        assert summary.percentage_difference is None
        assert summary.future_prediction == 0.0


def test_test_actual_matches_raw_closes_at_high_prices(candle_factory):
    rng = np.random.default_rng(5)
    closes = 67_000 + np.cumsum(rng.normal(0, 150, size=60))
    candles = candle_factory(closes)
    scaler = MaxScaler()
    normalized = scaler.fit_transform(add_indicators(candles), FEATURE_COLUMNS)
    dataset = build_dataset(normalized, FEATURE_COLUMNS, input_size=7)

    summary = assemble_predictions(_LastCloseModel(), dataset, scaler)

    # 60 records -> 12 testing records -> 5 windows labelled by the last 5 closes.
    np.testing.assert_allclose(summary.test_actual, closes[-5:], rtol=1e-9)
    np.testing.assert_allclose(summary.test_predictions, closes[-6:-1], rtol=1e-9)
    expected_pct = (closes[-1] - closes[-2]) / closes[-2] * 100
    assert summary.percentage_difference == pytest.approx(expected_pct, rel=1e-9)
