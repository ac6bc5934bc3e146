"""Tests for technical indicators."""

import numpy as np
import pandas as pd
import pytest

from mlops.features import FEATURE_COLUMNS, INDICATOR_SENTINEL, SMA_PERIODS, add_indicators, rsi, sma


class TestSMA:
    """Tests for simple moving averages."""

    def test_sma_basic(self):
        result = sma(pd.Series([1.0, 2.0, 3.0, 4.0, 5.0]), 3)

        assert np.isnan(result[0])
        assert np.isnan(result[1])
        assert result[2] == pytest.approx(2.0)
        assert result[3] == pytest.approx(3.0)
        assert result[4] == pytest.approx(4.0)

    @pytest.mark.parametrize("period", [1, 3, 5, 8, 14])
    def test_sma_matches_trailing_mean(self, random_walk_candles, period):
        closes = random_walk_candles["close"]
        result = sma(closes, period)

        assert result.iloc[: period - 1].isna().all()
        for i in range(period - 1, len(closes)):
            expected = closes.iloc[i - period + 1 : i + 1].mean()
            assert result.iloc[i] == pytest.approx(expected, rel=1e-9)

    def test_sma_fourteen_on_linear_series(self, linear_candles):
        result = sma(linear_candles["close"], 14)

        assert result.iloc[:13].isna().all()
        assert result.iloc[13] == pytest.approx(106.5)

    def test_sma_insufficient_data(self):
        result = sma(pd.Series([100.0, 101.0]), 5)

        assert len(result) == 2
        assert result.isna().all()

    def test_sma_rejects_non_positive_period(self):
        with pytest.raises(ValueError):
            sma(pd.Series([1.0]), 0)


class TestRSI:
    """Tests for the Wilder RSI."""

    def test_rsi_bounded(self, random_walk_candles):
        result = rsi(random_walk_candles["close"], 14)

        assert result.iloc[:14].isna().all()
        defined = result.iloc[14:]
        assert defined.notna().all()
        assert ((defined >= 0) & (defined <= 100)).all()

    def test_rsi_monotonic_increase_is_100(self, linear_candles):
        result = rsi(linear_candles["close"], 14)

        assert (result.iloc[14:] == 100.0).all()

    def test_rsi_monotonic_decrease_is_0(self):
        result = rsi(pd.Series(np.arange(60, 20, -1, dtype=float)), 14)

        assert np.allclose(result.iloc[14:].to_numpy(), 0.0)

    def test_rsi_first_value_uses_simple_average(self):
        closes = pd.Series([10.0, 11.0, 10.5, 11.5, 11.0])
        result = rsi(closes, 2)

        # gains over first two deltas: 1.0, 0.0 -> 0.5; losses: 0.0, 0.5 -> 0.25
        assert result.iloc[2] == pytest.approx(100 - 100 / (1 + 0.5 / 0.25))
        # Wilder smoothing with the third delta (+1.0)
        avg_gain = (0.5 * 1 + 1.0) / 2
        avg_loss = (0.25 * 1 + 0.0) / 2
        assert result.iloc[3] == pytest.approx(100 - 100 / (1 + avg_gain / avg_loss))

    def test_rsi_short_series_undefined(self):
        result = rsi(pd.Series([1.0, 2.0, 3.0]), 14)

        assert len(result) == 3
        assert result.isna().all()


class TestAddIndicators:
    """Tests for candle enrichment."""

    def test_columns_and_length(self, linear_candles):
        enriched = add_indicators(linear_candles)

        assert len(enriched) == len(linear_candles)
        for column in [*SMA_PERIODS, "rsi"]:
            assert column in enriched.columns
        assert set(FEATURE_COLUMNS) <= set(enriched.columns)
        assert enriched["timestamp"].tolist() == linear_candles["timestamp"].tolist()

    def test_warm_up_uses_sentinel(self, linear_candles):
        enriched = add_indicators(linear_candles)

        assert (enriched["sma_slow"].iloc[:7] == INDICATOR_SENTINEL).all()
        assert enriched["sma_slow"].iloc[7] == pytest.approx(np.mean(np.arange(100, 108)))
        assert (enriched["rsi"].iloc[:14] == INDICATOR_SENTINEL).all()
        assert enriched["rsi"].iloc[14] == 100.0

    def test_input_not_mutated(self, linear_candles):
        before = linear_candles.copy()
        add_indicators(linear_candles)

        pd.testing.assert_frame_equal(linear_candles, before)

    def test_indicators_are_causal(self, random_walk_candles):
        base = add_indicators(random_walk_candles)
        altered = random_walk_candles.copy()
        altered.loc[altered.index[-1], "close"] *= 3
        changed = add_indicators(altered)

        cols = [*SMA_PERIODS, "rsi"]
        pd.testing.assert_frame_equal(base[cols].iloc[:-1], changed[cols].iloc[:-1])

    def test_custom_periods(self, linear_candles):
        enriched = add_indicators(linear_candles, sma_periods={"sma_14": 14})

        assert enriched["sma_14"].iloc[13] == pytest.approx(106.5)
        assert "sma_fast" not in enriched.columns

    def test_empty_frame(self, candle_factory):
        enriched = add_indicators(candle_factory([]))

        assert enriched.empty
        assert "rsi" in enriched.columns
