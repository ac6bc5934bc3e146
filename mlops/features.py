"""Causal technical indicators for candle frames."""
from __future__ import annotations

from typing import Mapping

import numpy as np
import pandas as pd

FEATURE_COLUMNS = ["open", "high", "low", "close", "volume", "rsi"]

# Column name -> lookback period.
SMA_PERIODS = {"sma_signal": 3, "sma_fast": 5, "sma_slow": 8}
RSI_PERIOD = 14
INDICATOR_SENTINEL = 0.0


def sma(closes: pd.Series, period: int) -> pd.Series:
    """Simple moving average; NaN until ``period`` closes are available."""

    if period <= 0:
        raise ValueError("period must be positive")
    closes = pd.Series(closes, dtype="float64")
    return closes.rolling(window=period, min_periods=period).mean()


def rsi(closes: pd.Series, period: int = RSI_PERIOD) -> pd.Series:
    """Wilder relative strength index.

    The first value is defined at index ``period`` and uses the simple mean of
    the first ``period`` close-to-close gains and losses. Later values apply
    Wilder smoothing ``avg = (prev * (period - 1) + current) / period``.
    """

    if period <= 0:
        raise ValueError("period must be positive")
    closes = pd.Series(closes, dtype="float64")
    values = closes.to_numpy()
    out = np.full(len(values), np.nan)
    if len(values) <= period:
        return pd.Series(out, index=closes.index)

    deltas = np.diff(values)
    gains = np.clip(deltas, 0.0, None)
    losses = np.clip(-deltas, 0.0, None)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_value(avg_gain, avg_loss)
    for i in range(period + 1, len(values)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = _rsi_value(avg_gain, avg_loss)
    return pd.Series(out, index=closes.index)


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def add_indicators(
    df: pd.DataFrame,
    sma_periods: Mapping[str, int] | None = None,
    rsi_period: int = RSI_PERIOD,
) -> pd.DataFrame:
    """Return a copy of ``df`` with SMA and RSI columns appended.

    The returned dataframe keeps the same index/order as the input. Indicator
    values that are not yet defined hold :data:`INDICATOR_SENTINEL`.
    """

    periods = dict(SMA_PERIODS if sma_periods is None else sma_periods)
    enriched = df.copy()
    if enriched.empty:
        for column in [*periods, "rsi"]:
            enriched[column] = pd.Series(dtype="float64")
        return enriched

    closes = enriched["close"].astype("float64")
    for column, period in periods.items():
        enriched[column] = sma(closes, period).fillna(INDICATOR_SENTINEL)
    enriched["rsi"] = rsi(closes, rsi_period).fillna(INDICATOR_SENTINEL)
    return enriched
