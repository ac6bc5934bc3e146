"""Shared fixtures for the forecasting test-suite."""

import numpy as np
import pandas as pd
import pytest

DAY_MS = 86_400_000
START_MS = 1_700_000_000_000


def make_candles(closes, start_ms=START_MS, step_ms=DAY_MS):
    """Build a canonical candle frame around the given closes."""
    closes = np.asarray(closes, dtype=float)
    timestamps = start_ms + step_ms * np.arange(len(closes), dtype=np.int64)
    df = pd.DataFrame(
        {
            "timestamp": timestamps,
            "open": closes - 0.5,
            "high": closes + 1.0,
            "low": closes - 1.0,
            "close": closes,
            "volume": 1000.0 + np.arange(len(closes), dtype=float),
        }
    )
    df["datetime"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df


@pytest.fixture
def candle_factory():
    return make_candles


@pytest.fixture
def linear_candles():
    """40 daily candles with closes 100, 101, ..., 139."""
    return make_candles(np.arange(100, 140, dtype=float))


@pytest.fixture
def random_walk_candles():
    rng = np.random.default_rng(42)
    closes = 100 + np.cumsum(rng.normal(0, 2, size=120))
    return make_candles(np.abs(closes) + 1.0)
