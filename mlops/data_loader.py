"""Candle loading from Binance klines and local Parquet files."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import pandas as pd
import requests

from mlops.errors import TransportError

logger = logging.getLogger(__name__)

BINANCE_REST = "https://api.binance.com/api/v3/klines"
DEFAULT_QUOTE_ASSET = "USDT"
DEFAULT_LIMIT = 500
REQUEST_TIMEOUT = 10

CANDLE_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume", "datetime"]


def empty_candles_frame() -> pd.DataFrame:
    """Return a dataframe with the expected candle columns but no rows."""

    return pd.DataFrame(columns=CANDLE_COLUMNS)


def _normalise_candles(df: pd.DataFrame) -> pd.DataFrame:
    """Enforce dtypes, ordering and uniqueness of a raw candle frame."""

    required = {"timestamp", "open", "high", "low", "close", "volume"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"Candle dataframe is missing required columns: {sorted(missing)}")

    df = df.astype(
        {
            "timestamp": "int64",
            "open": "float64",
            "high": "float64",
            "low": "float64",
            "close": "float64",
            "volume": "float64",
        }
    )
    df = df.drop_duplicates(subset="timestamp").sort_values("timestamp").reset_index(drop=True)
    df["datetime"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df[CANDLE_COLUMNS]


def candles_from_klines(rows: Iterable[Sequence]) -> pd.DataFrame:
    """Convert Binance kline rows into the canonical candle frame.

    Only the first six fields of each row (open time, open, high, low, close,
    volume) are read; anything after them is ignored.
    """

    rows = list(rows)
    if not rows:
        return empty_candles_frame()

    data = {
        "timestamp": [int(r[0]) for r in rows],
        "open": [float(r[1]) for r in rows],
        "high": [float(r[2]) for r in rows],
        "low": [float(r[3]) for r in rows],
        "close": [float(r[4]) for r in rows],
        "volume": [float(r[5]) for r in rows],
    }
    return _normalise_candles(pd.DataFrame(data))


def fetch_klines(
    symbol: str,
    interval: str,
    limit: int = DEFAULT_LIMIT,
    session: Optional[requests.Session] = None,
) -> pd.DataFrame:
    """Fetch the most recent ``limit`` klines for ``symbol`` quoted in USDT.

    Raises
    ------
    TransportError
        If the request fails or the provider returns an unexpected payload.
    """

    params = {
        "symbol": f"{symbol.upper()}{DEFAULT_QUOTE_ASSET}",
        "interval": interval,
        "limit": int(limit),
    }
    http = session or requests
    try:
        resp = http.get(BINANCE_REST, params=params, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        payload = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise TransportError(f"Failed to fetch klines for {params['symbol']} {interval}: {exc}") from exc

    if not isinstance(payload, list):
        raise TransportError(f"Unexpected kline payload for {params['symbol']}: {payload!r}")
    try:
        return candles_from_klines(payload)
    except (IndexError, TypeError, ValueError) as exc:
        raise TransportError(f"Malformed kline rows for {params['symbol']}: {exc}") from exc


def fetch_candles(
    symbol: str,
    interval: str,
    limit: int = DEFAULT_LIMIT,
    session: Optional[requests.Session] = None,
) -> pd.DataFrame:
    """Like :func:`fetch_klines` but degrades to an empty frame on failure."""

    try:
        return fetch_klines(symbol, interval, limit=limit, session=session)
    except TransportError as exc:
        logger.warning("Candle retrieval failed; continuing with no data: %s", exc)
        return empty_candles_frame()


def load_parquet(path: Union[str, Path]) -> pd.DataFrame:
    """Load a parquet candle dataset from ``path``.

    Parameters
    ----------
    path:
        Location of the parquet file.

    Returns
    -------
    pd.DataFrame
        DataFrame with canonical candle schema sorted by timestamp.
    """

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Parquet file not found: {file_path}")

    df = pd.read_parquet(file_path)
    rename_map = {}
    if "ts" in df.columns:
        rename_map["ts"] = "timestamp"
    if "open_time" in df.columns and "timestamp" not in rename_map:
        rename_map["open_time"] = "timestamp"
    df = df.rename(columns=rename_map)
    if "timestamp" not in df.columns:
        raise ValueError("Loaded dataframe is missing required 'timestamp' column")
    return _normalise_candles(df)
