"""Forecast service running fetch + training on a worker pool behind a cache."""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

import pandas as pd

from mlops.cache import CacheKey, ResultCache
from mlops.data_loader import fetch_candles
from mlops.pipeline import ForecastResult, PipelineConfig, run_forecast

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "BTC"
DEFAULT_INTERVAL = "1d"
DEFAULT_MAX_WORKERS = 2

CandleFetcher = Callable[[str, str], pd.DataFrame]


class ForecastService:
    """Submit forecasts for ``(symbol, interval)`` pairs to a thread pool.

    Results are memoised in ``cache``; the computation itself always runs to
    completion even when a caller stops waiting on it.
    """

    def __init__(
        self,
        fetcher: CandleFetcher = fetch_candles,
        config: Optional[PipelineConfig] = None,
        cache: Optional[ResultCache[ForecastResult]] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self.fetcher = fetcher
        self.config = config or PipelineConfig()
        self.cache: ResultCache[ForecastResult] = cache if cache is not None else ResultCache()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="forecast")

    def compute(self, symbol: str, interval: str) -> ForecastResult:
        """Fetch candles and run the pipeline, bypassing the cache."""

        candles = self.fetcher(symbol, interval)
        logger.info("Running forecast for %s %s on %d candles", symbol, interval, len(candles))
        return run_forecast(candles, self.config)

    def submit(self, symbol: str = DEFAULT_SYMBOL, interval: str = DEFAULT_INTERVAL) -> "Future[ForecastResult]":
        key: CacheKey = (symbol, interval)
        return self.executor.submit(self.cache.get, key, lambda: self.compute(symbol, interval))

    def forecast(
        self,
        symbol: str = DEFAULT_SYMBOL,
        interval: str = DEFAULT_INTERVAL,
        timeout: Optional[float] = None,
    ) -> ForecastResult:
        """Block until the forecast is ready.

        Raises :class:`concurrent.futures.TimeoutError` when ``timeout`` elapses
        first.
        """

        return self.submit(symbol, interval).result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
