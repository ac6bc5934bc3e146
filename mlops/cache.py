"""In-memory time-to-live cache for forecast results.

Entries are keyed by ``(symbol, interval)`` and replaced wholesale on
recomputation. Concurrent callers asking for the same missing key can share
a single in-flight computation.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300  # 5 minutes

T = TypeVar("T")
CacheKey = Tuple[str, str]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: Hashable
    value: T
    created_at: float


class ResultCache(Generic[T]):
    """Memoise results per key for ``ttl_seconds``.

    A ``ttl_seconds`` of ``None`` or ``0`` disables caching and every call
    recomputes. ``clock`` returns the current time in seconds and defaults to
    :func:`time.monotonic`.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        single_flight: bool = True,
    ) -> None:
        if ttl_seconds is not None and ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self.ttl_seconds = ttl_seconds
        self.single_flight = single_flight
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, CacheEntry[T]] = {}
        self._inflight: Dict[Hashable, Future] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.ttl_seconds)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.created_at < self.ttl_seconds

    def peek(self, key: Hashable, now: Optional[float] = None) -> Optional[CacheEntry[T]]:
        """Return the live entry for ``key`` without computing anything."""

        now = self._clock() if now is None else now
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not self.enabled or not self._is_fresh(entry, now):
            return None
        return entry

    def get(self, key: Hashable, compute_fn: Callable[[], T], now: Optional[float] = None) -> T:
        """Return the cached value for ``key`` or compute and store a new one.

        Exceptions raised by ``compute_fn`` propagate to every caller waiting
        on the computation and nothing is stored.
        """

        now = self._clock() if now is None else now
        if not self.enabled:
            return compute_fn()

        owner = True
        pending: Optional[Future] = None
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(entry, now):
                logger.debug("Cache hit for %s", key)
                return entry.value
            if self.single_flight:
                pending = self._inflight.get(key)
                if pending is None:
                    pending = Future()
                    self._inflight[key] = pending
                else:
                    owner = False

        if not owner:
            logger.debug("Waiting on in-flight computation for %s", key)
            return pending.result()

        logger.info("Cache miss for %s; computing", key)
        try:
            value = compute_fn()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            if pending is not None:
                pending.set_exception(exc)
            raise

        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, created_at=now)
            self._inflight.pop(key, None)
        if pending is not None:
            pending.set_result(value)
        return value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop the entry for ``key``, or every entry when ``key`` is None."""

        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
