from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    data: V
    inserted_at: float


class TTLCache(Generic[V]):
    """
    Bounded in-memory memo store.

    - expiry is checked lazily on `get` and in bulk by `cleanup`
    - at capacity the entry with the oldest insertion time is evicted
      (insertion order, not access recency)
    """

    def __init__(
        self,
        name: str,
        ttl_s: float,
        max_size: int = 1000,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.name = name
        self.ttl_s = ttl_s
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()
        logger.info("Cache '%s' initialized with TTL %ss, max size %s", name, ttl_s, max_size)

    def _expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.inserted_at > self.ttl_s

    def get(self, key: str) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, now):
                del self._entries[key]
                logger.debug("Cache '%s': entry '%s' expired", self.name, key)
                return None
        logger.debug("Cache '%s': hit for '%s'", self.name, key)
        return entry.data

    def set(self, key: str, value: V) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest = min(self._entries.items(), key=lambda kv: kv[1].inserted_at)[0]
                del self._entries[oldest]
                logger.debug("Cache '%s': evicted '%s' (size limit)", self.name, oldest)
            # entries are replaced whole, never edited
            self._entries[key] = CacheEntry(data=value, inserted_at=self._clock())

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cache '%s': cleared", self.name)

    def cleanup(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if self._expired(e, now)]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.info("Cache '%s': removed %s expired entries", self.name, len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None


class CacheJanitor:
    """Background tick that sweeps expired entries out of a set of caches."""

    def __init__(self, caches: Iterable[TTLCache[Any]], interval_s: float):
        self.caches = list(caches)
        self.interval_s = interval_s
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def sweep(self) -> int:
        return sum(c.cleanup() for c in self.caches)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache cleanup tick failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        logger.info("Starting cache cleanup every %ss", self.interval_s)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="cache-janitor", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 1.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout_s)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
