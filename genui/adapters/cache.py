from __future__ import annotations
"""In-memory result cache for the generation pipeline.

CacheStore – bounded TTL + LRU store keyed by derived request keys.
TTL counts from insertion; a hit refreshes recency only, never freshness.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from core.logging import logger

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheStore",
]


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    hits: int
    misses: int
    evictions: int
    hit_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CacheStore:
    """Thread-safe TTL cache with least-recently-used eviction.

    The OrderedDict keeps entries in recency order: the first item is the
    least recently used one, ``move_to_end`` marks a hit.
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 0:
            raise ValueError("max_size must be >= 0")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # ------------------------------------------------------------------
    @staticmethod
    def _check_key(key: Any) -> None:
        if not isinstance(key, str) or not key:
            raise ValueError("cache key must be a non-empty string")

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at > self._ttl

    def _evict_overflow(self) -> None:
        # caller holds the lock
        while len(self._store) > self._max_size:
            evicted_key, _ = self._store.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Cache evicted key {evicted_key[:12]}")

    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[Any]:
        self._check_key(key)
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry, self._clock()):
                del self._store[key]
                self._misses += 1
                return None
            self._store.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any) -> None:
        self._check_key(key)
        with self._lock:
            self._store.pop(key, None)
            self._store[key] = CacheEntry(value=value, stored_at=self._clock())
            self._evict_overflow()

    def invalidate(self, key: str) -> None:
        self._check_key(key)
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def size(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> CacheStats:
        with self._lock:
            lookups = self._hits + self._misses
            return CacheStats(
                size=len(self._store),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                hit_rate=self._hits / lookups if lookups else 0.0,
            )

    def configure(self, max_size: Optional[int] = None, ttl_seconds: Optional[float] = None) -> None:
        """Apply control-plane limits; shrinking evicts immediately."""
        with self._lock:
            if ttl_seconds is not None:
                if ttl_seconds <= 0:
                    raise ValueError("ttl_seconds must be > 0")
                self._ttl = ttl_seconds
            if max_size is not None:
                if max_size < 0:
                    raise ValueError("max_size must be >= 0")
                self._max_size = max_size
                self._evict_overflow()

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        # Presence check only: no stats, no recency change.
        with self._lock:
            entry = self._store.get(key)  # type: ignore[arg-type]
            return entry is not None and not self._expired(entry, self._clock())
