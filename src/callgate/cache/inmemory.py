"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/inmemory.py.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from ..runtime.contracts import CachePolicy
from .base import CacheEntry, CacheStats, ResponseCacheBackend

logger = logging.getLogger("callgate.cache")


class ResponseCache(ResponseCacheBackend):
    """
    Process-local, content-addressed response cache.

    Entries expire ``ttl_s`` after insertion (checked lazily on lookup) and
    the oldest-inserted entry is evicted when a new key arrives at capacity.
    All operations hold one lock for a bounded, non-blocking section.
    """

    backend_id = "inmemory"

    def __init__(
        self,
        policy: CachePolicy | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy or CachePolicy()
        if self._policy.max_size < 0:
            raise ValueError("cache max_size must be >= 0")
        if self._policy.ttl_s <= 0:
            raise ValueError("cache ttl_s must be > 0")
        self._clock = clock
        # dict preserves insertion order; the first key is the oldest entry.
        self._rows: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def policy(self) -> CachePolicy:
        return self._policy

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def lookup(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, True)`` for a live entry, else ``(None, False)``."""
        with self._lock:
            row = self._rows.get(key)
            if row is None:
                self._misses += 1
                return None, False
            if row.is_expired(self._clock()):
                del self._rows[key]
                self._expirations += 1
                self._misses += 1
                return None, False
            self._hits += 1
            return row.value, True

    def store(self, key: str, value: Any) -> None:
        """Insert or overwrite ``key``; an overwrite counts as a fresh insertion."""
        if self._policy.max_size == 0:
            return
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at_s=now,
            expires_at_s=now + self._policy.ttl_s,
        )
        with self._lock:
            if key in self._rows:
                del self._rows[key]
            elif len(self._rows) >= self._policy.max_size:
                oldest = next(iter(self._rows))
                del self._rows[oldest]
                self._evictions += 1
                logger.debug("Cache full (%d); evicted oldest key %s", self._policy.max_size, oldest[:12])
            self._rows[key] = entry

    def evict_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, row in self._rows.items() if row.is_expired(now)]
            for key in expired:
                del self._rows[key]
            self._expirations += len(expired)
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    def delete(self, key: str) -> None:
        with self._lock:
            self._rows.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._rows),
                max_size=self._policy.max_size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
            )
