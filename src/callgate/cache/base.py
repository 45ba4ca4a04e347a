"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/base.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One cached response row with expiration metadata."""

    key: str
    value: Any
    created_at_s: float
    expires_at_s: float

    def is_expired(self, now_s: float) -> bool:
        return now_s > self.expires_at_s


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Counters describing cache occupancy and effectiveness."""

    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    expirations: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class ResponseCacheBackend(Protocol):
    """Protocol implemented by caches used by the batch coordinator."""

    backend_id: str

    def lookup(self, key: str) -> tuple[Any, bool]: ...

    def store(self, key: str, value: Any) -> None: ...

    def evict_expired(self) -> int: ...
