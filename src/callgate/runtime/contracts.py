"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Typed runtime policies for coordinated remote analysis calls.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """Rolling-window call ceiling plus global in-flight ceiling."""

    max_calls_per_window: int = 50
    window_s: float = 60.0
    max_concurrency: int = 10


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    """Per-attempt timeout applied to each remote call."""

    request_timeout_s: float | None = 30.0


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """Response cache controls."""

    enabled: bool = True
    max_size: int = 1000
    ttl_s: float = 3600.0


@dataclass(frozen=True, slots=True)
class CoalescingPolicy:
    """In-flight request deduplication controls."""

    enabled: bool = True


@dataclass(frozen=True, slots=True)
class BatchPolicy:
    """Worker pool sizing for one batch run."""

    max_concurrency: int = 5
