"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/__init__.py.
"""

from .coalescing import RequestCoalescer
from .contracts import (
    BatchPolicy,
    CachePolicy,
    CoalescingPolicy,
    RateLimitPolicy,
    TimeoutPolicy,
)
from .rate_limit import RateLimiter, RateLimiterStatus
from .retry import RetryAttempt, RetryOutcome, RetryPolicy, backoff_delay
from .timeouts import await_with_timeout

__all__ = [
    "RateLimiter",
    "RateLimiterStatus",
    "RequestCoalescer",
    "RetryAttempt",
    "RetryOutcome",
    "RetryPolicy",
    "backoff_delay",
    "await_with_timeout",
    "BatchPolicy",
    "CachePolicy",
    "CoalescingPolicy",
    "RateLimitPolicy",
    "TimeoutPolicy",
]
