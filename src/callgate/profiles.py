"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: profiles.py.
"""

from __future__ import annotations

from .runtime.contracts import (
    BatchPolicy,
    CachePolicy,
    CoalescingPolicy,
    RateLimitPolicy,
    TimeoutPolicy,
)
from .runtime.retry import RetryPolicy


PROFILES = {
    "development": {
        "retry": RetryPolicy(max_attempts=2, base_delay_s=0.2, max_delay_s=2.0, jitter_ratio=0.1),
        "timeout": TimeoutPolicy(request_timeout_s=60.0),
        "rate_limit": RateLimitPolicy(max_calls_per_window=100, window_s=60.0, max_concurrency=10),
        "cache": CachePolicy(enabled=True, max_size=200, ttl_s=300.0),
        "coalescing": CoalescingPolicy(enabled=True),
        "batch": BatchPolicy(max_concurrency=5),
    },
    "production": {
        "retry": RetryPolicy(max_attempts=3, base_delay_s=1.0, max_delay_s=30.0, jitter_ratio=0.2),
        "timeout": TimeoutPolicy(request_timeout_s=30.0),
        "rate_limit": RateLimitPolicy(max_calls_per_window=50, window_s=60.0, max_concurrency=10),
        "cache": CachePolicy(enabled=True, max_size=1000, ttl_s=3600.0),
        "coalescing": CoalescingPolicy(enabled=True),
        "batch": BatchPolicy(max_concurrency=5),
    },
    "conservative": {
        "retry": RetryPolicy(max_attempts=5, base_delay_s=2.0, max_delay_s=60.0, jitter_ratio=0.3),
        "timeout": TimeoutPolicy(request_timeout_s=45.0),
        "rate_limit": RateLimitPolicy(max_calls_per_window=20, window_s=60.0, max_concurrency=3),
        "cache": CachePolicy(enabled=True, max_size=5000, ttl_s=6 * 3600.0),
        "coalescing": CoalescingPolicy(enabled=True),
        "batch": BatchPolicy(max_concurrency=3),
    },
}
