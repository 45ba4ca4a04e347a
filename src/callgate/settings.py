"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Coordinator runtime settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import CallGateConfigurationError
from .runtime.contracts import (
    BatchPolicy,
    CachePolicy,
    CoalescingPolicy,
    RateLimitPolicy,
    TimeoutPolicy,
)
from .runtime.retry import RetryPolicy

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise CallGateConfigurationError(f"{name} must be a boolean, got '{raw}'")


def _env_number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise CallGateConfigurationError(
            f"{name} must be a {cast.__name__}, got '{raw}'", cause=exc
        ) from exc


@dataclass(frozen=True, slots=True)
class CoordinatorSettings:
    """Explicit settings used to assemble coordinator policies."""

    max_calls_per_window: int = 50
    window_s: float = 60.0
    max_concurrency: int = 10
    batch_concurrency: int = 5

    cache_enabled: bool = True
    cache_max_size: int = 1000
    cache_ttl_s: float = 3600.0

    retry_max_attempts: int = 3
    retry_base_delay_s: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay_s: float = 30.0
    retry_jitter_ratio: float = 0.2

    request_timeout_s: float | None = 30.0
    coalescing_enabled: bool = True

    def __post_init__(self) -> None:
        if self.max_calls_per_window <= 0:
            raise CallGateConfigurationError("max_calls_per_window must be > 0")
        if self.window_s <= 0:
            raise CallGateConfigurationError("window_s must be > 0")
        if self.max_concurrency <= 0:
            raise CallGateConfigurationError("max_concurrency must be > 0")
        if self.batch_concurrency <= 0:
            raise CallGateConfigurationError("batch_concurrency must be > 0")
        if self.cache_max_size < 0:
            raise CallGateConfigurationError("cache_max_size must be >= 0")
        if self.cache_ttl_s <= 0:
            raise CallGateConfigurationError("cache_ttl_s must be > 0")
        if self.request_timeout_s is not None and self.request_timeout_s <= 0:
            raise CallGateConfigurationError("request_timeout_s must be > 0 or None")
        try:
            self.retry_policy()
        except ValueError as exc:
            raise CallGateConfigurationError(f"Invalid retry settings: {exc}", cause=exc) from exc

    @staticmethod
    def from_env() -> "CoordinatorSettings":
        """Load settings from `CALLGATE_*` environment variables."""
        timeout = os.getenv("CALLGATE_REQUEST_TIMEOUT_S", "30")
        return CoordinatorSettings(
            max_calls_per_window=_env_number("CALLGATE_MAX_CALLS_PER_WINDOW", "50", int),
            window_s=_env_number("CALLGATE_WINDOW_S", "60", float),
            max_concurrency=_env_number("CALLGATE_MAX_CONCURRENCY", "10", int),
            batch_concurrency=_env_number("CALLGATE_BATCH_CONCURRENCY", "5", int),
            cache_enabled=_env_bool("CALLGATE_CACHE_ENABLED", True),
            cache_max_size=_env_number("CALLGATE_CACHE_MAX_SIZE", "1000", int),
            cache_ttl_s=_env_number("CALLGATE_CACHE_TTL_S", "3600", float),
            retry_max_attempts=_env_number("CALLGATE_RETRY_MAX_ATTEMPTS", "3", int),
            retry_base_delay_s=_env_number("CALLGATE_RETRY_BASE_DELAY_S", "1.0", float),
            retry_multiplier=_env_number("CALLGATE_RETRY_MULTIPLIER", "2.0", float),
            retry_max_delay_s=_env_number("CALLGATE_RETRY_MAX_DELAY_S", "30.0", float),
            retry_jitter_ratio=_env_number("CALLGATE_RETRY_JITTER_RATIO", "0.2", float),
            # "none" disables the per-attempt timeout.
            request_timeout_s=(
                None
                if timeout.strip().lower() == "none"
                else _env_number("CALLGATE_REQUEST_TIMEOUT_S", "30", float)
            ),
            coalescing_enabled=_env_bool("CALLGATE_COALESCING_ENABLED", True),
        )

    def rate_limit_policy(self) -> RateLimitPolicy:
        return RateLimitPolicy(
            max_calls_per_window=self.max_calls_per_window,
            window_s=self.window_s,
            max_concurrency=self.max_concurrency,
        )

    def cache_policy(self) -> CachePolicy:
        return CachePolicy(
            enabled=self.cache_enabled,
            max_size=self.cache_max_size,
            ttl_s=self.cache_ttl_s,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay_s=self.retry_base_delay_s,
            multiplier=self.retry_multiplier,
            max_delay_s=self.retry_max_delay_s,
            jitter_ratio=self.retry_jitter_ratio,
        )

    def timeout_policy(self) -> TimeoutPolicy:
        return TimeoutPolicy(request_timeout_s=self.request_timeout_s)

    def coalescing_policy(self) -> CoalescingPolicy:
        return CoalescingPolicy(enabled=self.coalescing_enabled)

    def batch_policy(self) -> BatchPolicy:
        return BatchPolicy(max_concurrency=self.batch_concurrency)
