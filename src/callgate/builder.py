"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: builder.py.
"""

from __future__ import annotations

from pydantic import BaseModel

from .cache.base import ResponseCacheBackend
from .cache.inmemory import ResponseCache
from .coordinator import BatchCoordinator
from .errors import CallGateConfigurationError
from .metrics import CoordinatorMetrics
from .parsing import json_response_parser
from .profiles import PROFILES
from .runtime.contracts import (
    BatchPolicy,
    CachePolicy,
    CoalescingPolicy,
    RateLimitPolicy,
    TimeoutPolicy,
)
from .runtime.rate_limit import RateLimiter
from .runtime.retry import RetryPolicy
from .settings import CoordinatorSettings
from .types import RemoteCaller, ResponseParser


class CoordinatorBuilder:
    """Builder-first DX for assembling batch coordinators."""

    def __init__(self) -> None:
        self._settings = CoordinatorSettings.from_env()
        self._caller: RemoteCaller | None = None
        self._rate_limiter: RateLimiter | None = None
        self._cache: ResponseCacheBackend | None = None
        self._parser: ResponseParser | None = None
        self._metrics: CoordinatorMetrics | None = None

        self._retry_policy: RetryPolicy | None = None
        self._timeout_policy: TimeoutPolicy | None = None
        self._rate_limit_policy: RateLimitPolicy | None = None
        self._cache_policy: CachePolicy | None = None
        self._coalescing_policy: CoalescingPolicy | None = None
        self._batch_policy: BatchPolicy | None = None

    def settings(self, settings: CoordinatorSettings) -> "CoordinatorBuilder":
        """Replace builder settings with an explicit `CoordinatorSettings` instance."""
        self._settings = settings
        return self

    def profile(self, name: str) -> "CoordinatorBuilder":
        """Apply one named profile from `callgate.profiles.PROFILES`."""
        key = name.strip().lower()
        row = PROFILES.get(key)
        if row is None:
            raise CallGateConfigurationError(f"Unknown coordinator profile '{name}'")
        self._retry_policy = row["retry"]
        self._timeout_policy = row["timeout"]
        self._rate_limit_policy = row["rate_limit"]
        self._cache_policy = row["cache"]
        self._coalescing_policy = row["coalescing"]
        self._batch_policy = row["batch"]
        return self

    def with_caller(self, caller: RemoteCaller) -> "CoordinatorBuilder":
        """Set the outbound remote call."""
        self._caller = caller
        return self

    def with_rate_limiter(self, rate_limiter: RateLimiter) -> "CoordinatorBuilder":
        """Share an existing limiter instead of creating one from policy."""
        self._rate_limiter = rate_limiter
        return self

    def with_cache(self, cache: ResponseCacheBackend) -> "CoordinatorBuilder":
        """Share an existing cache instead of creating one from policy."""
        self._cache = cache
        return self

    def with_retry(self, policy: RetryPolicy) -> "CoordinatorBuilder":
        self._retry_policy = policy
        return self

    def with_parser(self, parser: ResponseParser) -> "CoordinatorBuilder":
        """Set a response parser; parser exceptions become `PARSE_ERROR` failures."""
        self._parser = parser
        return self

    def with_response_model(self, model: type[BaseModel]) -> "CoordinatorBuilder":
        """Decode JSON responses and validate them against a pydantic model."""
        self._parser = json_response_parser(model)
        return self

    def with_metrics(self, metrics: CoordinatorMetrics) -> "CoordinatorBuilder":
        self._metrics = metrics
        return self

    def build(self) -> BatchCoordinator:
        """Materialize one configured `BatchCoordinator` instance."""
        if self._caller is None:
            raise CallGateConfigurationError("CoordinatorBuilder.build() requires with_caller()")

        settings = self._settings
        rate_limiter = self._rate_limiter or RateLimiter(
            self._rate_limit_policy or settings.rate_limit_policy()
        )
        cache = self._cache
        if cache is None:
            cache_policy = self._cache_policy or settings.cache_policy()
            if cache_policy.enabled:
                cache = ResponseCache(cache_policy)

        return BatchCoordinator(
            self._caller,
            rate_limiter=rate_limiter,
            cache=cache,
            retry_policy=self._retry_policy or settings.retry_policy(),
            timeout_policy=self._timeout_policy or settings.timeout_policy(),
            coalescing_policy=self._coalescing_policy or settings.coalescing_policy(),
            batch_policy=self._batch_policy or settings.batch_policy(),
            parser=self._parser,
            metrics=self._metrics,
        )
