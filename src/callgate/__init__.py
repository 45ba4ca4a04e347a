"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

callgate: rate-limited, cached, retried batch execution of remote analysis
calls.
"""

from .builder import CoordinatorBuilder
from .cache import CacheEntry, CacheStats, ResponseCache, ResponseCacheBackend, content_key
from .coordinator import BatchCoordinator
from .errors import (
    AuthenticationError,
    CallGateConfigurationError,
    CallGateError,
    CallGateInfrastructureError,
    CallTimeoutError,
    ErrorKind,
    InvalidRequestError,
    ParseFailureError,
    RateLimitedError,
    RetryableCallError,
    ServerError,
    TerminalCallError,
    classify_error,
    format_error_for_user,
)
from .metrics import (
    CoordinatorMetrics,
    InMemoryCoordinatorMetrics,
    NoOpCoordinatorMetrics,
    PrometheusCoordinatorMetrics,
)
from .parsing import json_response_parser, parse_json_response
from .profiles import PROFILES
from .runtime import (
    BatchPolicy,
    CachePolicy,
    CoalescingPolicy,
    RateLimiter,
    RateLimiterStatus,
    RateLimitPolicy,
    RetryAttempt,
    RetryOutcome,
    RetryPolicy,
    TimeoutPolicy,
    backoff_delay,
)
from .settings import CoordinatorSettings
from .types import (
    AnalysisRequest,
    BatchItemResult,
    BatchResult,
    BatchSummary,
    Failure,
    Outcome,
    RemoteCaller,
    Success,
)

__all__ = [
    "AnalysisRequest",
    "AuthenticationError",
    "BatchCoordinator",
    "BatchItemResult",
    "BatchPolicy",
    "BatchResult",
    "BatchSummary",
    "CacheEntry",
    "CachePolicy",
    "CacheStats",
    "CallGateConfigurationError",
    "CallGateError",
    "CallGateInfrastructureError",
    "CallTimeoutError",
    "CoalescingPolicy",
    "CoordinatorBuilder",
    "CoordinatorMetrics",
    "CoordinatorSettings",
    "ErrorKind",
    "Failure",
    "InMemoryCoordinatorMetrics",
    "InvalidRequestError",
    "NoOpCoordinatorMetrics",
    "Outcome",
    "PROFILES",
    "ParseFailureError",
    "PrometheusCoordinatorMetrics",
    "RateLimitPolicy",
    "RateLimitedError",
    "RateLimiter",
    "RateLimiterStatus",
    "RemoteCaller",
    "ResponseCache",
    "ResponseCacheBackend",
    "RetryAttempt",
    "RetryOutcome",
    "RetryPolicy",
    "RetryableCallError",
    "ServerError",
    "Success",
    "TerminalCallError",
    "TimeoutPolicy",
    "backoff_delay",
    "classify_error",
    "content_key",
    "format_error_for_user",
    "json_response_parser",
    "parse_json_response",
]
