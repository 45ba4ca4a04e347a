"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for coordinated remote calls.

Every failure that reaches the coordinator is mapped onto one of four kinds:

- ``TERMINAL``: caller/input problems (malformed payload, auth). Never retried.
- ``TRANSIENT``: timeouts, connection errors, 5xx-equivalents. Retried.
- ``RATE_LIMITED``: the provider asked us to slow down. Retried, honoring
  any ``retry_after_s`` hint.
- ``PARSE_ERROR``: the call succeeded at transport level but the response
  could not be understood. Terminal for that item only.
"""

from __future__ import annotations

import asyncio
import re
import socket
from collections.abc import Mapping
from typing import Any, Literal

ErrorKind = Literal["PARSE_ERROR", "RATE_LIMITED", "TRANSIENT", "TERMINAL"]

_RATE_LIMIT_PATTERN = re.compile(r"rate[ _]limit|too many requests|\b429\b")
_RETRYABLE_PATTERN = re.compile(
    r"overloaded|timeout|timed out|temporarily|service unavailable"
    r"|econnreset|etimedout|enotfound|network|\b50[234]\b"
)


class CallGateError(Exception):
    """Base error carrying a failure kind and retryability."""

    kind: ErrorKind = "TERMINAL"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.cause = cause


class TerminalCallError(CallGateError):
    """Non-retryable failure caused by the request itself."""


class InvalidRequestError(TerminalCallError):
    """Raised for malformed payloads and validation failures."""


class AuthenticationError(TerminalCallError):
    """Raised when the provider rejects credentials or permissions."""


class RetryableCallError(CallGateError):
    """Transient failure worth another attempt."""

    kind: ErrorKind = "TRANSIENT"
    retryable = True


class CallTimeoutError(RetryableCallError):
    """Raised when one remote attempt exceeds its timeout."""


class ServerError(RetryableCallError):
    """Raised for 5xx-equivalent provider failures."""


class RateLimitedError(RetryableCallError):
    """Raised when the provider signals throttling."""

    kind: ErrorKind = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        *,
        retry_after_s: float | None = None,
        status_code: int | None = 429,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, cause=cause)
        self.retry_after_s = retry_after_s


class ParseFailureError(CallGateError):
    """Raised when a transport-level success carries an unusable response."""

    kind: ErrorKind = "PARSE_ERROR"


class CallGateConfigurationError(CallGateError):
    """Raised when coordinator configuration cannot be resolved."""


class CallGateInfrastructureError(RuntimeError):
    """
    Programming/infrastructure fault inside the coordination layer itself.

    Never classified as a per-item failure: it aborts the whole batch.
    """


def _status_code_of(error: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def retry_after_hint(error: BaseException) -> float | None:
    """Extract a provider-supplied retry-after delay in seconds, if any."""
    for attr in ("retry_after_s", "retry_after"):
        value = getattr(error, attr, None)
        if isinstance(value, (int, float)) and value >= 0:
            return float(value)

    headers: Any = getattr(error, "headers", None)
    if headers is None:
        headers = getattr(getattr(error, "response", None), "headers", None)
    if isinstance(headers, Mapping):
        for name in ("retry-after", "Retry-After"):
            raw = headers.get(name)
            if raw is None:
                continue
            try:
                return max(0.0, float(raw))
            except (TypeError, ValueError):
                return None
    return None


def classify_error(error: BaseException) -> CallGateError:
    """Classify exceptions into retryable/terminal callgate errors."""
    if isinstance(error, CallGateError):
        return error
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, socket.timeout)):
        return CallTimeoutError(str(error) or "Remote call timed out", cause=error)
    message = str(error) or type(error).__name__
    if isinstance(error, (ConnectionError, OSError)):
        return RetryableCallError(message, cause=error)

    status = _status_code_of(error)
    if status is not None:
        if status == 429:
            return RateLimitedError(
                message,
                retry_after_s=retry_after_hint(error),
                cause=error,
            )
        if status in (401, 403):
            return AuthenticationError(message, status_code=status, cause=error)
        if status == 408:
            return CallTimeoutError(message, status_code=status, cause=error)
        if status >= 500:
            return ServerError(message, status_code=status, cause=error)
        if status >= 400:
            return InvalidRequestError(message, status_code=status, cause=error)

    lowered = message.lower()
    if _RATE_LIMIT_PATTERN.search(lowered):
        return RateLimitedError(
            message,
            retry_after_s=retry_after_hint(error),
            status_code=status,
            cause=error,
        )
    if _RETRYABLE_PATTERN.search(lowered):
        return RetryableCallError(message, status_code=status, cause=error)
    return TerminalCallError(message, status_code=status, cause=error)


def format_error_for_user(error: BaseException) -> str:
    """Render an error as a human-readable reason line."""
    classified = classify_error(error)
    text = f"[{classified.kind}] {classified.message}"
    if classified.status_code is not None:
        text += f" (status {classified.status_code})"
    if isinstance(classified, RateLimitedError) and classified.retry_after_s is not None:
        text += f"\nRetry after: {classified.retry_after_s:g}s"
    cause = classified.cause
    if cause is not None and str(cause) and str(cause) != classified.message:
        text += f"\nCaused by: {type(cause).__name__}: {cause}"
    return text
