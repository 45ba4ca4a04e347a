"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/retry.py.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..errors import (
    CallGateError,
    CallGateInfrastructureError,
    RateLimitedError,
    classify_error,
)

logger = logging.getLogger("callgate.retry")

Sleep = Callable[[float], Awaitable[Any]]
RetryCallback = Callable[["RetryAttempt"], None]


@dataclass(frozen=True, slots=True)
class RetryAttempt:
    """One attempt of a logical call."""

    attempt_number: int
    delay_before_s: float
    error: CallGateError | None = None


@dataclass(frozen=True, slots=True)
class RetryOutcome:
    """Result of a retried call: a value or the last classified error."""

    attempts: int
    value: Any = None
    error: CallGateError | None = None
    history: tuple[RetryAttempt, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


def backoff_delay(
    attempt_number: int,
    policy: "RetryPolicy",
    *,
    rng: random.Random | None = None,
) -> float:
    """
    Delay before ``attempt_number`` (2-based; the first attempt never waits).

    ``min(max_delay, base * multiplier ** (n - 2))`` perturbed by up to
    ``±jitter_ratio`` of itself, floored at zero.
    """
    if attempt_number < 2:
        return 0.0
    capped = min(
        policy.max_delay_s,
        policy.base_delay_s * policy.multiplier ** (attempt_number - 2),
    )
    if policy.jitter_ratio <= 0:
        return capped
    source = rng or random
    jitter = capped * policy.jitter_ratio * source.uniform(-1.0, 1.0)
    return max(0.0, capped + jitter)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential-backoff retry semantics for one logical call."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    multiplier: float = 2.0
    max_delay_s: float = 30.0
    jitter_ratio: float = 0.2
    honor_retry_after: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("retry delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if not 0 <= self.jitter_ratio < 1:
            raise ValueError("jitter_ratio must be in [0, 1)")

    def delay_for(
        self,
        attempt_number: int,
        error: CallGateError | None = None,
        *,
        rng: random.Random | None = None,
    ) -> float:
        """Backoff before ``attempt_number``, stretched to a provider hint."""
        delay = backoff_delay(attempt_number, self, rng=rng)
        if (
            self.honor_retry_after
            and isinstance(error, RateLimitedError)
            and error.retry_after_s is not None
        ):
            delay = max(delay, error.retry_after_s)
        return delay

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        *,
        sleep: Sleep | None = None,
        rng: random.Random | None = None,
        on_retry: RetryCallback | None = None,
    ) -> RetryOutcome:
        """
        Run ``operation`` until it succeeds, fails terminally, or exhausts
        ``max_attempts``.

        Failures never raise; the outcome carries the last classified error.
        Cancellation propagates untouched.
        """
        sleeper = sleep or asyncio.sleep
        history: list[RetryAttempt] = []
        delay = 0.0
        last: CallGateError | None = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.delay_for(attempt, last, rng=rng)
                logger.warning(
                    "Attempt %d/%d failed (%s), retrying in %.2fs: %s",
                    attempt - 1,
                    self.max_attempts,
                    last.kind if last else "UNKNOWN",
                    delay,
                    last,
                )
                if on_retry is not None:
                    on_retry(RetryAttempt(attempt_number=attempt, delay_before_s=delay, error=last))
                await sleeper(delay)

            try:
                value = await operation()
            except (asyncio.CancelledError, CallGateInfrastructureError):
                raise
            except Exception as error:  # noqa: BLE001
                last = classify_error(error)
                history.append(
                    RetryAttempt(attempt_number=attempt, delay_before_s=delay, error=last)
                )
                if not last.retryable:
                    logger.debug("Attempt %d failed with non-retryable %s", attempt, last.kind)
                    return RetryOutcome(attempts=attempt, error=last, history=tuple(history))
                continue

            history.append(RetryAttempt(attempt_number=attempt, delay_before_s=delay))
            return RetryOutcome(attempts=attempt, value=value, history=tuple(history))

        logger.error("Max retry attempts (%d) exceeded: %s", self.max_attempts, last)
        return RetryOutcome(attempts=self.max_attempts, error=last, history=tuple(history))
