"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/rate_limit.py.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from ..errors import CallGateInfrastructureError
from .contracts import RateLimitPolicy

logger = logging.getLogger("callgate.rate_limit")

# Minimum timer delay so a wake-up that fires a hair early does not spin.
_MIN_WAKE_S = 0.001


@dataclass(frozen=True, slots=True)
class RateLimiterStatus:
    """Point-in-time view of limiter occupancy."""

    in_flight: int
    waiting: int
    calls_in_window: int
    max_calls_per_window: int
    max_concurrency: int
    window_s: float


class RateLimiter:
    """
    Concurrency-safe admission control for remote calls.

    A call is admitted when fewer than ``max_calls_per_window`` calls were
    admitted in the trailing ``window_s`` and fewer than ``max_concurrency``
    admitted calls are still in flight. Waiters are admitted strictly in
    arrival order. Share one instance between every coordinator that talks
    to the same provider account.
    """

    def __init__(self, policy: RateLimitPolicy | None = None) -> None:
        self._policy = policy or RateLimitPolicy()
        if self._policy.max_calls_per_window <= 0:
            raise ValueError("max_calls_per_window must be > 0")
        if self._policy.window_s <= 0:
            raise ValueError("window_s must be > 0")
        if self._policy.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")

        self._timestamps: deque[float] = deque()
        self._in_flight = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.Lock()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    @property
    def max_concurrency(self) -> int:
        """Global in-flight ceiling shared by every user of this limiter."""
        return self._policy.max_concurrency

    async def acquire(self) -> None:
        """Suspend until both the window and the in-flight ceiling admit a call."""
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        with self._lock:
            if self._loop is not loop:
                # Timers from a previous event loop can never fire here.
                self._timer = None
                self._loop = loop
            self._waiters.append(waiter)
            wake_in = self._admit_locked()
            if not waiter.done():
                logger.debug(
                    "Rate limit saturated; caller queued (waiting=%d, in_flight=%d, window_calls=%d)",
                    len(self._waiters),
                    self._in_flight,
                    len(self._timestamps),
                )
        self._schedule(loop, wake_in)

        try:
            await waiter
        except asyncio.CancelledError:
            granted = waiter.done() and not waiter.cancelled()
            with self._lock:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            if granted:
                self.release()
            else:
                self._wake()
            raise

    def release(self) -> None:
        """Return one in-flight slot and admit the next waiter if possible."""
        with self._lock:
            if self._in_flight <= 0:
                raise CallGateInfrastructureError(
                    "RateLimiter.release() called without a matching acquire()"
                )
            self._in_flight -= 1
            wake_in = self._admit_locked()
        if self._loop is not None:
            self._schedule(self._loop, wake_in)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one admitted slot for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def status(self) -> RateLimiterStatus:
        with self._lock:
            self._prune_locked(time.monotonic())
            return RateLimiterStatus(
                in_flight=self._in_flight,
                waiting=sum(1 for waiter in self._waiters if not waiter.done()),
                calls_in_window=len(self._timestamps),
                max_calls_per_window=self._policy.max_calls_per_window,
                max_concurrency=self._policy.max_concurrency,
                window_s=self._policy.window_s,
            )

    def _prune_locked(self, now: float) -> None:
        window = self._policy.window_s
        while self._timestamps and now - self._timestamps[0] >= window:
            self._timestamps.popleft()

    def _admit_locked(self) -> float | None:
        """
        Admit waiters from the head of the queue.

        Returns seconds until the window frees a slot when the head is
        blocked by the window, otherwise ``None``.
        """
        now = time.monotonic()
        self._prune_locked(now)
        while self._waiters:
            head = self._waiters[0]
            if head.done():
                self._waiters.popleft()
                continue
            if self._in_flight >= self._policy.max_concurrency:
                return None
            if len(self._timestamps) >= self._policy.max_calls_per_window:
                return max(0.0, self._timestamps[0] + self._policy.window_s - now)
            self._waiters.popleft()
            self._timestamps.append(now)
            self._in_flight += 1
            head.set_result(None)
        return None

    def _schedule(self, loop: asyncio.AbstractEventLoop, wake_in: float | None) -> None:
        if wake_in is None:
            return
        delay = max(wake_in, _MIN_WAKE_S)
        deadline = loop.time() + delay
        if self._timer is not None:
            if self._timer.when() <= deadline:
                return
            self._timer.cancel()
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._wake()

    def _wake(self) -> None:
        with self._lock:
            wake_in = self._admit_locked()
        if self._loop is not None:
            self._schedule(self._loop, wake_in)
