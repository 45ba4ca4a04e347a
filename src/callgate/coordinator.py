"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Batch coordinator: cache -> rate limit -> retry -> remote call -> cache write,
executed by a bounded worker pool with per-item failure isolation.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

from .cache.base import ResponseCacheBackend
from .cache.keys import content_key
from .errors import CallGateError, ParseFailureError, format_error_for_user
from .metrics import CoordinatorMetrics, NoOpCoordinatorMetrics
from .runtime.coalescing import RequestCoalescer
from .runtime.contracts import BatchPolicy, CoalescingPolicy, TimeoutPolicy
from .runtime.rate_limit import RateLimiter
from .runtime.retry import RetryAttempt, RetryPolicy, Sleep
from .runtime.timeouts import await_with_timeout
from .types import (
    AnalysisRequest,
    BatchItemResult,
    BatchResult,
    BatchSummary,
    Failure,
    Outcome,
    RemoteCaller,
    ResponseParser,
    Success,
)

logger = logging.getLogger("callgate.coordinator")

ResultSink = Callable[[BatchItemResult], None]


class BatchCoordinator:
    """
    Runs analysis requests against a remote caller under shared admission
    control, caching and retry policies.

    The rate limiter and cache are explicit instances; pass the same ones to
    every coordinator that should share a provider budget or cached results.
    Per-item failures are captured as ``Failure`` outcomes and never abort a
    batch. Only infrastructure faults propagate.
    """

    def __init__(
        self,
        caller: RemoteCaller,
        *,
        rate_limiter: RateLimiter,
        cache: ResponseCacheBackend | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_policy: TimeoutPolicy | None = None,
        coalescing_policy: CoalescingPolicy | None = None,
        batch_policy: BatchPolicy | None = None,
        parser: ResponseParser | None = None,
        metrics: CoordinatorMetrics | None = None,
        sleep: Sleep | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._caller = caller
        self._rate_limiter = rate_limiter
        self._cache = cache
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeout_policy = timeout_policy or TimeoutPolicy()
        self._coalescing_policy = coalescing_policy or CoalescingPolicy()
        self._batch_policy = batch_policy or BatchPolicy()
        self._parser = parser
        self._metrics: CoordinatorMetrics = metrics or NoOpCoordinatorMetrics()
        self._sleep = sleep
        self._rng = rng
        self._coalescer: RequestCoalescer[tuple[Outcome, int]] = RequestCoalescer()

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def cache(self) -> ResponseCacheBackend | None:
        return self._cache

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    async def run_one(self, request: AnalysisRequest) -> BatchItemResult:
        """Run the full per-item pipeline for one request."""
        started = time.perf_counter()
        try:
            key = content_key(request.payload, request.classification)
        except CallGateError as error:
            logger.warning("Request %s rejected before dispatch: %s", request.id, error.message)
            failure = Failure(
                kind=error.kind,
                message=format_error_for_user(error),
                retryable=error.retryable,
            )
            return self._finish(request, failure, started)

        if self._cache is not None:
            value, found = self._cache.lookup(key)
            if found:
                self._metrics.incr("cache_hits_total")
                logger.debug("Cache hit for request %s", request.id)
                return self._finish(request, Success(value), started, cached=True)
            self._metrics.incr("cache_misses_total")

        shared = False
        if self._coalescing_policy.enabled:
            (outcome, attempts), shared = await self._coalescer.run(
                key,
                lambda: self._call_remote(request, key),
            )
            if shared:
                attempts = 0
                self._metrics.incr("items_coalesced_total")
                logger.debug("Request %s shared an identical in-flight call", request.id)
        else:
            outcome, attempts = await self._call_remote(request, key)

        return self._finish(
            request,
            outcome,
            started,
            attempts=attempts,
            coalesced=shared,
        )

    async def _call_remote(self, request: AnalysisRequest, key: str) -> tuple[Outcome, int]:
        """Execute one logical remote call; one limiter slot per attempt."""

        async def _attempt() -> Any:
            async with self._rate_limiter.slot():
                self._metrics.incr("remote_calls_total")
                raw = await await_with_timeout(
                    self._caller(request.payload, request.classification),
                    self._timeout_policy.request_timeout_s,
                )
            return self._parse(raw)

        def _on_retry(attempt: RetryAttempt) -> None:
            kind = attempt.error.kind if attempt.error is not None else "UNKNOWN"
            self._metrics.incr("retries_total", tags={"kind": kind})

        result = await self._retry_policy.execute(
            _attempt,
            sleep=self._sleep,
            rng=self._rng,
            on_retry=_on_retry,
        )
        if result.ok:
            if self._cache is not None:
                self._cache.store(key, result.value)
            return Success(result.value), result.attempts

        error = result.error
        if error is None:  # pragma: no cover
            raise RuntimeError("RetryOutcome without value or error")
        message = format_error_for_user(error)
        if error.retryable:
            message += f"\nGave up after {result.attempts} attempt(s)"
        logger.warning(
            "Request %s failed (%s) after %d attempt(s): %s (metadata=%s)",
            request.id,
            error.kind,
            result.attempts,
            error.message,
            request.metadata,
        )
        return (
            Failure(kind=error.kind, message=message, retryable=error.retryable),
            result.attempts,
        )

    def _parse(self, raw: Any) -> Any:
        if self._parser is None:
            return raw
        try:
            return self._parser(raw)
        except CallGateError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ParseFailureError(
                f"Could not parse response: {type(exc).__name__}: {exc}",
                cause=exc,
            ) from exc

    def _finish(
        self,
        request: AnalysisRequest,
        outcome: Outcome,
        started: float,
        *,
        cached: bool = False,
        coalesced: bool = False,
        attempts: int = 0,
    ) -> BatchItemResult:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if isinstance(outcome, Success):
            self._metrics.incr("items_succeeded_total")
        else:
            self._metrics.incr("items_failed_total", tags={"kind": outcome.kind})
        self._metrics.observe("item_duration_ms", duration_ms)
        return BatchItemResult(
            request_id=request.id,
            outcome=outcome,
            cached=cached,
            coalesced=coalesced,
            attempts=attempts,
            duration_ms=duration_ms,
            metadata=request.metadata,
        )

    def _resolve_workers(self, requested: int | None, count: int) -> int:
        workers = requested if requested is not None else self._batch_policy.max_concurrency
        if workers < 1:
            raise ValueError("max_concurrency must be >= 1")
        ceiling = self._rate_limiter.max_concurrency
        if workers > ceiling:
            logger.warning(
                "Batch concurrency %d exceeds rate limiter ceiling %d; clamping",
                workers,
                ceiling,
            )
            workers = ceiling
        return min(workers, count)

    async def _worker(
        self,
        pending: asyncio.Queue[AnalysisRequest],
        cancel_event: asyncio.Event,
        emit: ResultSink,
    ) -> None:
        while not cancel_event.is_set():
            try:
                request = pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            emit(await self.run_one(request))

    async def _run_workers(
        self,
        requests: Sequence[AnalysisRequest],
        *,
        max_concurrency: int | None,
        cancel_event: asyncio.Event,
        emit: ResultSink,
    ) -> list[str]:
        """Drain ``requests`` with a fixed worker pool; return skipped ids."""
        pending: asyncio.Queue[AnalysisRequest] = asyncio.Queue()
        for request in requests:
            pending.put_nowait(request)

        worker_count = self._resolve_workers(max_concurrency, len(requests))
        tasks = [
            asyncio.create_task(self._worker(pending, cancel_event, emit))
            for _ in range(worker_count)
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        skipped: list[str] = []
        while not pending.empty():
            skipped.append(pending.get_nowait().id)
        return skipped

    async def run_batch(
        self,
        requests: Sequence[AnalysisRequest],
        *,
        max_concurrency: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """
        Run every request and return the summary plus per-item results.

        Once ``cancel_event`` is set, workers stop dequeuing; in-flight items
        finish and undequeued requests are reported in ``skipped``.
        """
        cancel = cancel_event or asyncio.Event()
        started = time.perf_counter()
        results: list[BatchItemResult] = []
        skipped = await self._run_workers(
            requests,
            max_concurrency=max_concurrency,
            cancel_event=cancel,
            emit=results.append,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        summary = BatchSummary.from_results(results, cancelled=cancel.is_set())
        logger.info(
            "Batch finished (total=%d, succeeded=%d, failed=%d, cache_hits=%d, skipped=%d, elapsed=%.0fms)",
            summary.total,
            summary.succeeded,
            summary.failed,
            summary.cache_hits,
            len(skipped),
            elapsed_ms,
        )
        return BatchResult(
            summary=summary,
            results=tuple(results),
            skipped=tuple(skipped),
            elapsed_ms=elapsed_ms,
        )

    async def iter_batch(
        self,
        requests: Sequence[AnalysisRequest],
        *,
        max_concurrency: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[BatchItemResult]:
        """Yield item results in completion order while the batch runs."""
        cancel = cancel_event or asyncio.Event()
        completed: asyncio.Queue[BatchItemResult | None] = asyncio.Queue()
        driver = asyncio.create_task(
            self._run_workers(
                requests,
                max_concurrency=max_concurrency,
                cancel_event=cancel,
                emit=completed.put_nowait,
            )
        )
        driver.add_done_callback(lambda _: completed.put_nowait(None))
        try:
            while True:
                row = await completed.get()
                if row is None:
                    break
                yield row
            await driver
        finally:
            if not driver.done():
                driver.cancel()
                await asyncio.gather(driver, return_exceptions=True)

    def run_batch_sync(
        self,
        requests: Sequence[AnalysisRequest],
        *,
        max_concurrency: int | None = None,
    ) -> BatchResult:
        """Sync wrapper for batch execution."""
        return asyncio.run(self.run_batch(requests, max_concurrency=max_concurrency))
