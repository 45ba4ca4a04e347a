from __future__ import annotations

import asyncio

import pytest

from callgate import (
    AnalysisRequest,
    BatchCoordinator,
    BatchPolicy,
    CachePolicy,
    CallGateInfrastructureError,
    CoalescingPolicy,
    InMemoryCoordinatorMetrics,
    InvalidRequestError,
    RateLimiter,
    RateLimitPolicy,
    ResponseCache,
    RetryPolicy,
    ServerError,
    TimeoutPolicy,
)


def run_async(coro):
    return asyncio.run(coro)


async def no_sleep(delay: float) -> None:
    _ = delay


def make_limiter(*, max_concurrency: int = 10, max_calls: int = 1000) -> RateLimiter:
    return RateLimiter(
        RateLimitPolicy(max_calls_per_window=max_calls, window_s=60.0, max_concurrency=max_concurrency)
    )


def make_requests(count: int, *, prefix: str = "doc") -> list[AnalysisRequest]:
    return [
        AnalysisRequest(id=f"r{index:03d}", payload=f"{prefix}-{index}", classification="invoice")
        for index in range(count)
    ]


class EchoProvider:
    def __init__(self, *, latency_s: float = 0.0) -> None:
        self.latency_s = latency_s
        self.calls = 0
        self.active = 0
        self.peak = 0

    async def __call__(self, payload, classification: str):
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.latency_s)
            if "bad" in str(payload):
                raise InvalidRequestError(f"rejected {payload}", status_code=400)
            return {"payload": payload, "classification": classification}
        finally:
            self.active -= 1


def test_partial_failures_do_not_abort_the_batch():
    async def scenario() -> None:
        requests = make_requests(7) + make_requests(3, prefix="bad")
        requests = [
            AnalysisRequest(id=f"item-{index}", payload=row.payload, classification=row.classification)
            for index, row in enumerate(requests)
        ]
        coordinator = BatchCoordinator(
            EchoProvider(),
            rate_limiter=make_limiter(),
            retry_policy=RetryPolicy(max_attempts=3, jitter_ratio=0.0),
            sleep=no_sleep,
        )

        result = await coordinator.run_batch(requests, max_concurrency=4)

        summary = result.summary
        assert summary.total == 10
        assert summary.succeeded == 7
        assert summary.failed == 3
        assert summary.succeeded + summary.failed == summary.total
        assert summary.failures_by_kind == {"TERMINAL": 3}
        assert sorted(row.request_id for row in result.results) == sorted(row.id for row in requests)
        for row in result.failures():
            assert row.attempts == 1
            assert row.outcome.message.startswith("[TERMINAL] rejected bad-")

    run_async(scenario())


def test_remote_concurrency_never_exceeds_batch_concurrency():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=0.01)
        coordinator = BatchCoordinator(
            provider,
            rate_limiter=make_limiter(max_concurrency=10),
            batch_policy=BatchPolicy(max_concurrency=5),
        )

        result = await coordinator.run_batch(make_requests(50))

        assert result.summary.total == 50
        assert result.summary.succeeded == 50
        assert provider.calls == 50
        assert provider.peak <= 5

    run_async(scenario())


def test_batch_concurrency_is_clamped_to_limiter_ceiling():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=0.01)
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter(max_concurrency=2))

        result = await coordinator.run_batch(make_requests(12), max_concurrency=50)

        assert result.summary.succeeded == 12
        assert provider.peak <= 2

    run_async(scenario())


def test_second_run_is_served_from_cache():
    async def scenario() -> None:
        provider = EchoProvider()
        metrics = InMemoryCoordinatorMetrics()
        coordinator = BatchCoordinator(
            provider,
            rate_limiter=make_limiter(),
            cache=ResponseCache(),
            metrics=metrics,
        )
        requests = make_requests(6)

        first = await coordinator.run_batch(requests)
        second = await coordinator.run_batch(requests)

        assert first.summary.cache_hits == 0
        assert second.summary.cache_hits == 6
        assert second.summary.cache_hit_rate == 1.0
        assert provider.calls == 6
        assert all(row.cached and row.attempts == 0 for row in second.results)
        assert metrics.count("cache_hits_total") == 6
        assert metrics.count("cache_misses_total") == 6
        assert metrics.count("remote_calls_total") == 6

    run_async(scenario())


def test_failures_are_not_cached():
    async def scenario() -> None:
        provider = EchoProvider()
        cache = ResponseCache()
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter(), cache=cache)
        requests = make_requests(2, prefix="bad")

        await coordinator.run_batch(requests)
        await coordinator.run_batch(requests)

        assert len(cache) == 0
        assert provider.calls == 4

    run_async(scenario())


def test_identical_in_flight_requests_share_one_call():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=0.05)
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter(), cache=ResponseCache())
        requests = [
            AnalysisRequest(id=f"dup-{index}", payload="same document", classification="invoice")
            for index in range(5)
        ]

        result = await coordinator.run_batch(requests, max_concurrency=5)

        assert provider.calls == 1
        assert result.summary.succeeded == 5
        assert result.summary.coalesced == 4
        assert sum(row.attempts for row in result.results) == 1

    run_async(scenario())


def test_coalescing_can_be_disabled():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=0.02)
        coordinator = BatchCoordinator(
            provider,
            rate_limiter=make_limiter(),
            coalescing_policy=CoalescingPolicy(enabled=False),
        )
        requests = [
            AnalysisRequest(id=f"dup-{index}", payload="same document", classification="invoice")
            for index in range(3)
        ]

        result = await coordinator.run_batch(requests, max_concurrency=3)

        assert provider.calls == 3
        assert result.summary.coalesced == 0

    run_async(scenario())


def test_transient_failure_is_retried_then_succeeds():
    async def scenario() -> None:
        calls: dict[str, int] = {}

        async def flaky(payload, classification: str):
            calls[payload] = calls.get(payload, 0) + 1
            if calls[payload] == 1:
                raise ServerError("upstream hiccup", status_code=503)
            return payload.upper()

        metrics = InMemoryCoordinatorMetrics()
        coordinator = BatchCoordinator(
            flaky,
            rate_limiter=make_limiter(),
            retry_policy=RetryPolicy(max_attempts=3, jitter_ratio=0.0),
            metrics=metrics,
            sleep=no_sleep,
        )

        result = await coordinator.run_batch(make_requests(3))

        assert result.summary.succeeded == 3
        assert all(row.attempts == 2 for row in result.results)
        assert metrics.count("retries_total", tags={"kind": "TRANSIENT"}) == 3
        assert metrics.count("remote_calls_total") == 6

    run_async(scenario())


def test_exhausted_retries_report_attempts():
    async def scenario() -> None:
        async def down(payload, classification: str):
            raise ServerError("maintenance", status_code=503)

        coordinator = BatchCoordinator(
            down,
            rate_limiter=make_limiter(),
            retry_policy=RetryPolicy(max_attempts=3, jitter_ratio=0.0),
            sleep=no_sleep,
        )

        row = await coordinator.run_one(AnalysisRequest(id="x", payload="p", classification="t"))

        assert not row.ok
        assert row.attempts == 3
        assert row.outcome.kind == "TRANSIENT"
        assert row.outcome.retryable
        assert "Gave up after 3 attempt(s)" in row.outcome.message

    run_async(scenario())


def test_parse_failure_is_isolated_to_its_item():
    async def scenario() -> None:
        def parser(raw):
            if raw["payload"].endswith("-1"):
                raise ValueError("missing label")
            return raw["payload"]

        provider = EchoProvider()
        coordinator = BatchCoordinator(
            provider,
            rate_limiter=make_limiter(),
            parser=parser,
            sleep=no_sleep,
        )

        result = await coordinator.run_batch(make_requests(4))

        assert result.summary.succeeded == 3
        assert result.summary.failures_by_kind == {"PARSE_ERROR": 1}
        failed = result.failures()[0]
        assert failed.request_id == "r001"
        assert failed.attempts == 1
        assert "missing label" in failed.outcome.message
        assert provider.calls == 4

    run_async(scenario())


def test_attempt_timeout_is_a_transient_failure():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=1.0)
        coordinator = BatchCoordinator(
            provider,
            rate_limiter=make_limiter(),
            timeout_policy=TimeoutPolicy(request_timeout_s=0.02),
            retry_policy=RetryPolicy(max_attempts=2, jitter_ratio=0.0),
            sleep=no_sleep,
        )

        row = await coordinator.run_one(AnalysisRequest(id="slow", payload="p", classification="t"))

        assert row.outcome.kind == "TRANSIENT"
        assert row.attempts == 2
        assert coordinator.rate_limiter.status().in_flight == 0

    run_async(scenario())


def test_cancellation_skips_undequeued_requests():
    async def scenario() -> None:
        cancel = asyncio.Event()

        async def cancelling(payload, classification: str):
            cancel.set()
            return payload

        coordinator = BatchCoordinator(cancelling, rate_limiter=make_limiter())
        requests = make_requests(5)

        result = await coordinator.run_batch(requests, max_concurrency=1, cancel_event=cancel)

        assert result.summary.cancelled
        assert result.summary.total == 1
        assert result.summary.succeeded == 1
        assert result.skipped == ("r001", "r002", "r003", "r004")
        assert result.summary.total + len(result.skipped) == len(requests)

    run_async(scenario())


def test_infrastructure_errors_abort_the_batch():
    async def scenario() -> None:
        async def broken(payload, classification: str):
            raise CallGateInfrastructureError("limiter bookkeeping corrupted")

        coordinator = BatchCoordinator(broken, rate_limiter=make_limiter())

        with pytest.raises(CallGateInfrastructureError):
            await coordinator.run_batch(make_requests(3))
        await asyncio.sleep(0.01)
        assert coordinator.rate_limiter.status().in_flight == 0

    run_async(scenario())


def test_iter_batch_streams_every_result():
    async def scenario() -> None:
        coordinator = BatchCoordinator(EchoProvider(latency_s=0.005), rate_limiter=make_limiter())
        requests = make_requests(8)

        seen = [row.request_id async for row in coordinator.iter_batch(requests, max_concurrency=3)]

        assert sorted(seen) == [row.id for row in requests]

    run_async(scenario())


def test_shared_limiter_bounds_concurrent_batches():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=0.01)
        limiter = make_limiter(max_concurrency=3)
        first = BatchCoordinator(provider, rate_limiter=limiter)
        second = BatchCoordinator(provider, rate_limiter=limiter)

        await asyncio.gather(
            first.run_batch(make_requests(10, prefix="a"), max_concurrency=3),
            second.run_batch(make_requests(10, prefix="b"), max_concurrency=3),
        )

        assert provider.calls == 20
        assert provider.peak <= 3

    run_async(scenario())


def test_run_batch_sync_wraps_event_loop():
    coordinator = BatchCoordinator(EchoProvider(), rate_limiter=make_limiter())
    result = coordinator.run_batch_sync(make_requests(3))
    assert result.summary.succeeded == 3
    assert result.elapsed_ms >= 0.0


def test_terminal_failure_midway_does_not_stop_later_items():
    async def scenario() -> None:
        provider = EchoProvider()
        requests = [
            AnalysisRequest(
                id=f"item-{index:02d}",
                payload="bad-input" if index == 3 else f"doc-{index}",
                classification="invoice",
            )
            for index in range(10)
        ]
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter(), sleep=no_sleep)

        result = await coordinator.run_batch(requests, max_concurrency=1)

        summary = result.summary
        assert (summary.total, summary.succeeded, summary.failed) == (10, 9, 1)
        assert [row.request_id for row in result.results] == [row.id for row in requests]
        assert [row.request_id for row in result.failures()] == ["item-03"]
        assert all(row.ok for row in result.results[4:])
        assert provider.calls == 10

    run_async(scenario())


def test_uncanonicalizable_payloads_fail_only_their_item():
    async def scenario() -> None:
        cyclic: list = []
        cyclic.append(cyclic)
        requests = [
            AnalysisRequest(id="a", payload="doc-a", classification="invoice"),
            AnalysisRequest(id="mixed-keys", payload={1: "a", "b": 2}, classification="invoice"),
            AnalysisRequest(id="cyclic", payload=cyclic, classification="invoice"),
            AnalysisRequest(id="bad-tag", payload="doc-b", classification=7),  # type: ignore[arg-type]
            AnalysisRequest(id="d", payload="doc-d", classification="invoice"),
        ]
        provider = EchoProvider()
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter(), cache=ResponseCache())

        result = await coordinator.run_batch(requests, max_concurrency=2)

        assert result.summary.total == len(requests)
        assert result.summary.succeeded == 2
        assert result.summary.failures_by_kind == {"TERMINAL": 3}
        failed = {row.request_id: row for row in result.failures()}
        assert set(failed) == {"mixed-keys", "cyclic", "bad-tag"}
        assert all(row.attempts == 0 for row in failed.values())
        assert provider.calls == 2

    run_async(scenario())


def test_cancelled_batch_does_not_cancel_shared_call_of_another_batch():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=0.1)
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter(), cache=ResponseCache())

        first = asyncio.create_task(
            coordinator.run_batch([AnalysisRequest(id="first", payload="shared", classification="t")])
        )
        await asyncio.sleep(0.02)
        second = asyncio.create_task(
            coordinator.run_batch([AnalysisRequest(id="second", payload="shared", classification="t")])
        )
        await asyncio.sleep(0.02)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        result = await second
        assert result.summary.succeeded == 1
        assert result.results[0].coalesced
        assert provider.calls == 1

    run_async(scenario())


def test_abandoned_stream_does_not_cancel_shared_call_of_another_batch():
    async def scenario() -> None:
        provider = EchoProvider(latency_s=0.1)
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter())

        stream = coordinator.iter_batch([AnalysisRequest(id="streamed", payload="shared", classification="t")])
        async def first_row():
            return await stream.__anext__()

        pending_row = asyncio.create_task(first_row())
        await asyncio.sleep(0.02)
        other = asyncio.create_task(
            coordinator.run_batch([AnalysisRequest(id="batched", payload="shared", classification="t")])
        )
        await asyncio.sleep(0.03)
        pending_row.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending_row

        result = await other
        assert result.summary.succeeded == 1
        assert result.summary.failed == 0
        assert provider.calls == 1

    run_async(scenario())


def test_expired_cache_entry_triggers_a_new_remote_call():
    async def scenario() -> None:
        now = [1000.0]
        provider = EchoProvider()
        cache = ResponseCache(CachePolicy(max_size=10, ttl_s=30.0), clock=lambda: now[0])
        coordinator = BatchCoordinator(provider, rate_limiter=make_limiter(), cache=cache)
        request = [AnalysisRequest(id="one", payload="document", classification="invoice")]

        first = await coordinator.run_batch(request)
        assert provider.calls == 1
        assert not first.results[0].cached

        now[0] += 10.0
        second = await coordinator.run_batch(request)
        assert provider.calls == 1
        assert second.results[0].cached

        now[0] += 30.0
        third = await coordinator.run_batch(request)
        assert provider.calls == 2
        assert not third.results[0].cached
        assert third.results[0].attempts == 1

    run_async(scenario())


def test_request_metadata_is_carried_into_results():
    async def scenario() -> None:
        coordinator = BatchCoordinator(EchoProvider(), rate_limiter=make_limiter())
        requests = [
            AnalysisRequest(id="ok", payload="doc", classification="t", metadata={"tenant": "acme"}),
            AnalysisRequest(id="bad", payload="bad-doc", classification="t", metadata={"tenant": "globex"}),
        ]

        result = await coordinator.run_batch(requests)

        rows = {row.request_id: row for row in result.results}
        assert rows["ok"].metadata == {"tenant": "acme"}
        assert rows["bad"].metadata == {"tenant": "globex"}
        assert not rows["bad"].ok

    run_async(scenario())
