#!/usr/bin/env python3
"""
Batch benchmark utility for throughput/latency characterization.

Runs a batch against a simulated provider with configurable latency,
failure rate and duplicate ratio.

Usage examples:
  PYTHONPATH=src python scripts/batch_benchmark.py
  PYTHONPATH=src python scripts/batch_benchmark.py --num-requests 500 --calls-per-window 100 --window-s 1
"""

from __future__ import annotations

import argparse
import asyncio
import random
import statistics

from callgate import (
    AnalysisRequest,
    BatchCoordinator,
    InMemoryCoordinatorMetrics,
    RateLimiter,
    RateLimitPolicy,
    ResponseCache,
    RetryPolicy,
    ServerError,
)


class SimulatedProvider:
    def __init__(self, *, latency_ms: float, failure_rate: float, seed: int) -> None:
        self._latency_s = latency_ms / 1000.0
        self._failure_rate = failure_rate
        self._rng = random.Random(seed)
        self.calls = 0

    async def __call__(self, payload, classification: str):
        self.calls += 1
        await asyncio.sleep(self._latency_s)
        if self._rng.random() < self._failure_rate:
            raise ServerError("simulated provider failure", status_code=503)
        return {"classification": classification, "length": len(str(payload))}


async def run_benchmark(
    *,
    num_requests: int,
    concurrency: int,
    latency_ms: float,
    failure_rate: float,
    duplicate_ratio: float,
    calls_per_window: int,
    window_s: float,
    seed: int,
) -> None:
    rng = random.Random(seed)
    unique = max(1, int(num_requests * (1.0 - duplicate_ratio)))
    requests = [
        AnalysisRequest(
            id=f"req-{index}",
            payload=f"document body {rng.randrange(unique)}",
            classification="benchmark",
        )
        for index in range(num_requests)
    ]

    provider = SimulatedProvider(latency_ms=latency_ms, failure_rate=failure_rate, seed=seed)
    metrics = InMemoryCoordinatorMetrics()
    coordinator = BatchCoordinator(
        provider,
        rate_limiter=RateLimiter(
            RateLimitPolicy(
                max_calls_per_window=calls_per_window,
                window_s=window_s,
                max_concurrency=max(concurrency, 1),
            )
        ),
        cache=ResponseCache(),
        retry_policy=RetryPolicy(max_attempts=3, base_delay_s=0.01, max_delay_s=0.1),
        metrics=metrics,
    )

    result = await coordinator.run_batch(requests, max_concurrency=concurrency)
    elapsed_s = result.elapsed_ms / 1000.0
    durations = sorted(row.duration_ms for row in result.results)
    throughput = num_requests / elapsed_s if elapsed_s > 0 else 0.0
    p50 = statistics.median(durations) if durations else 0.0
    p95 = durations[int(0.95 * (len(durations) - 1))] if durations else 0.0

    print(f"requests={num_requests}")
    print(f"concurrency={concurrency}")
    print(f"provider_latency_ms={latency_ms:.2f}")
    print(f"elapsed_s={elapsed_s:.3f}")
    print(f"throughput_rps={throughput:.2f}")
    print(f"succeeded={result.summary.succeeded}")
    print(f"failed={result.summary.failed}")
    print(f"cache_hit_rate={result.summary.cache_hit_rate:.3f}")
    print(f"coalesced={result.summary.coalesced}")
    print(f"remote_calls={provider.calls}")
    print(f"retries={sum(v for k, v in metrics.counters.items() if k.startswith('retries_total'))}")
    print(f"item_duration_p50_ms={p50:.2f}")
    print(f"item_duration_p95_ms={p95:.2f}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Batch coordinator benchmark utility")
    parser.add_argument("--num-requests", type=int, default=200)
    parser.add_argument("--concurrency", type=int, default=8)
    parser.add_argument("--latency-ms", type=float, default=10.0)
    parser.add_argument("--failure-rate", type=float, default=0.05)
    parser.add_argument("--duplicate-ratio", type=float, default=0.2)
    parser.add_argument("--calls-per-window", type=int, default=1000)
    parser.add_argument("--window-s", type=float, default=1.0)
    parser.add_argument("--seed", type=int, default=7)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    asyncio.run(
        run_benchmark(
            num_requests=args.num_requests,
            concurrency=args.concurrency,
            latency_ms=args.latency_ms,
            failure_rate=args.failure_rate,
            duplicate_ratio=args.duplicate_ratio,
            calls_per_window=args.calls_per_window,
            window_s=args.window_s,
            seed=args.seed,
        )
    )


if __name__ == "__main__":
    main()
