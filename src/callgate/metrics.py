"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for coordinator observability.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Mapping
from typing import Protocol


class CoordinatorMetrics(Protocol):
    """Minimal metrics interface for coordinator instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""

    def observe(
        self, name: str, value: float, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Record one histogram measurement."""


class NoOpCoordinatorMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags

    def observe(
        self, name: str, value: float, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags


def _series(name: str, tags: Mapping[str, str] | None) -> str:
    if not tags:
        return name
    labels = ",".join(f"{key}={tags[key]}" for key in sorted(tags))
    return f"{name}{{{labels}}}"


class InMemoryCoordinatorMetrics(CoordinatorMetrics):
    """Process-local metrics sink, handy for tests and embedded reporting."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.counters: dict[str, int] = defaultdict(int)
        self.observations: dict[str, list[float]] = defaultdict(list)

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        with self._lock:
            self.counters[_series(name, tags)] += value

    def observe(
        self, name: str, value: float, *, tags: Mapping[str, str] | None = None
    ) -> None:
        with self._lock:
            self.observations[_series(name, tags)].append(value)

    def count(self, name: str, *, tags: Mapping[str, str] | None = None) -> int:
        with self._lock:
            return self.counters.get(_series(name, tags), 0)


class PrometheusCoordinatorMetrics(CoordinatorMetrics):
    """
    Prometheus-backed coordinator metrics adapter.

    Requires `prometheus_client` package.
    """

    def __init__(self, *, namespace: str = "callgate", registry=None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter, Histogram
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusCoordinatorMetrics requires `prometheus_client` to be installed."
            ) from exc

        self._Counter = Counter
        self._Histogram = Histogram
        self._namespace = namespace
        self._registry = registry if registry is not None else REGISTRY
        self._counters: dict[str, object] = {}
        self._histograms: dict[str, object] = {}

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        label_names = tuple(sorted((tags or {}).keys()))
        key = f"{name}|{','.join(label_names)}"
        counter = self._counters.get(key)
        if counter is None:
            counter = self._Counter(
                name=name,
                documentation=f"callgate coordinator metric {name}",
                namespace=self._namespace,
                labelnames=label_names,
                registry=self._registry,
            )
            self._counters[key] = counter

        if label_names:
            label_values = [str((tags or {})[label]) for label in label_names]
            counter.labels(*label_values).inc(value)
        else:
            counter.inc(value)

    def observe(self, name: str, value: float, *, tags: Mapping[str, str] | None = None) -> None:
        label_names = tuple(sorted((tags or {}).keys()))
        key = f"{name}|{','.join(label_names)}"
        histogram = self._histograms.get(key)
        if histogram is None:
            histogram = self._Histogram(
                name=name,
                documentation=f"callgate coordinator metric {name}",
                namespace=self._namespace,
                labelnames=label_names,
                registry=self._registry,
            )
            self._histograms[key] = histogram

        if label_names:
            label_values = [str((tags or {})[label]) for label in label_names]
            histogram.labels(*label_values).observe(value)
        else:
            histogram.observe(value)
