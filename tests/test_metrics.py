from __future__ import annotations

from prometheus_client import CollectorRegistry

from callgate import InMemoryCoordinatorMetrics, NoOpCoordinatorMetrics, PrometheusCoordinatorMetrics


def test_in_memory_metrics_track_series_by_tags():
    metrics = InMemoryCoordinatorMetrics()
    metrics.incr("items_failed_total", tags={"kind": "TERMINAL"})
    metrics.incr("items_failed_total", tags={"kind": "TERMINAL"})
    metrics.incr("items_failed_total", tags={"kind": "PARSE_ERROR"})
    metrics.observe("item_duration_ms", 12.5)

    assert metrics.count("items_failed_total", tags={"kind": "TERMINAL"}) == 2
    assert metrics.count("items_failed_total", tags={"kind": "PARSE_ERROR"}) == 1
    assert metrics.count("items_failed_total") == 0
    assert metrics.observations["item_duration_ms"] == [12.5]


def test_noop_metrics_accept_calls():
    metrics = NoOpCoordinatorMetrics()
    metrics.incr("cache_hits_total")
    metrics.observe("item_duration_ms", 1.0, tags={"kind": "x"})


def test_prometheus_metrics_export_namespaced_series():
    registry = CollectorRegistry()
    metrics = PrometheusCoordinatorMetrics(registry=registry)

    metrics.incr("cache_hits_total")
    metrics.incr("cache_hits_total", 2)
    metrics.incr("items_failed_total", tags={"kind": "TERMINAL"})
    metrics.observe("item_duration_ms", 5.0)

    assert registry.get_sample_value("callgate_cache_hits_total") == 3.0
    assert registry.get_sample_value("callgate_items_failed_total", {"kind": "TERMINAL"}) == 1.0
    assert registry.get_sample_value("callgate_item_duration_ms_count") == 1.0
