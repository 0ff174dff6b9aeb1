"""Prometheus exposition of the advisor snapshot.

render_metrics() builds a throwaway CollectorRegistry around a custom collector,
so every scrape reflects the current stats rather than process-lifetime counters.
"""
from __future__ import annotations
from typing import Any, Iterator
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector


def _num(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class SnapshotCollector(Collector):
    def __init__(self, stats: dict[str, Any], pending_recommendations: int):
        self.stats = stats
        self.pending = pending_recommendations

    def collect(self) -> Iterator[Metric]:
        s = self.stats
        yield GaugeMetricFamily('smart_cache_hit_ratio', 'Cache hit ratio percentage', value=s.get("hit_ratio", 0))
        # CounterMetricFamily appends the _total suffix itself
        yield CounterMetricFamily('smart_cache_hits', 'Total cache hits', value=s.get("total_hits", 0))
        yield CounterMetricFamily('smart_cache_misses', 'Total cache misses', value=s.get("total_misses", 0))
        yield GaugeMetricFamily('smart_cache_keys_count', 'Number of cache keys', value=s.get("keys_count", 0) or 0)
        yield GaugeMetricFamily('smart_cache_recommendations_pending', 'Pending cache recommendations', value=self.pending)
        yield from self._driver_metrics(s.get("driver") or "unknown", s.get("driver_stats") or {})

    @staticmethod
    def _driver_metrics(driver: str, ds: dict[str, Any]) -> Iterator[Metric]:
        memory = ds.get("memory") or {}
        used = _num(memory.get("used_memory", memory.get("bytes_used")))
        if used is not None:
            g = GaugeMetricFamily('smart_cache_memory_bytes', 'Cache backend memory usage in bytes', labels=['driver'])
            g.add_metric([driver], used)
            yield g
        evictions = ds.get("evictions") or {}
        evicted = _num(evictions.get("evicted_keys", evictions.get("evictions")))
        if evicted is not None:
            c = CounterMetricFamily('smart_cache_evictions', 'Total evicted keys', labels=['driver'])
            c.add_metric([driver], evicted)
            yield c
        disk = ds.get("disk_usage") or {}
        disk_bytes = _num(disk.get("total_size"))
        if disk_bytes is not None:
            yield GaugeMetricFamily('smart_cache_disk_bytes', 'File cache disk usage in bytes', value=disk_bytes)


def render_metrics(stats: dict[str, Any], pending_recommendations: int) -> str:
    registry = CollectorRegistry()
    registry.register(SnapshotCollector(stats, pending_recommendations))
    return generate_latest(registry).decode("utf-8")
