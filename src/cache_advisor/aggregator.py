from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any
from prometheus_client import Counter
from cache_advisor.drivers.base import DriverStatsCollector, NullStatsCollector, percent
from cache_advisor.lifecycle import InvalidRequestError
from cache_advisor.stores import AccessRecorder, FingerprintStore

logger = logging.getLogger(__name__)

KEYS_CLEANED = Counter('smart_cache_keys_cleaned_total', 'Unused cache keys removed from the backend', ['driver', 'outcome'])

CLEANUP_PREVIEW = 10


class StatsAggregator:
    """Incremental query aggregates plus the read API over them.

    Writes go through the injected stores; backend figures come from the
    active driver collector and are best-effort.
    """

    def __init__(
        self,
        fingerprints: FingerprintStore,
        access: AccessRecorder,
        collector: DriverStatsCollector | None = None,
        stats_window_hours: int = 24,
    ):
        self.fingerprints = fingerprints
        self.access = access
        self.collector = collector if collector is not None else NullStatsCollector()
        self.stats_window_hours = stats_window_hours

    def record_execution(self, query_hash: str, display_text: str, elapsed_ms: float) -> None:
        self.fingerprints.upsert_execution(query_hash, display_text, max(float(elapsed_ms), 0.0))

    def record_cache_access(self, cache_key: str, hit: bool) -> None:
        self.access.record(cache_key, hit)

    def _window_totals(self) -> tuple[int, int]:
        since = datetime.utcnow() - timedelta(hours=self.stats_window_hours)
        return self.access.totals(since)

    def get_hit_ratio(self) -> float:
        hits, misses = self._window_totals()
        return percent(hits, hits + misses)

    def get_stats(self) -> dict[str, Any]:
        hits, misses = self._window_totals()
        driver_stats = self.collector.get_stats()
        return {
            "hit_ratio": percent(hits, hits + misses),
            "total_hits": hits,
            "total_misses": misses,
            "total_requests": hits + misses,
            "memory_usage": driver_stats.get("memory_usage") or "N/A",
            "keys_count": driver_stats.get("keys_count") or 0,
            "driver": self.collector.get_driver_name(),
            "driver_stats": driver_stats,
        }

    def get_top_queries(self, limit: int = 10) -> list[dict[str, Any]]:
        return [
            {
                "query": row.query,
                "executions": row.execution_count,
                "avg_time": round(row.avg_time or 0.0, 2),
                "total_time": round(row.total_time or 0.0, 2),
                "last_executed": row.last_executed_at.isoformat() if row.last_executed_at else None,
            }
            for row in self.fingerprints.top_by_executions(limit)
        ]

    def get_unused_keys(self, days_unused: int = 7) -> list[str]:
        cutoff = datetime.utcnow() - timedelta(days=days_unused)
        return self.access.unused_since(cutoff)

    def cleanup_unused_keys(self, days: int = 7, dry_run: bool = False) -> dict[str, Any]:
        """Delete backend entries for keys with no hit in `days` days.

        One failing delete is logged and counted; the rest are still attempted.
        Access metric rows are kept.
        """
        if days < 1:
            raise InvalidRequestError("days must be at least 1")
        keys = self.get_unused_keys(days)
        result: dict[str, Any] = {
            "dry_run": dry_run,
            "total": len(keys),
            "deleted": 0,
            "failed": 0,
            "keys": keys[:CLEANUP_PREVIEW],
        }
        if dry_run:
            return result
        driver = self.collector.get_driver_name()
        for key in keys:
            try:
                self.collector.forget(key)
            except Exception as e:
                result["failed"] += 1
                KEYS_CLEANED.labels(driver=driver, outcome="error").inc()
                logger.warning("cache key cleanup failed driver=%s key=%s error=%s", driver, key, e)
                continue
            result["deleted"] += 1
            KEYS_CLEANED.labels(driver=driver, outcome="deleted").inc()
        logger.info(
            "unused cache keys cleaned driver=%s deleted=%s failed=%s total=%s",
            driver, result["deleted"], result["failed"], result["total"],
        )
        return result
