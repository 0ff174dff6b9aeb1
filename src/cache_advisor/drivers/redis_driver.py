from __future__ import annotations
import re
from itertools import islice
from typing import Any
import redis
from cache_advisor.drivers.base import percent, record_probe_failure

_DIGITS_RE = re.compile(r"[0-9]+")
_STARS_RE = re.compile(r"\*+")

FEATURES = frozenset({"memory_analysis", "eviction_tracking", "key_patterns", "ttl_analysis", "persistence"})
TOP_PATTERNS = 10


def key_pattern(key: str) -> str:
    """user:42:profile -> user:*:profile"""
    return _STARS_RE.sub("*", _DIGITS_RE.sub("*", key))


def ttl_bucket(ttl: int) -> str:
    if ttl == -1:
        return "no_expiry"
    if ttl <= 3600:
        return "0-1h"
    if ttl <= 86400:
        return "1h-1d"
    if ttl <= 604800:
        return "1d-1w"
    return "1w+"


class RedisStatsCollector:
    def __init__(self, client: redis.Redis, options: dict[str, bool] | None = None, sample_size: int = 1000):
        self.client = client
        self.options = options or {}
        self.sample_size = sample_size

    @classmethod
    def from_url(cls, url: str, timeout: float, **kwargs) -> "RedisStatsCollector":
        client = redis.Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout, decode_responses=True)
        return cls(client, **kwargs)

    def get_driver_name(self) -> str:
        return "redis"

    def supports(self, feature: str) -> bool:
        return feature in FEATURES

    def forget(self, key: str) -> bool:
        return bool(self.client.delete(key))

    def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "driver": "redis",
            "memory": None,
            "evictions": None,
            "keys_count": None,
            "hit_rate": None,
            "memory_usage": None,
        }
        try:
            if self.options.get("analyze_memory", True):
                stats["memory"] = self._memory()
                stats["memory_usage"] = stats["memory"]["used_memory_human"]
            if self.options.get("track_evictions", True):
                stats["evictions"] = self._evictions()
            if self.options.get("monitor_key_patterns", True):
                stats["key_patterns"] = self._key_patterns()
            if self.options.get("analyze_ttl_distribution", True):
                stats["ttl_distribution"] = self._ttl_distribution()
            stats["keys_count"] = int(self.client.dbsize())
            stats["hit_rate"] = self._hit_rate()
        except Exception as e:  # backend unreachable, auth, timeouts
            record_probe_failure("redis", e)
            stats["error"] = str(e)
        return stats

    def get_memory_usage(self) -> dict[str, Any] | None:
        try:
            return self._memory()
        except Exception as e:
            record_probe_failure("redis", e, "memory")
            return None

    def get_eviction_stats(self) -> dict[str, Any] | None:
        try:
            return self._evictions()
        except Exception as e:
            record_probe_failure("redis", e, "evictions")
            return None

    def _memory(self) -> dict[str, Any]:
        info = self.client.info("memory")
        return {
            "used_memory": info.get("used_memory", 0),
            "used_memory_human": info.get("used_memory_human", "N/A"),
            "used_memory_peak": info.get("used_memory_peak", 0),
            "used_memory_peak_human": info.get("used_memory_peak_human", "N/A"),
            "memory_fragmentation_ratio": info.get("mem_fragmentation_ratio", 0),
            "maxmemory": info.get("maxmemory", 0),
            "maxmemory_human": info.get("maxmemory_human", "N/A"),
            "maxmemory_policy": info.get("maxmemory_policy", "noeviction"),
        }

    def _evictions(self) -> dict[str, Any]:
        info = self.client.info("stats")
        return {
            "evicted_keys": info.get("evicted_keys", 0),
            "expired_keys": info.get("expired_keys", 0),
            "keyspace_hits": info.get("keyspace_hits", 0),
            "keyspace_misses": info.get("keyspace_misses", 0),
        }

    def _hit_rate(self) -> float:
        info = self.client.info("stats")
        hits = info.get("keyspace_hits", 0)
        return percent(hits, hits + info.get("keyspace_misses", 0))

    def _sample_keys(self):
        # SCAN is lazy; islice stops the walk once the sample bound is reached
        return islice(self.client.scan_iter(count=min(self.sample_size, 1000)), self.sample_size)

    def _key_patterns(self) -> dict[str, dict[str, int]]:
        patterns: dict[str, dict[str, int]] = {}
        try:
            for key in self._sample_keys():
                entry = patterns.setdefault(key_pattern(str(key)), {"count": 0, "total_size": 0})
                entry["count"] += 1
                entry["total_size"] += int(self.client.memory_usage(key) or 0)
        except redis.RedisError as e:  # SCAN or MEMORY may be disabled via rename-command
            record_probe_failure("redis", e, "key_patterns")
        ranked = sorted(patterns.items(), key=lambda kv: kv[1]["count"], reverse=True)
        return dict(ranked[:TOP_PATTERNS])

    def _ttl_distribution(self) -> dict[str, int]:
        distribution = {"no_expiry": 0, "0-1h": 0, "1h-1d": 0, "1d-1w": 0, "1w+": 0}
        try:
            for key in self._sample_keys():
                ttl = self.client.ttl(key)
                if ttl is None or ttl == -2:  # expired between SCAN and TTL
                    continue
                distribution[ttl_bucket(int(ttl))] += 1
        except redis.RedisError as e:
            record_probe_failure("redis", e, "ttl_distribution")
        return distribution
