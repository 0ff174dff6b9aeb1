from __future__ import annotations
from typing import Any
from pymemcache.client.base import Client
from cache_advisor.drivers.base import format_bytes, percent, record_probe_failure

FEATURES = frozenset({"memory_analysis", "eviction_tracking", "hit_rate_monitoring"})


def _decode_stats(raw: dict) -> dict[str, Any]:
    """pymemcache returns bytes keys and leaves unknown stat values as bytes."""
    out: dict[str, Any] = {}
    for k, v in (raw or {}).items():
        key = k.decode() if isinstance(k, bytes) else str(k)
        if isinstance(v, bytes):
            v = v.decode()
        if isinstance(v, str):
            try:
                v = int(v)
            except ValueError:
                pass
        out[key] = v
    return out


class MemcachedStatsCollector:
    def __init__(self, client: Client, options: dict[str, bool] | None = None):
        self.client = client
        self.options = options or {}

    @classmethod
    def from_servers(cls, servers: list[tuple[str, int]], timeout: float, **kwargs) -> "MemcachedStatsCollector":
        # first server only, matching how the stats page reports a single node
        server = servers[0] if servers else ("localhost", 11211)
        return cls(Client(server, connect_timeout=timeout, timeout=timeout), **kwargs)

    def get_driver_name(self) -> str:
        return "memcached"

    def supports(self, feature: str) -> bool:
        return feature in FEATURES

    def forget(self, key: str) -> bool:
        return bool(self.client.delete(key, noreply=False))

    def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "driver": "memcached",
            "memory": None,
            "evictions": None,
            "hit_rate": None,
            "keys_count": 0,
            "memory_usage": None,
        }
        try:
            server = self._server_stats()
            if self.options.get("analyze_memory", True):
                stats["memory"] = self._memory(server)
                stats["memory_usage"] = stats["memory"]["bytes_used_human"]
            if self.options.get("track_evictions", True):
                stats["evictions"] = self._evictions(server)
            if self.options.get("monitor_hit_rate", True):
                hits = server.get("get_hits", 0)
                stats["hit_rate"] = percent(hits, hits + server.get("get_misses", 0))
            stats["keys_count"] = int(server.get("curr_items", 0))
        except Exception as e:
            record_probe_failure("memcached", e)
            stats["error"] = str(e)
        return stats

    def get_memory_usage(self) -> dict[str, Any] | None:
        try:
            return self._memory(self._server_stats())
        except Exception as e:
            record_probe_failure("memcached", e, "memory")
            return None

    def get_eviction_stats(self) -> dict[str, Any] | None:
        try:
            return self._evictions(self._server_stats())
        except Exception as e:
            record_probe_failure("memcached", e, "evictions")
            return None

    def _server_stats(self) -> dict[str, Any]:
        return _decode_stats(self.client.stats())

    @staticmethod
    def _memory(server: dict[str, Any]) -> dict[str, Any]:
        used = server.get("bytes", 0)
        limit = server.get("limit_maxbytes", 0)
        return {
            "bytes_used": used,
            "bytes_used_human": format_bytes(used),
            "limit_maxbytes": limit,
            "limit_maxbytes_human": format_bytes(limit),
            "usage_percent": percent(used, limit),
        }

    @staticmethod
    def _evictions(server: dict[str, Any]) -> dict[str, Any]:
        return {
            "evictions": server.get("evictions", 0),
            "reclaimed": server.get("reclaimed", 0),
            "curr_items": server.get("curr_items", 0),
            "total_items": server.get("total_items", 0),
        }
