"""Applied caching strategy records, read by the caching layer.

A record lives under <prefix><query_hash> with no expiry:
    {query_hash, ttl, cache_key_prefix, tags, priority, applied_at}
"""
from __future__ import annotations
import json
import threading
from typing import Any, Protocol
import redis


class StrategyStore(Protocol):
    def get(self, query_hash: str) -> dict[str, Any] | None: ...
    def put(self, query_hash: str, strategy: dict[str, Any]) -> None: ...
    def delete(self, query_hash: str) -> None: ...


class RedisStrategyStore:
    def __init__(self, client: redis.Redis, prefix: str = "smart_cache:strategy:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str, timeout: float) -> "RedisStrategyStore":
        client = redis.Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout, decode_responses=True)
        return cls(client, prefix)

    def _key(self, query_hash: str) -> str:
        return f"{self.prefix}{query_hash}"

    def get(self, query_hash: str) -> dict[str, Any] | None:
        raw = self.client.get(self._key(query_hash))
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, query_hash: str, strategy: dict[str, Any]) -> None:
        self.client.set(self._key(query_hash), json.dumps(strategy))

    def delete(self, query_hash: str) -> None:
        self.client.delete(self._key(query_hash))


class MemoryStrategyStore:
    """Process-local store for tests and single-process deployments."""

    def __init__(self):
        self._items: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, query_hash: str) -> dict[str, Any] | None:
        with self._lock:
            item = self._items.get(query_hash)
            return dict(item) if item is not None else None

    def put(self, query_hash: str, strategy: dict[str, Any]) -> None:
        with self._lock:
            self._items[query_hash] = dict(strategy)

    def delete(self, query_hash: str) -> None:
        with self._lock:
            self._items.pop(query_hash, None)

    def __len__(self) -> int:
        return len(self._items)
