from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Protocol
import redis
from prometheus_client import Counter

logger = logging.getLogger(__name__)

RECOMMENDATIONS_TOPIC = "smart-cache-recommendations"
STATS_TOPIC = "smart-cache-stats"
NEW_RECOMMENDATION_EVENT = "recommendation.new"
STATS_UPDATED_EVENT = "stats.updated"

NOTIFICATIONS_PUBLISHED = Counter('smart_cache_notifications_total', 'Notifications published', ['topic', 'outcome'])


class NotificationSink(Protocol):
    def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class NullNotificationSink:
    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        return None


class RedisNotificationSink:
    """Redis pub/sub transport. Delivery is best-effort; failures are logged."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, timeout: float) -> "RedisNotificationSink":
        return cls(redis.Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout))

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            self.client.publish(topic, json.dumps(payload, default=str))
            NOTIFICATIONS_PUBLISHED.labels(topic=topic, outcome="ok").inc()
        except redis.RedisError as e:
            NOTIFICATIONS_PUBLISHED.labels(topic=topic, outcome="error").inc()
            logger.warning("notification publish failed topic=%s error=%s", topic, e)


def recommendation_event(rec) -> dict[str, Any]:
    return {
        "event": NEW_RECOMMENDATION_EVENT,
        "recommendation": {
            "id": rec.id,
            "query_hash": rec.query_hash,
            "priority": rec.priority,
            "suggested_ttl": rec.suggested_ttl,
            "reason": rec.reason,
        },
        "timestamp": datetime.utcnow().isoformat(),
    }


def stats_event(stats: dict[str, Any]) -> dict[str, Any]:
    return {"event": STATS_UPDATED_EVENT, "stats": stats, "timestamp": datetime.utcnow().isoformat()}
