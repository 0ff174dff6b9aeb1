import json
import redis
from cache_advisor.notifications import RedisNotificationSink, STATS_TOPIC, stats_event
from cache_advisor.strategies import MemoryStrategyStore, RedisStrategyStore

STRATEGY = {"query_hash": "a" * 32, "ttl": 300, "tags": ["smart-cache", "auto-applied"]}


class FakeRedisClient:
    def __init__(self, fail=False):
        self.data = {}
        self.messages = []
        self.fail = fail

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)

    def publish(self, channel, message):
        if self.fail:
            raise redis.ConnectionError("Connection refused")
        self.messages.append((channel, message))


class TestStrategyStores:
    def test_memory_round_trip(self):
        store = MemoryStrategyStore()
        assert store.get("a" * 32) is None
        store.put("a" * 32, STRATEGY)
        assert store.get("a" * 32) == STRATEGY
        store.delete("a" * 32)
        assert store.get("a" * 32) is None
        assert len(store) == 0

    def test_memory_returns_copies(self):
        store = MemoryStrategyStore()
        store.put("a" * 32, STRATEGY)
        store.get("a" * 32)["ttl"] = 1
        assert store.get("a" * 32)["ttl"] == 300

    def test_redis_layout(self):
        client = FakeRedisClient()
        store = RedisStrategyStore(client, prefix="smart_cache:strategy:")
        store.put("a" * 32, STRATEGY)
        assert json.loads(client.data["smart_cache:strategy:" + "a" * 32]) == STRATEGY
        assert store.get("a" * 32) == STRATEGY
        store.delete("a" * 32)
        assert store.get("a" * 32) is None


class TestRedisNotificationSink:
    def test_publishes_json(self):
        client = FakeRedisClient()
        RedisNotificationSink(client).publish(STATS_TOPIC, stats_event({"hit_ratio": 50.0}))
        [(channel, message)] = client.messages
        assert channel == STATS_TOPIC
        body = json.loads(message)
        assert body["event"] == "stats.updated"
        assert body["stats"] == {"hit_ratio": 50.0}

    def test_publish_failure_is_swallowed(self):
        RedisNotificationSink(FakeRedisClient(fail=True)).publish(STATS_TOPIC, {"event": "stats.updated"})
