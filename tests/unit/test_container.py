import pytest
from cache_advisor import container as container_module
from cache_advisor.config import Settings
from cache_advisor.container import (
    _notifier,
    _strategy_store,
    build_container,
    get_container,
    reset_container,
    shutdown_container,
)
from cache_advisor.fingerprint import fingerprint
from cache_advisor.drivers import FileStatsCollector
from cache_advisor.notifications import NullNotificationSink, RedisNotificationSink
from cache_advisor.strategies import MemoryStrategyStore, RedisStrategyStore


class TestBuildContainer:
    def test_wires_injected_parts(self, container, strategy_store, sink, collector):
        assert container.strategies is strategy_store
        assert container.notifier is sink
        assert container.collector is collector
        assert container.aggregator.collector is collector
        assert container.lifecycle.strategies is strategy_store
        assert container.monitor.dispatch_mode == "sync"

    def test_monitor_started_when_enabled(self, container):
        assert container.monitor.is_monitoring() is True

    def test_monitor_idle_when_disabled(self, session_factory, sink):
        s = Settings(enabled=False, strategy_store="memory")
        c = build_container(s, session_factory=session_factory, notifier=sink, collector=StubCollector())
        assert c.monitor.is_monitoring() is False

    def test_collector_from_driver_setting(self, session_factory, sink, tmp_path):
        s = Settings(cache_driver="file", file_cache_path=str(tmp_path), strategy_store="memory")
        c = build_container(s, session_factory=session_factory, notifier=sink)
        assert isinstance(c.collector, FileStatsCollector)
        assert c.aggregator.get_stats()["driver"] == "file"

    def test_policy_from_settings(self, session_factory, sink, collector):
        s = Settings(
            strategy_store="memory",
            auto_apply_enabled=True,
            auto_apply_priority_threshold="medium",
            auto_apply_max_queries=3,
        )
        c = build_container(s, session_factory=session_factory, notifier=sink, collector=collector)
        assert c.lifecycle.policy.enabled is True
        assert c.lifecycle.policy.priorities == ("high", "medium")
        assert c.lifecycle.policy.max_queries_per_run == 3


class TestDefaults:
    def test_strategy_store_choice(self):
        assert isinstance(_strategy_store(Settings(strategy_store="memory")), MemoryStrategyStore)
        assert isinstance(_strategy_store(Settings(strategy_store="redis")), RedisStrategyStore)

    def test_notifier_choice(self):
        assert isinstance(_notifier(Settings(broadcasting_enabled=False)), NullNotificationSink)
        assert isinstance(_notifier(Settings(broadcasting_enabled=True)), RedisNotificationSink)


class StubCollector:
    def get_stats(self):
        return {"driver": "stub"}

    def supports(self, feature):
        return False

    def get_memory_usage(self):
        return None

    def get_eviction_stats(self):
        return None

    def get_driver_name(self):
        return "stub"

    def forget(self, key):
        return False


class TestShutdown:
    @pytest.fixture
    def cached(self, monkeypatch, session_factory, sink, collector):
        s = Settings(enabled=True, sampling_rate=100, strategy_store="memory", dispatch_mode="buffered", batch_size=100)
        built = build_container(s, session_factory=session_factory, notifier=sink, collector=collector)
        monkeypatch.setattr(container_module, "build_container", lambda: built)
        reset_container()
        yield built
        reset_container()

    def test_flushes_buffered_events(self, cached):
        assert get_container() is cached
        cached.monitor.observe("select * from orders where id = 7", 12.0)
        assert cached.monitor.buffered_count() == 1
        shutdown_container()
        assert cached.monitor.is_monitoring() is False
        assert cached.monitor.buffered_count() == 0
        row = cached.aggregator.fingerprints.get(fingerprint("select * from orders where id = 1").hash)
        assert row.execution_count == 1

    def test_noop_when_never_built(self, monkeypatch):
        reset_container()
        monkeypatch.setattr(container_module, "build_container", lambda: pytest.fail("container built on shutdown"))
        shutdown_container()
