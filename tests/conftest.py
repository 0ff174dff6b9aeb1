from __future__ import annotations
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from cache_advisor.config import Settings
from cache_advisor.container import build_container
from cache_advisor.infrastructure.db import Base
from cache_advisor.models import tables  # noqa: F401  register mappers
from cache_advisor.models.tables import CacheRecommendation
from cache_advisor.stores import SqlAccessRecorder, SqlFingerprintStore
from cache_advisor.strategies import MemoryStrategyStore


class RecordingSink:
    def __init__(self):
        self.published: list[tuple[str, dict]] = []

    def publish(self, topic, payload):
        self.published.append((topic, payload))


class FakeCollector:
    def __init__(self, stats=None, name="redis"):
        self.stats = stats if stats is not None else {
            "driver": name,
            "memory": {"used_memory": 1572864, "used_memory_human": "1.5 MB"},
            "evictions": {"evicted_keys": 4},
            "memory_usage": "1.5 MB",
            "keys_count": 42,
        }
        self.name = name
        self.calls = 0
        self.forgotten: list[str] = []
        self.failing_keys: set[str] = set()

    def get_stats(self):
        self.calls += 1
        return dict(self.stats)

    def supports(self, feature):
        return feature == "memory_analysis"

    def get_memory_usage(self):
        return self.stats.get("memory")

    def get_eviction_stats(self):
        return self.stats.get("evictions")

    def get_driver_name(self):
        return self.name

    def forget(self, key):
        if key in self.failing_keys:
            raise ConnectionError(f"delete {key} timed out")
        self.forgotten.append(key)
        return True


@pytest.fixture
def db_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def fingerprint_store(session_factory):
    return SqlFingerprintStore(session_factory)


@pytest.fixture
def access_recorder(session_factory):
    return SqlAccessRecorder(session_factory)


@pytest.fixture
def settings():
    return Settings(
        enabled=True,
        sampling_rate=100,
        dispatch_mode="sync",
        strategy_store="memory",
        broadcasting_enabled=False,
        cache_driver="redis",
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def strategy_store():
    return MemoryStrategyStore()


@pytest.fixture
def collector():
    return FakeCollector()


@pytest.fixture
def container(settings, session_factory, strategy_store, sink, collector):
    return build_container(
        settings,
        session_factory=session_factory,
        strategy_store=strategy_store,
        notifier=sink,
        collector=collector,
    )


@pytest.fixture
def add_recommendation(session_factory):
    def _add(query_hash, priority="high", status="pending", savings=100.0, query=None, ttl=3600):
        session = session_factory()
        try:
            rec = CacheRecommendation(
                query_hash=query_hash,
                query=query or f"select * from t where id = :number /* {query_hash} */",
                priority=priority,
                suggested_ttl=ttl,
                reason="seeded",
                potential_savings=savings,
                status=status,
                auto_applied=False,
            )
            session.add(rec)
            session.commit()
            return rec.id
        finally:
            session.close()

    return _add


def seed_fingerprint(store, query_hash, query, times):
    for elapsed in times:
        store.upsert_execution(query_hash, query, elapsed)
