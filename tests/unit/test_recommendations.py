import pytest
from cache_advisor.config import Settings
from cache_advisor.recommendations import RecommendationEngine, classify_ttl_kind
from tests.conftest import seed_fingerprint


@pytest.fixture
def engine(fingerprint_store):
    return RecommendationEngine(fingerprint_store, slow_query_threshold=100, repeated_query_threshold=5)


class TestDerive:
    def test_slow_query_is_high_priority(self, engine, fingerprint_store):
        seed_fingerprint(fingerprint_store, "a" * 32, "select * from users where id = :number", [150] * 10)
        [cand] = engine.derive_recommendations()
        assert cand.priority == "high"
        assert cand.type == "slow_query"
        assert cand.potential_savings == pytest.approx(1500)
        assert cand.reason == "Query takes 150ms on average"
        assert cand.query_hash == "a" * 32

    def test_slow_and_repeated_not_duplicated(self, engine, fingerprint_store):
        seed_fingerprint(fingerprint_store, "a" * 32, "select * from reports", [200] * 20)
        cands = engine.derive_recommendations()
        assert len(cands) == 1
        assert cands[0].priority == "high"

    def test_repeated_query_is_medium(self, engine, fingerprint_store):
        seed_fingerprint(fingerprint_store, "b" * 32, "select * from products", [2] * 6)
        [cand] = engine.derive_recommendations()
        assert cand.priority == "medium"
        assert cand.type == "repeated_query"
        assert cand.reason == "Executed 6 times"
        assert cand.potential_savings == pytest.approx(12)

    def test_thresholds_are_exclusive(self, engine, fingerprint_store):
        seed_fingerprint(fingerprint_store, "c" * 32, "select 1", [100] * 5)
        assert engine.derive_recommendations() == []

    def test_ordering(self, engine, fingerprint_store):
        seed_fingerprint(fingerprint_store, "1" * 32, "select * from a", [120])
        seed_fingerprint(fingerprint_store, "2" * 32, "select * from b", [300])
        seed_fingerprint(fingerprint_store, "3" * 32, "select * from c", [1] * 7)
        seed_fingerprint(fingerprint_store, "4" * 32, "select * from d", [1] * 9)
        cands = engine.derive_recommendations()
        assert [c.query_hash for c in cands] == ["2" * 32, "1" * 32, "4" * 32, "3" * 32]
        assert [c.priority for c in cands] == ["high", "high", "medium", "medium"]

    def test_limit_applies_per_rule(self, fingerprint_store):
        for i in range(4):
            seed_fingerprint(fingerprint_store, str(i) * 32, f"select * from t{i}", [200 + i])
        engine = RecommendationEngine(fingerprint_store, limit=2)
        assert len(engine.derive_recommendations()) == 2

    def test_get_recommendations_as_dicts(self, engine, fingerprint_store):
        seed_fingerprint(fingerprint_store, "a" * 32, "select * from settings", [500])
        [rec] = engine.get_recommendations()
        assert set(rec) == {"query_hash", "query", "type", "priority", "reason", "suggested_ttl", "potential_savings"}
        assert rec["suggested_ttl"] == 604800


class TestClassifyTtl:
    @pytest.mark.parametrize("text,kind", [
        ("select * from settings", "configuration"),
        ("select * from app_config", "static_data"),
        ("SELECT * FROM Currencies", "configuration"),
        ("select * from profiles where user_id = :number", "user_data"),
        ("select * from orders", "volatile_data"),
        ("select * from orders where user_id = :number", "user_data"),
        ("select * from config where user_id = :number", "configuration"),
        ("select * from products", "static_data"),
    ])
    def test_first_rule_wins(self, text, kind):
        assert classify_ttl_kind(text) == kind

    def test_defaults(self, engine):
        assert engine.classify_ttl("select * from countries") == 604800
        assert engine.classify_ttl("select * from t where user_id = 1") == 3600
        assert engine.classify_ttl("select * from logs") == 300
        assert engine.classify_ttl("select * from products") == 86400

    def test_ttls_from_settings(self, fingerprint_store):
        s = Settings(ttl_volatile_data=60, ttl_static_data=7200)
        engine = RecommendationEngine.from_settings(fingerprint_store, s)
        assert engine.classify_ttl("select * from transactions") == 60
        assert engine.classify_ttl("select * from products") == 7200
