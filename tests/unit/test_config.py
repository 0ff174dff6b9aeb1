import pytest
from pydantic import ValidationError
from cache_advisor.config import (
    DEFAULT_EXCLUDED_TABLES,
    Settings,
    default_ttls,
    driver_options,
    get_settings,
    parse_excluded_tables,
    parse_memcached_servers,
    reset_settings,
)


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.sampling_rate == 10
        assert s.slow_query_threshold == 100.0
        assert s.repeated_query_threshold == 5
        assert s.dispatch_mode == "sync"
        assert s.auto_apply_enabled is False
        assert s.auto_apply_dry_run is True
        assert s.excluded_tables == DEFAULT_EXCLUDED_TABLES

    def test_env_aliases(self, monkeypatch):
        monkeypatch.setenv("SMART_CACHE_SAMPLING_RATE", "25")
        monkeypatch.setenv("SMART_CACHE_DRIVER", "memcached")
        monkeypatch.setenv("SMART_CACHE_AUTO_APPLY", "true")
        reset_settings()
        try:
            s = get_settings()
            assert s.sampling_rate == 25
            assert s.cache_driver == "memcached"
            assert s.auto_apply_enabled is True
        finally:
            reset_settings()

    @pytest.mark.parametrize("rate", [0, 101])
    def test_sampling_rate_bounds(self, rate):
        with pytest.raises(ValidationError):
            Settings(sampling_rate=rate)


class TestParsers:
    def test_excluded_tables(self):
        assert parse_excluded_tables(" migrations, ,sessions ") == ["migrations", "sessions"]
        assert parse_excluded_tables("") == []
        assert "failed_jobs" in parse_excluded_tables(DEFAULT_EXCLUDED_TABLES)

    def test_memcached_servers(self):
        assert parse_memcached_servers("a:11212, b") == [("a", 11212), ("b", 11211)]
        assert parse_memcached_servers(None) == []

    def test_default_ttls(self):
        assert default_ttls(Settings(ttl_user_data=60)) == {
            "static_data": 86400,
            "user_data": 60,
            "volatile_data": 300,
            "configuration": 604800,
        }

    def test_driver_options(self):
        s = Settings(file_analyze_file_sizes=False)
        assert driver_options(s, "file") == {"track_disk_usage": True, "analyze_file_sizes": False}
        assert set(driver_options(s, "redis")) == {
            "analyze_memory", "track_evictions", "monitor_key_patterns", "analyze_ttl_distribution",
        }
        assert driver_options(s, "apc") == {}
