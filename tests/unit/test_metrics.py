from cache_advisor.metrics import render_metrics


def _stats(**overrides):
    stats = {
        "hit_ratio": 75.0,
        "total_hits": 3,
        "total_misses": 1,
        "total_requests": 4,
        "memory_usage": "2 KB",
        "keys_count": 12,
        "driver": "redis",
        "driver_stats": {"memory": {"used_memory": 2048}, "evictions": {"evicted_keys": 5}},
    }
    stats.update(overrides)
    return stats


class TestRenderMetrics:
    def test_core_series(self):
        lines = render_metrics(_stats(), pending_recommendations=2).splitlines()
        assert "# TYPE smart_cache_hit_ratio gauge" in lines
        assert "smart_cache_hit_ratio 75.0" in lines
        assert "# TYPE smart_cache_hits_total counter" in lines
        assert "smart_cache_hits_total 3.0" in lines
        assert "smart_cache_misses_total 1.0" in lines
        assert "smart_cache_keys_count 12.0" in lines
        assert "smart_cache_recommendations_pending 2.0" in lines

    def test_driver_series(self):
        lines = render_metrics(_stats(), 0).splitlines()
        assert 'smart_cache_memory_bytes{driver="redis"} 2048.0' in lines
        assert 'smart_cache_evictions_total{driver="redis"} 5.0' in lines

    def test_memcached_field_names(self):
        stats = _stats(driver="memcached", driver_stats={"memory": {"bytes_used": 4096}, "evictions": {"evictions": 7}})
        lines = render_metrics(stats, 0).splitlines()
        assert 'smart_cache_memory_bytes{driver="memcached"} 4096.0' in lines
        assert 'smart_cache_evictions_total{driver="memcached"} 7.0' in lines

    def test_file_disk_usage(self):
        stats = _stats(driver="file", driver_stats={"disk_usage": {"exists": True, "total_size": 22148}})
        text = render_metrics(stats, 0)
        assert "smart_cache_disk_bytes 22148.0" in text.splitlines()
        assert "smart_cache_memory_bytes" not in text

    def test_optional_series_absent(self):
        text = render_metrics(_stats(driver_stats={}, keys_count=None), 0)
        assert "smart_cache_memory_bytes" not in text
        assert "smart_cache_evictions" not in text
        assert "smart_cache_disk_bytes" not in text
        assert "smart_cache_keys_count 0.0" in text.splitlines()
