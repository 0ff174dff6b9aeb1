from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_EXCLUDED_TABLES = "migrations,jobs,failed_jobs,password_resets,cache,cache_locks,sessions"


class Settings(BaseSettings):
    # Core
    enabled: bool = Field(True, alias="SMART_CACHE_ENABLED")
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    dashboard_path: str = Field("smart-cache", alias="SMART_CACHE_DASHBOARD_PATH")

    # Storage
    database_url: str = Field("sqlite:///./cache_advisor.db", alias="DATABASE_URL")
    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")

    # Analysis thresholds
    slow_query_threshold: float = Field(100.0, alias="SMART_CACHE_SLOW_QUERY_THRESHOLD")  # ms
    repeated_query_threshold: int = Field(5, alias="SMART_CACHE_REPEATED_QUERY_THRESHOLD")
    recommendation_limit: int = Field(10, alias="SMART_CACHE_RECOMMENDATION_LIMIT")
    analyze_interval: int = Field(3600, alias="SMART_CACHE_ANALYZE_INTERVAL")  # seconds, 0 disables beat

    # Observation pipeline
    sampling_rate: int = Field(10, alias="SMART_CACHE_SAMPLING_RATE", ge=1, le=100)
    dispatch_mode: str = Field("sync", alias="SMART_CACHE_DISPATCH_MODE")  # sync|buffered|async
    batch_size: int = Field(50, alias="SMART_CACHE_BATCH_SIZE", ge=1)
    excluded_tables: str = Field(DEFAULT_EXCLUDED_TABLES, alias="SMART_CACHE_EXCLUDED_TABLES")  # comma list
    stats_window_hours: int = Field(24, alias="SMART_CACHE_STATS_WINDOW_HOURS")

    # Cache backend probing
    cache_driver: str = Field("redis", alias="SMART_CACHE_DRIVER")  # redis|memcached|file
    memcached_servers: str = Field("localhost:11211", alias="MEMCACHED_SERVERS")  # comma list host:port
    file_cache_path: str = Field("./storage/cache", alias="SMART_CACHE_FILE_PATH")
    driver_sample_size: int = Field(1000, alias="SMART_CACHE_DRIVER_SAMPLE_SIZE")
    probe_timeout_seconds: float = Field(2.0, alias="SMART_CACHE_PROBE_TIMEOUT")
    dispatch_timeout_seconds: float = Field(1.0, alias="SMART_CACHE_DISPATCH_TIMEOUT")
    redis_analyze_memory: bool = Field(True, alias="SMART_CACHE_REDIS_ANALYZE_MEMORY")
    redis_track_evictions: bool = Field(True, alias="SMART_CACHE_REDIS_TRACK_EVICTIONS")
    redis_monitor_key_patterns: bool = Field(True, alias="SMART_CACHE_REDIS_KEY_PATTERNS")
    redis_analyze_ttl_distribution: bool = Field(True, alias="SMART_CACHE_REDIS_TTL_DISTRIBUTION")
    memcached_analyze_memory: bool = Field(True, alias="SMART_CACHE_MEMCACHED_ANALYZE_MEMORY")
    memcached_track_evictions: bool = Field(True, alias="SMART_CACHE_MEMCACHED_TRACK_EVICTIONS")
    memcached_monitor_hit_rate: bool = Field(True, alias="SMART_CACHE_MEMCACHED_HIT_RATE")
    file_track_disk_usage: bool = Field(True, alias="SMART_CACHE_FILE_DISK_USAGE")
    file_analyze_file_sizes: bool = Field(True, alias="SMART_CACHE_FILE_SIZES")

    # Default TTL suggestions (seconds)
    ttl_static_data: int = Field(86400, alias="SMART_CACHE_TTL_STATIC")
    ttl_user_data: int = Field(3600, alias="SMART_CACHE_TTL_USER")
    ttl_volatile_data: int = Field(300, alias="SMART_CACHE_TTL_VOLATILE")
    ttl_configuration: int = Field(604800, alias="SMART_CACHE_TTL_CONFIGURATION")

    # Auto-apply policy
    auto_apply_enabled: bool = Field(False, alias="SMART_CACHE_AUTO_APPLY")
    auto_apply_priority_threshold: str = Field("high", alias="SMART_CACHE_AUTO_APPLY_THRESHOLD")  # high|medium|low
    auto_apply_require_approval: bool = Field(True, alias="SMART_CACHE_AUTO_APPLY_APPROVAL")
    auto_apply_dry_run: bool = Field(True, alias="SMART_CACHE_AUTO_APPLY_DRY_RUN")
    auto_apply_max_queries: int = Field(10, alias="SMART_CACHE_AUTO_APPLY_MAX")

    # Real-time notifications
    broadcasting_enabled: bool = Field(False, alias="SMART_CACHE_BROADCASTING_ENABLED")
    broadcast_recommendations: bool = Field(True, alias="SMART_CACHE_BROADCAST_RECOMMENDATIONS")
    stats_update_interval: int = Field(5, alias="SMART_CACHE_STATS_UPDATE_INTERVAL")  # seconds

    # Applied strategy storage
    strategy_store: str = Field("redis", alias="SMART_CACHE_STRATEGY_STORE")  # redis|memory
    strategy_key_prefix: str = Field("smart_cache:strategy:", alias="SMART_CACHE_STRATEGY_PREFIX")

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "allow"  # Allow extra environment variables


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reset_settings():
    """Clear cached settings (useful in tests when env vars change)."""
    get_settings.cache_clear()


def parse_excluded_tables(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def parse_memcached_servers(raw: str | None) -> list[tuple[str, int]]:
    servers: list[tuple[str, int]] = []
    if not raw:
        return servers
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        host, _, port = part.partition(":")
        servers.append((host, int(port or 11211)))
    return servers


def default_ttls(s: Settings) -> dict[str, int]:
    return {
        "static_data": s.ttl_static_data,
        "user_data": s.ttl_user_data,
        "volatile_data": s.ttl_volatile_data,
        "configuration": s.ttl_configuration,
    }


def driver_options(s: Settings, driver: str) -> dict[str, bool]:
    """Per-driver probe toggles keyed the way collectors read them."""
    if driver == "redis":
        return {
            "analyze_memory": s.redis_analyze_memory,
            "track_evictions": s.redis_track_evictions,
            "monitor_key_patterns": s.redis_monitor_key_patterns,
            "analyze_ttl_distribution": s.redis_analyze_ttl_distribution,
        }
    if driver == "memcached":
        return {
            "analyze_memory": s.memcached_analyze_memory,
            "track_evictions": s.memcached_track_evictions,
            "monitor_hit_rate": s.memcached_monitor_hit_rate,
        }
    if driver == "file":
        return {
            "track_disk_usage": s.file_track_disk_usage,
            "analyze_file_sizes": s.file_analyze_file_sizes,
        }
    return {}
