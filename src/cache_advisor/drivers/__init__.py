"""Per-backend cache statistics collectors, selected by driver name."""
from __future__ import annotations
from typing import Callable
from cache_advisor.config import Settings, driver_options, parse_memcached_servers
from cache_advisor.drivers.base import DriverStatsCollector, NullStatsCollector, format_bytes
from cache_advisor.drivers.redis_driver import RedisStatsCollector
from cache_advisor.drivers.memcached_driver import MemcachedStatsCollector
from cache_advisor.drivers.file_driver import FileStatsCollector


def _redis(settings: Settings) -> DriverStatsCollector:
    return RedisStatsCollector.from_url(
        settings.redis_url,
        settings.probe_timeout_seconds,
        options=driver_options(settings, "redis"),
        sample_size=settings.driver_sample_size,
    )


def _memcached(settings: Settings) -> DriverStatsCollector:
    return MemcachedStatsCollector.from_servers(
        parse_memcached_servers(settings.memcached_servers),
        settings.probe_timeout_seconds,
        options=driver_options(settings, "memcached"),
    )


def _file(settings: Settings) -> DriverStatsCollector:
    return FileStatsCollector(settings.file_cache_path, options=driver_options(settings, "file"))


COLLECTORS: dict[str, Callable[[Settings], DriverStatsCollector]] = {
    "redis": _redis,
    "memcached": _memcached,
    "file": _file,
}


def get_collector(name: str, settings: Settings) -> DriverStatsCollector:
    factory = COLLECTORS.get((name or "").lower())
    if factory is None:
        return NullStatsCollector(name or "unknown")
    return factory(settings)


__all__ = [
    "DriverStatsCollector",
    "NullStatsCollector",
    "RedisStatsCollector",
    "MemcachedStatsCollector",
    "FileStatsCollector",
    "get_collector",
    "format_bytes",
]
