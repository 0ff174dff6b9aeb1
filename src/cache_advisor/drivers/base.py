from __future__ import annotations
import logging
from typing import Any, Protocol, runtime_checkable
from prometheus_client import Counter

logger = logging.getLogger(__name__)

PROBE_ERRORS = Counter('smart_cache_probe_errors_total', 'Cache backend probe failures', ['driver'])

BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


@runtime_checkable
class DriverStatsCollector(Protocol):
    """Best-effort statistics probe for one cache backend.

    get_stats() never raises: backend failures are reported under stats["error"].
    get_memory_usage()/get_eviction_stats() return None when unsupported or failing.
    forget(key) deletes one backend entry and raises on backend failure.
    """

    def get_stats(self) -> dict[str, Any]: ...
    def supports(self, feature: str) -> bool: ...
    def get_memory_usage(self) -> dict[str, Any] | None: ...
    def get_eviction_stats(self) -> dict[str, Any] | None: ...
    def get_driver_name(self) -> str: ...
    def forget(self, key: str) -> bool: ...


def format_bytes(num: int | float | None) -> str:
    value = float(num or 0)
    for unit in BYTE_UNITS[:-1]:
        if abs(value) < 1024:
            return f"{round(value, 2):g} {unit}"
        value /= 1024
    return f"{round(value, 2):g} {BYTE_UNITS[-1]}"


def percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


def record_probe_failure(driver: str, exc: Exception, probe: str = "stats") -> None:
    PROBE_ERRORS.labels(driver=driver).inc()
    logger.warning("cache probe failed driver=%s probe=%s error=%s", driver, probe, exc)


class NullStatsCollector:
    """Stand-in for unknown drivers; reports no capabilities."""

    def __init__(self, name: str = "unknown"):
        self.name = name

    def get_stats(self) -> dict[str, Any]:
        return {"driver": self.name, "memory_usage": None, "keys_count": 0}

    def supports(self, feature: str) -> bool:
        return False

    def get_memory_usage(self) -> dict[str, Any] | None:
        return None

    def get_eviction_stats(self) -> dict[str, Any] | None:
        return None

    def get_driver_name(self) -> str:
        return self.name

    def forget(self, key: str) -> bool:
        raise NotImplementedError(f"driver {self.name!r} cannot delete keys")
