from __future__ import annotations
import os
import shutil
from typing import Any, Iterator
from cache_advisor.drivers.base import format_bytes, record_probe_failure

FEATURES = frozenset({"disk_usage", "file_analysis", "cleanup_tracking"})
LARGEST_FILES = 10

# (upper bound exclusive, label)
SIZE_BUCKETS = (
    (1024, "0-1KB"),
    (10240, "1-10KB"),
    (102400, "10-100KB"),
    (1048576, "100KB-1MB"),
)


def size_bucket(size: int) -> str:
    for bound, label in SIZE_BUCKETS:
        if size < bound:
            return label
    return "1MB+"


class FileStatsCollector:
    def __init__(self, path: str, options: dict[str, bool] | None = None):
        self.path = path
        self.options = options or {}

    def get_driver_name(self) -> str:
        return "file"

    def supports(self, feature: str) -> bool:
        return feature in FEATURES

    def forget(self, key: str) -> bool:
        root = os.path.realpath(self.path)
        target = os.path.realpath(os.path.join(root, key))
        if os.path.commonpath([root, target]) != root or target == root:
            raise ValueError(f"key {key!r} resolves outside the cache directory")
        try:
            os.remove(target)
        except FileNotFoundError:
            return False
        return True

    def _walk(self) -> Iterator[tuple[str, int]]:
        for root, _dirs, files in os.walk(self.path):
            for name in files:
                full = os.path.join(root, name)
                try:
                    yield full, os.path.getsize(full)
                except FileNotFoundError:  # removed mid-walk by cache GC
                    continue

    def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "driver": "file",
            "disk_usage": None,
            "file_count": None,
            "total_size": None,
            "keys_count": 0,
            "memory_usage": None,
        }
        try:
            if self.options.get("track_disk_usage", True):
                usage = self._disk_usage()
                stats["disk_usage"] = usage
                if usage.get("exists"):
                    stats["file_count"] = usage["file_count"]
                    stats["total_size"] = usage["total_size"]
                    stats["keys_count"] = usage["file_count"]
                    stats["memory_usage"] = usage["total_size_human"]
            if self.options.get("analyze_file_sizes", True):
                stats["file_analysis"] = self._file_sizes()
        except OSError as e:
            record_probe_failure("file", e)
            stats["error"] = str(e)
        return stats

    def get_memory_usage(self) -> dict[str, Any] | None:
        return None

    def get_eviction_stats(self) -> dict[str, Any] | None:
        return None

    def _disk_usage(self) -> dict[str, Any]:
        if not os.path.isdir(self.path):
            return {"path": self.path, "exists": False}
        total = 0
        count = 0
        for _path, size in self._walk():
            total += size
            count += 1
        free = shutil.disk_usage(self.path).free
        return {
            "path": self.path,
            "exists": True,
            "total_size": total,
            "total_size_human": format_bytes(total),
            "file_count": count,
            "avg_file_size": round(total / count) if count else 0,
            "disk_free": free,
            "disk_free_human": format_bytes(free),
        }

    def _file_sizes(self) -> dict[str, Any]:
        distribution = {label: 0 for _bound, label in SIZE_BUCKETS}
        distribution["1MB+"] = 0
        files: list[dict[str, Any]] = []
        if os.path.isdir(self.path):
            for path, size in self._walk():
                distribution[size_bucket(size)] += 1
                files.append({"path": path, "size": size, "size_human": format_bytes(size)})
        files.sort(key=lambda f: f["size"], reverse=True)
        return {"distribution": distribution, "largest_files": files[:LARGEST_FILES]}
