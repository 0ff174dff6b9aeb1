"""Threshold rules turning fingerprint aggregates into caching candidates."""
from __future__ import annotations
import re
from dataclasses import dataclass, asdict
from typing import Any
from cache_advisor.config import Settings, default_ttls
from cache_advisor.stores import FingerprintStore

# Ordered; first match wins.
TTL_RULES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"\b(config|configuration|settings|countries|currencies)\b", re.IGNORECASE), "configuration"),
    (re.compile(r"\bwhere\b.*\buser_id\b", re.IGNORECASE | re.DOTALL), "user_data"),
    (re.compile(r"\b(orders|transactions|logs)\b", re.IGNORECASE), "volatile_data"),
)
FALLBACK_TTL_KIND = "static_data"

DEFAULT_TTLS = {
    "static_data": 86400,
    "user_data": 3600,
    "volatile_data": 300,
    "configuration": 604800,
}


@dataclass
class RecommendationCandidate:
    query_hash: str
    query: str
    type: str  # slow_query|repeated_query
    priority: str
    reason: str
    suggested_ttl: int
    potential_savings: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def classify_ttl_kind(text: str) -> str:
    for pattern, kind in TTL_RULES:
        if pattern.search(text or ""):
            return kind
    return FALLBACK_TTL_KIND


def _fmt(value: float) -> str:
    return f"{round(value, 2):g}"


class RecommendationEngine:
    def __init__(
        self,
        store: FingerprintStore,
        slow_query_threshold: float = 100.0,
        repeated_query_threshold: int = 5,
        limit: int = 10,
        ttls: dict[str, int] | None = None,
    ):
        self.store = store
        self.slow_query_threshold = slow_query_threshold
        self.repeated_query_threshold = repeated_query_threshold
        self.limit = limit
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}

    @classmethod
    def from_settings(cls, store: FingerprintStore, settings: Settings) -> "RecommendationEngine":
        return cls(
            store,
            slow_query_threshold=settings.slow_query_threshold,
            repeated_query_threshold=settings.repeated_query_threshold,
            limit=settings.recommendation_limit,
            ttls=default_ttls(settings),
        )

    def classify_ttl(self, text: str) -> int:
        return self.ttls[classify_ttl_kind(text)]

    def _candidate(self, row, type_: str, priority: str, reason: str) -> RecommendationCandidate:
        return RecommendationCandidate(
            query_hash=row.query_hash,
            query=row.query,
            type=type_,
            priority=priority,
            reason=reason,
            suggested_ttl=self.classify_ttl(row.query),
            potential_savings=float(row.execution_count or 0) * float(row.avg_time or 0.0),
        )

    def derive_recommendations(self) -> list[RecommendationCandidate]:
        slow = self.store.find_slow(self.slow_query_threshold, self.limit)
        repeated = self.store.find_repeated(self.repeated_query_threshold, self.limit)

        out = [
            self._candidate(row, "slow_query", "high", f"Query takes {_fmt(row.avg_time)}ms on average")
            for row in slow
        ]
        seen = {row.query_hash for row in slow}
        for row in repeated:
            if row.query_hash in seen:
                continue
            out.append(self._candidate(row, "repeated_query", "medium", f"Executed {row.execution_count} times"))
        return out

    def get_recommendations(self) -> list[dict[str, Any]]:
        return [c.to_dict() for c in self.derive_recommendations()]
