from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, Integer, BigInteger, DateTime, JSON, Float, Boolean, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from cache_advisor.infrastructure.db import Base


PRIORITIES = ("high", "medium", "low")
STATUSES = ("pending", "approved", "rejected", "applied")


class QueryFingerprint(Base):
    """Aggregated timings for one normalized statement pattern.

    Rows are written only through the atomic upsert in StatsAggregator; the core never deletes them.
    """
    __tablename__ = "smart_cache_query_fingerprints"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    query_hash: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    query: Mapped[str] = mapped_column(Text)
    execution_count: Mapped[int] = mapped_column(BigInteger, default=0)
    total_time: Mapped[float] = mapped_column(Float, default=0.0)  # ms
    avg_time: Mapped[float] = mapped_column(Float, default=0.0, index=True)  # ms
    last_executed_at: Mapped[datetime | None] = mapped_column(DateTime, default=None, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_fingerprint_execution_count", "execution_count"),
    )


class CacheAccessMetric(Base):
    __tablename__ = "smart_cache_metrics"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hits: Mapped[int] = mapped_column(BigInteger, default=0)
    misses: Mapped[int] = mapped_column(BigInteger, default=0)
    last_hit_at: Mapped[datetime | None] = mapped_column(DateTime, default=None, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    @property
    def hit_ratio(self) -> float:
        total = (self.hits or 0) + (self.misses or 0)
        return round((self.hits or 0) / total * 100, 2) if total else 0.0


class CacheRecommendation(Base):
    """Persisted caching suggestion.

    status: pending|approved|rejected|applied (rejected and applied are terminal)
    priority: high|medium|low
    applied_config: strategy record written downstream when applied.
    """
    __tablename__ = "smart_cache_recommendations"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    query_hash: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    query: Mapped[str] = mapped_column(Text)
    priority: Mapped[str] = mapped_column(String(16), index=True)
    suggested_ttl: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(255))
    potential_savings: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    auto_applied: Mapped[bool] = mapped_column(Boolean, default=False)
    applied_config: Mapped[dict | None] = mapped_column(JSON, default=None)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "query_hash": self.query_hash,
            "query": self.query,
            "priority": self.priority,
            "suggested_ttl": self.suggested_ttl,
            "reason": self.reason,
            "potential_savings": self.potential_savings,
            "status": self.status,
            "auto_applied": bool(self.auto_applied),
            "applied_config": self.applied_config,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
