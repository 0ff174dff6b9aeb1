"""Persistence seams consumed by the aggregation core.

`FingerprintStore` owns QueryFingerprint rows, `AccessRecorder` owns
CacheAccessMetric rows. Both upserts are a single INSERT ... ON CONFLICT DO UPDATE
on SQLite/PostgreSQL, so concurrent writers targeting one key never lose an increment.
Other dialects fall back to update-then-insert, retrying the update if a racing
insert wins the unique constraint.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Protocol, Sequence
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from cache_advisor.models.tables import QueryFingerprint, CacheAccessMetric

logger = logging.getLogger(__name__)


class FingerprintStore(Protocol):
    def upsert_execution(self, query_hash: str, query: str, elapsed_ms: float, executed_at: datetime | None = None) -> None: ...
    def find_slow(self, threshold_ms: float, limit: int) -> Sequence[QueryFingerprint]: ...
    def find_repeated(self, threshold: int, limit: int) -> Sequence[QueryFingerprint]: ...
    def top_by_executions(self, limit: int) -> Sequence[QueryFingerprint]: ...
    def get(self, query_hash: str) -> QueryFingerprint | None: ...


class AccessRecorder(Protocol):
    def record(self, cache_key: str, hit: bool, at: datetime | None = None) -> None: ...
    def totals(self, since: datetime) -> tuple[int, int]: ...
    def unused_since(self, cutoff: datetime) -> list[str]: ...


def _conflict_insert(session: Session, model):
    """Dialect insert() supporting on_conflict_do_update, or None."""
    name = session.get_bind().dialect.name
    if name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        return None
    return insert(model)


class SqlFingerprintStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def upsert_execution(self, query_hash: str, query: str, elapsed_ms: float, executed_at: datetime | None = None) -> None:
        now = executed_at or datetime.utcnow()
        elapsed = float(elapsed_ms)
        t = QueryFingerprint.__table__
        increments = {
            "execution_count": t.c.execution_count + 1,
            "total_time": t.c.total_time + elapsed,
            # evaluated against the pre-update row
            "avg_time": (t.c.total_time + elapsed) / (t.c.execution_count + 1),
            "last_executed_at": now,
            "updated_at": now,
        }
        session = self.session_factory()
        try:
            stmt = _conflict_insert(session, QueryFingerprint)
            if stmt is not None:
                stmt = stmt.values(
                    query_hash=query_hash,
                    query=query,
                    execution_count=1,
                    total_time=elapsed,
                    avg_time=elapsed,
                    last_executed_at=now,
                    created_at=now,
                    updated_at=now,
                ).on_conflict_do_update(index_elements=["query_hash"], set_=increments)
                session.execute(stmt)
                session.commit()
                return
            bump = update(QueryFingerprint).where(QueryFingerprint.query_hash == query_hash).values(**increments)
            if session.execute(bump).rowcount:
                session.commit()
                return
            session.add(QueryFingerprint(
                query_hash=query_hash,
                query=query,
                execution_count=1,
                total_time=elapsed,
                avg_time=elapsed,
                last_executed_at=now,
                created_at=now,
                updated_at=now,
            ))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                session.execute(bump)
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def find_slow(self, threshold_ms: float, limit: int) -> list[QueryFingerprint]:
        session = self.session_factory()
        try:
            return list(session.scalars(
                select(QueryFingerprint)
                .where(QueryFingerprint.avg_time > threshold_ms)
                .order_by(QueryFingerprint.avg_time.desc(), QueryFingerprint.id)
                .limit(limit)
            ))
        finally:
            session.close()

    def find_repeated(self, threshold: int, limit: int) -> list[QueryFingerprint]:
        session = self.session_factory()
        try:
            return list(session.scalars(
                select(QueryFingerprint)
                .where(QueryFingerprint.execution_count > threshold)
                .order_by(QueryFingerprint.execution_count.desc(), QueryFingerprint.id)
                .limit(limit)
            ))
        finally:
            session.close()

    def top_by_executions(self, limit: int) -> list[QueryFingerprint]:
        session = self.session_factory()
        try:
            return list(session.scalars(
                select(QueryFingerprint)
                .order_by(QueryFingerprint.execution_count.desc(), QueryFingerprint.id)
                .limit(limit)
            ))
        finally:
            session.close()

    def get(self, query_hash: str) -> QueryFingerprint | None:
        session = self.session_factory()
        try:
            return session.scalar(select(QueryFingerprint).where(QueryFingerprint.query_hash == query_hash))
        finally:
            session.close()


class SqlAccessRecorder:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(self, cache_key: str, hit: bool, at: datetime | None = None) -> None:
        now = at or datetime.utcnow()
        t = CacheAccessMetric.__table__
        increments = {"updated_at": now}
        if hit:
            increments["hits"] = t.c.hits + 1
            increments["last_hit_at"] = now
        else:
            increments["misses"] = t.c.misses + 1
        initial = {
            "cache_key": cache_key,
            "hits": 1 if hit else 0,
            "misses": 0 if hit else 1,
            "last_hit_at": now if hit else None,
            "created_at": now,
            "updated_at": now,
        }
        session = self.session_factory()
        try:
            stmt = _conflict_insert(session, CacheAccessMetric)
            if stmt is not None:
                session.execute(stmt.values(**initial).on_conflict_do_update(index_elements=["cache_key"], set_=increments))
                session.commit()
                return
            bump = update(CacheAccessMetric).where(CacheAccessMetric.cache_key == cache_key).values(**increments)
            if session.execute(bump).rowcount:
                session.commit()
                return
            session.add(CacheAccessMetric(**initial))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                session.execute(bump)
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def totals(self, since: datetime) -> tuple[int, int]:
        session = self.session_factory()
        try:
            hits, misses = session.execute(
                select(
                    func.coalesce(func.sum(CacheAccessMetric.hits), 0),
                    func.coalesce(func.sum(CacheAccessMetric.misses), 0),
                ).where(CacheAccessMetric.updated_at >= since)
            ).one()
            return int(hits), int(misses)
        finally:
            session.close()

    def unused_since(self, cutoff: datetime) -> list[str]:
        session = self.session_factory()
        try:
            return list(session.scalars(
                select(CacheAccessMetric.cache_key)
                .where(or_(CacheAccessMetric.last_hit_at.is_(None), CacheAccessMetric.last_hit_at < cutoff))
                .order_by(CacheAccessMetric.cache_key)
            ))
        finally:
            session.close()
