"""Recommendation state machine and the auto-apply policy.

    pending  -> approved | rejected
    approved -> applied
    pending  -> applied   (auto-apply only, when approval is not required)

rejected and applied are terminal. Every transition is a status-guarded UPDATE,
so a row that moved concurrently is never transitioned twice.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable
from prometheus_client import Counter
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from cache_advisor.config import Settings
from cache_advisor.models.tables import CacheRecommendation
from cache_advisor.notifications import (
    NotificationSink,
    NullNotificationSink,
    RECOMMENDATIONS_TOPIC,
    recommendation_event,
)
from cache_advisor.recommendations import RecommendationEngine
from cache_advisor.strategies import StrategyStore

logger = logging.getLogger(__name__)

RECOMMENDATIONS_SYNCED = Counter('smart_cache_recommendations_synced_total', 'Recommendations inserted by sync')
AUTO_APPLY_RESULTS = Counter('smart_cache_auto_apply_total', 'Auto-apply per-item outcomes', ['outcome'])

TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"approved", "rejected", "applied"}),
    "approved": frozenset({"applied"}),
    "rejected": frozenset(),
    "applied": frozenset(),
}

# threshold -> priorities it admits (inclusive upward)
PRIORITY_SCOPES: dict[str, tuple[str, ...]] = {
    "high": ("high",),
    "medium": ("high", "medium"),
    "low": ("high", "medium", "low"),
}

STRATEGY_TAGS = ["smart-cache", "auto-applied"]
QUERY_PREVIEW_CHARS = 100


class RecommendationError(Exception):
    pass


class InvalidRequestError(RecommendationError):
    pass


class TransitionError(RecommendationError):
    pass


@dataclass
class AutoApplyPolicy:
    enabled: bool = False
    priority_threshold: str = "high"
    require_approval: bool = True
    dry_run: bool = True
    max_queries_per_run: int = 10

    @classmethod
    def from_settings(cls, s: Settings) -> "AutoApplyPolicy":
        return cls(
            enabled=s.auto_apply_enabled,
            priority_threshold=s.auto_apply_priority_threshold,
            require_approval=s.auto_apply_require_approval,
            dry_run=s.auto_apply_dry_run,
            max_queries_per_run=s.auto_apply_max_queries,
        )

    @property
    def priorities(self) -> tuple[str, ...]:
        return PRIORITY_SCOPES.get((self.priority_threshold or "").lower(), PRIORITY_SCOPES["high"])

    @property
    def source_status(self) -> str:
        return "approved" if self.require_approval else "pending"


def build_strategy(rec: CacheRecommendation, now: datetime | None = None) -> dict[str, Any]:
    return {
        "query_hash": rec.query_hash,
        "ttl": rec.suggested_ttl,
        "cache_key_prefix": f"smart_cache_{rec.query_hash}",
        "tags": list(STRATEGY_TAGS),
        "priority": rec.priority,
        "applied_at": (now or datetime.utcnow()).isoformat(),
    }


class RecommendationLifecycle:
    def __init__(
        self,
        session_factory: sessionmaker,
        engine: RecommendationEngine,
        strategies: StrategyStore,
        policy: AutoApplyPolicy | None = None,
        notifier: NotificationSink | None = None,
        broadcast: bool = False,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.strategies = strategies
        self.policy = policy or AutoApplyPolicy()
        self.notifier = notifier if notifier is not None else NullNotificationSink()
        self.broadcast = broadcast

    # -- sync ---------------------------------------------------------------

    def sync(self) -> int:
        """Insert a pending row for every candidate hash not yet recommended. Returns inserted count."""
        candidates = self.engine.derive_recommendations()
        if not candidates:
            return 0
        inserted = 0
        session = self.session_factory()
        try:
            hashes = [c.query_hash for c in candidates]
            existing = set(session.scalars(
                select(CacheRecommendation.query_hash).where(CacheRecommendation.query_hash.in_(hashes))
            ))
            for cand in candidates:
                if cand.query_hash in existing:
                    continue
                now = datetime.utcnow()
                rec = CacheRecommendation(
                    query_hash=cand.query_hash,
                    query=cand.query,
                    priority=cand.priority,
                    suggested_ttl=cand.suggested_ttl,
                    reason=cand.reason,
                    potential_savings=cand.potential_savings,
                    status="pending",
                    auto_applied=False,
                    created_at=now,
                    updated_at=now,
                )
                session.add(rec)
                try:
                    session.commit()
                except IntegrityError:
                    # another process inserted the same hash first
                    session.rollback()
                    existing.add(cand.query_hash)
                    continue
                existing.add(cand.query_hash)
                inserted += 1
                if self.broadcast:
                    self.notifier.publish(RECOMMENDATIONS_TOPIC, recommendation_event(rec))
        finally:
            session.close()
        if inserted:
            RECOMMENDATIONS_SYNCED.inc(inserted)
            logger.info("synced %d new cache recommendations", inserted)
        return inserted

    # -- manual transitions -------------------------------------------------

    def _bulk_transition(self, ids: Iterable[int] | None, target: str) -> int:
        try:
            id_list = sorted({int(i) for i in (ids or [])})
        except (TypeError, ValueError) as e:
            raise InvalidRequestError(f"invalid recommendation id: {e}") from e
        if not id_list:
            raise InvalidRequestError("no recommendation ids supplied")
        session = self.session_factory()
        try:
            res = session.execute(
                update(CacheRecommendation)
                .where(CacheRecommendation.id.in_(id_list), CacheRecommendation.status == "pending")
                .values(status=target, updated_at=datetime.utcnow())
            )
            session.commit()
            return int(res.rowcount or 0)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def approve(self, ids: Iterable[int] | None) -> int:
        return self._bulk_transition(ids, "approved")

    def reject(self, ids: Iterable[int] | None) -> int:
        return self._bulk_transition(ids, "rejected")

    # -- auto-apply ---------------------------------------------------------

    def _auto_apply_candidates(self) -> list[CacheRecommendation]:
        session = self.session_factory()
        try:
            return list(session.scalars(
                select(CacheRecommendation)
                .where(
                    CacheRecommendation.priority.in_(self.policy.priorities),
                    CacheRecommendation.status == self.policy.source_status,
                )
                .order_by(CacheRecommendation.potential_savings.desc(), CacheRecommendation.id)
                .limit(self.policy.max_queries_per_run)
            ))
        finally:
            session.close()

    def _mark_applied(self, rec: CacheRecommendation, strategy: dict[str, Any]) -> None:
        """Guarded transition to applied; the strategy is stored only if the row moved."""
        expected = rec.status
        if "applied" not in TRANSITIONS.get(expected, frozenset()):
            raise TransitionError(f"cannot apply recommendation in status {expected}")
        session = self.session_factory()
        try:
            res = session.execute(
                update(CacheRecommendation)
                .where(CacheRecommendation.id == rec.id, CacheRecommendation.status == expected)
                .values(
                    status="applied",
                    auto_applied=True,
                    applied_config=strategy,
                    applied_at=datetime.utcnow(),
                    updated_at=datetime.utcnow(),
                )
            )
            if res.rowcount != 1:
                raise TransitionError(f"recommendation {rec.id} is no longer {expected}")
            self.strategies.put(rec.query_hash, strategy)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _apply_one(self, rec: CacheRecommendation, dry_run: bool) -> dict[str, Any]:
        try:
            strategy = build_strategy(rec)
            if not dry_run:
                self._mark_applied(rec, strategy)
                logger.info(
                    "applied cache recommendation id=%s query_hash=%s ttl=%s priority=%s",
                    rec.id, rec.query_hash, rec.suggested_ttl, rec.priority,
                )
            AUTO_APPLY_RESULTS.labels(outcome="dry_run" if dry_run else "applied").inc()
            return {
                "success": True,
                "recommendation_id": rec.id,
                "query": (rec.query or "")[:QUERY_PREVIEW_CHARS] + "...",
                "ttl": rec.suggested_ttl,
                "config": strategy,
            }
        except Exception as e:  # per-item isolation: one failure never aborts the batch
            AUTO_APPLY_RESULTS.labels(outcome="failed").inc()
            logger.error("failed to apply cache recommendation id=%s error=%s", rec.id, e)
            return {"success": False, "recommendation_id": rec.id, "error": str(e)}

    def process_auto_apply(self) -> dict[str, Any]:
        policy = self.policy
        if not policy.enabled:
            return {"status": "disabled", "message": "Auto-apply is disabled"}
        candidates = self._auto_apply_candidates()
        if not candidates:
            return {
                "status": "success",
                "message": "No recommendations to process",
                "dry_run": policy.dry_run,
                "processed": 0,
                "total": 0,
                "results": [],
            }
        results = [self._apply_one(rec, policy.dry_run) for rec in candidates]
        return {
            "status": "success",
            "dry_run": policy.dry_run,
            "processed": sum(1 for r in results if r["success"]),
            "total": len(candidates),
            "results": results,
        }

    # -- reads --------------------------------------------------------------

    def list_pending(self) -> list[CacheRecommendation]:
        session = self.session_factory()
        try:
            return list(session.scalars(
                select(CacheRecommendation)
                .where(CacheRecommendation.status == "pending")
                .order_by(CacheRecommendation.potential_savings.desc(), CacheRecommendation.id)
            ))
        finally:
            session.close()

    def count_pending(self) -> int:
        session = self.session_factory()
        try:
            return int(session.scalar(
                select(func.count()).select_from(CacheRecommendation).where(CacheRecommendation.status == "pending")
            ) or 0)
        finally:
            session.close()

    def get(self, rec_id: int) -> CacheRecommendation | None:
        session = self.session_factory()
        try:
            return session.get(CacheRecommendation, rec_id)
        finally:
            session.close()

    def get_strategy(self, query_hash: str) -> dict[str, Any] | None:
        return self.strategies.get(query_hash)

    def should_cache(self, query_hash: str) -> bool:
        return self.get_strategy(query_hash) is not None
