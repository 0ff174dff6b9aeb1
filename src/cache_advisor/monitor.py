"""Hot-path observation of executed statements.

observe() applies, in order: sampling gate, exclusion gate, dispatch
(sync | buffered | async). It never raises into the caller.
"""
from __future__ import annotations
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional
from prometheus_client import Counter, Gauge
from sqlalchemy import event
from sqlalchemy.engine import Engine
from cache_advisor.aggregator import StatsAggregator
from cache_advisor.config import Settings, parse_excluded_tables
from cache_advisor.fingerprint import fingerprint, normalize

logger = logging.getLogger(__name__)

QUERIES_OBSERVED = Counter('smart_cache_queries_observed_total', 'Observed statements by outcome', ['outcome'])
DISPATCH_FALLBACKS = Counter('smart_cache_dispatch_fallbacks_total', 'Async handoffs that fell back to inline aggregation')
BUFFER_SIZE = Gauge('smart_cache_buffer_size', 'Statements waiting in the observation buffer')

DISPATCH_MODES = ("sync", "buffered", "async")
# the advisor's own tables; observing them would feed its writes back into itself
INTERNAL_TABLE_PREFIX = "smart_cache_"

_START_KEY = "cache_advisor_query_start"

Dispatcher = Callable[[str, str, float], None]


@dataclass
class ObservedQuery:
    text: str
    elapsed_ms: float
    bound_values: Any = None


def celery_dispatcher() -> Dispatcher:
    """Hand events to the analyze_query Celery task without publish retries.

    The broker connect bound comes from broker_connection_timeout on the Celery app.
    """

    def dispatch(query_hash: str, display_text: str, elapsed_ms: float) -> None:
        from cache_advisor.tasks.analysis import analyze_query

        analyze_query.apply_async(
            args=(query_hash, display_text, elapsed_ms),
            retry=False,
        )

    return dispatch


class QueryMonitor:
    def __init__(
        self,
        aggregator: StatsAggregator,
        sampling_rate: int = 100,
        excluded_tables: list[str] | None = None,
        dispatch_mode: str = "sync",
        batch_size: int = 50,
        dispatcher: Optional[Dispatcher] = None,
        rng: Optional[random.Random] = None,
    ):
        if dispatch_mode not in DISPATCH_MODES:
            raise ValueError(f"unknown dispatch mode: {dispatch_mode}")
        self.aggregator = aggregator
        self.sampling_rate = max(1, min(100, int(sampling_rate)))
        self.excluded = [t.lower() for t in (excluded_tables or []) if t] + [INTERNAL_TABLE_PREFIX]
        self.dispatch_mode = dispatch_mode
        self.batch_size = max(1, int(batch_size))
        self.dispatcher = dispatcher
        self._rng = rng or random.Random()
        self._buffer: list[ObservedQuery] = []
        self._lock = threading.RLock()
        self._monitoring = False

    @classmethod
    def from_settings(cls, aggregator: StatsAggregator, settings: Settings, dispatcher: Optional[Dispatcher] = None) -> "QueryMonitor":
        if dispatcher is None and settings.dispatch_mode == "async":
            dispatcher = celery_dispatcher()
        return cls(
            aggregator,
            sampling_rate=settings.sampling_rate,
            excluded_tables=parse_excluded_tables(settings.excluded_tables),
            dispatch_mode=settings.dispatch_mode,
            batch_size=settings.batch_size,
            dispatcher=dispatcher,
        )

    # -- state --------------------------------------------------------------

    def start(self) -> None:
        self._monitoring = True

    def stop(self) -> None:
        self.flush()
        self._monitoring = False

    def is_monitoring(self) -> bool:
        return self._monitoring

    # -- intake -------------------------------------------------------------

    def should_sample(self) -> bool:
        if self.sampling_rate >= 100:
            return True
        return self._rng.randint(1, 100) <= self.sampling_rate

    def is_excluded(self, text: str) -> bool:
        lowered = (text or "").lower()
        return any(name in lowered for name in self.excluded)

    def observe(self, text: str, elapsed_ms: float, bound_values: Any = None) -> None:
        if not self._monitoring:
            return
        if not self.should_sample():
            QUERIES_OBSERVED.labels(outcome="sampled_out").inc()
            return
        if self.is_excluded(text):
            QUERIES_OBSERVED.labels(outcome="excluded").inc()
            return
        try:
            item = ObservedQuery(text, float(elapsed_ms), bound_values)
            if self.dispatch_mode == "buffered":
                self._enqueue(item)
            elif self.dispatch_mode == "async":
                self._dispatch(item)
            else:
                self._process(item)
        except Exception:
            QUERIES_OBSERVED.labels(outcome="error").inc()
            logger.exception("failed to observe statement")

    def _enqueue(self, item: ObservedQuery) -> None:
        with self._lock:
            self._buffer.append(item)
            BUFFER_SIZE.set(len(self._buffer))
            if len(self._buffer) >= self.batch_size:
                self.flush()

    def flush(self) -> int:
        """Aggregate every buffered event in arrival order. Returns events flushed."""
        with self._lock:
            batch, self._buffer = self._buffer, []
            for item in batch:
                self._process(item)
            BUFFER_SIZE.set(0)
            return len(batch)

    def buffered_count(self) -> int:
        with self._lock:
            return len(self._buffer)

    def _prepare(self, item: ObservedQuery) -> Optional[tuple[str, str]]:
        """(hash, display text) for item, or None when it cannot be fingerprinted."""
        try:
            return fingerprint(item.text).hash, normalize(item.text, item.bound_values)
        except Exception:
            QUERIES_OBSERVED.labels(outcome="error").inc()
            logger.exception("failed to fingerprint statement")
            return None

    def _dispatch(self, item: ObservedQuery) -> None:
        prepared = self._prepare(item)
        if prepared is None:
            return
        query_hash, display = prepared
        if self.dispatcher is not None:
            try:
                self.dispatcher(query_hash, display, item.elapsed_ms)
                QUERIES_OBSERVED.labels(outcome="dispatched").inc()
                return
            except Exception as e:  # broker down, serialization, timeout
                DISPATCH_FALLBACKS.inc()
                logger.warning("async dispatch failed, aggregating inline: %s", e)
        self._aggregate(query_hash, display, item.elapsed_ms)

    def _process(self, item: ObservedQuery) -> None:
        prepared = self._prepare(item)
        if prepared is not None:
            self._aggregate(prepared[0], prepared[1], item.elapsed_ms)

    def _aggregate(self, query_hash: str, display: str, elapsed_ms: float) -> None:
        try:
            self.aggregator.record_execution(query_hash, display, elapsed_ms)
            QUERIES_OBSERVED.labels(outcome="recorded").inc()
        except Exception:
            QUERIES_OBSERVED.labels(outcome="error").inc()
            logger.exception("failed to record query execution hash=%s", query_hash)

    # -- SQLAlchemy integration ---------------------------------------------

    def listen(self, engine: Engine) -> None:
        """Time every statement executed on engine and feed it to observe()."""

        @event.listens_for(engine, "before_cursor_execute")
        def _before(conn, cursor, statement, parameters, context, executemany):
            conn.info.setdefault(_START_KEY, []).append(time.perf_counter())

        @event.listens_for(engine, "after_cursor_execute")
        def _after(conn, cursor, statement, parameters, context, executemany):
            starts = conn.info.get(_START_KEY)
            if not starts:
                return
            elapsed_ms = (time.perf_counter() - starts.pop(-1)) * 1000.0
            self.observe(statement, elapsed_ms, None if executemany else parameters)

        @event.listens_for(engine, "handle_error")
        def _error(context):
            # after_cursor_execute never fires for a failed statement
            conn = context.connection
            starts = conn.info.get(_START_KEY) if conn is not None else None
            if starts:
                starts.pop(-1)
