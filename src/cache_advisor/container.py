from __future__ import annotations
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from sqlalchemy.orm import sessionmaker
from cache_advisor.aggregator import StatsAggregator
from cache_advisor.config import Settings, get_settings
from cache_advisor.drivers import DriverStatsCollector, get_collector
from cache_advisor.infrastructure.db import get_session_factory
from cache_advisor.lifecycle import AutoApplyPolicy, RecommendationLifecycle
from cache_advisor.monitor import Dispatcher, QueryMonitor
from cache_advisor.notifications import NotificationSink, NullNotificationSink, RedisNotificationSink
from cache_advisor.recommendations import RecommendationEngine
from cache_advisor.stores import SqlAccessRecorder, SqlFingerprintStore
from cache_advisor.strategies import MemoryStrategyStore, RedisStrategyStore, StrategyStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    aggregator: StatsAggregator
    engine: RecommendationEngine
    lifecycle: RecommendationLifecycle
    monitor: QueryMonitor
    collector: DriverStatsCollector
    strategies: StrategyStore
    notifier: NotificationSink
    session_factory: Optional[sessionmaker] = None


def _strategy_store(settings: Settings) -> StrategyStore:
    if settings.strategy_store == "memory":
        return MemoryStrategyStore()
    return RedisStrategyStore.from_url(settings.redis_url, settings.strategy_key_prefix, settings.probe_timeout_seconds)


def _notifier(settings: Settings) -> NotificationSink:
    if not settings.broadcasting_enabled:
        return NullNotificationSink()
    return RedisNotificationSink.from_url(settings.redis_url, settings.probe_timeout_seconds)


def build_container(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    strategy_store: Optional[StrategyStore] = None,
    notifier: Optional[NotificationSink] = None,
    collector: Optional[DriverStatsCollector] = None,
    dispatcher: Optional[Dispatcher] = None,
) -> Container:
    settings = settings if settings is not None else get_settings()
    session_factory = session_factory if session_factory is not None else get_session_factory()
    collector = collector if collector is not None else get_collector(settings.cache_driver, settings)
    strategies = strategy_store if strategy_store is not None else _strategy_store(settings)
    notifier = notifier if notifier is not None else _notifier(settings)

    fingerprints = SqlFingerprintStore(session_factory)
    aggregator = StatsAggregator(
        fingerprints,
        SqlAccessRecorder(session_factory),
        collector,
        stats_window_hours=settings.stats_window_hours,
    )
    engine = RecommendationEngine.from_settings(fingerprints, settings)
    lifecycle = RecommendationLifecycle(
        session_factory,
        engine,
        strategies,
        policy=AutoApplyPolicy.from_settings(settings),
        notifier=notifier,
        broadcast=settings.broadcasting_enabled and settings.broadcast_recommendations,
    )
    monitor = QueryMonitor.from_settings(aggregator, settings, dispatcher=dispatcher)
    if settings.enabled:
        monitor.start()
    logger.info(
        "cache advisor wired driver=%s dispatch=%s sampling=%s enabled=%s",
        collector.get_driver_name(), settings.dispatch_mode, settings.sampling_rate, settings.enabled,
    )
    return Container(
        settings=settings,
        aggregator=aggregator,
        engine=engine,
        lifecycle=lifecycle,
        monitor=monitor,
        collector=collector,
        strategies=strategies,
        notifier=notifier,
        session_factory=session_factory,
    )


@lru_cache
def get_container() -> Container:
    return build_container()


def reset_container() -> None:
    get_container.cache_clear()


def shutdown_container() -> None:
    """Stop the cached container's monitor, flushing buffered events. No-op if never built."""
    if not get_container.cache_info().currsize:
        return
    c = get_container()
    c.monitor.stop()
    logger.info("cache advisor monitor stopped")
