from celery import shared_task
import logging
from prometheus_client import Counter
from cache_advisor.container import get_container
from cache_advisor.notifications import STATS_TOPIC, stats_event

logger = logging.getLogger(__name__)

ANALYZED_QUERIES = Counter('smart_cache_analyzed_queries_total', 'Queries aggregated by the analyze_query task')


@shared_task(name="cache_advisor.tasks.analysis.analyze_query")
def analyze_query(query_hash: str, display_text: str, elapsed_ms: float):
    """Out-of-band aggregation for statements handed off by the async monitor."""
    get_container().aggregator.record_execution(query_hash, display_text, float(elapsed_ms))
    ANALYZED_QUERIES.inc()
    return {"status": "ok", "query_hash": query_hash}


@shared_task(name="cache_advisor.tasks.analysis.sync_recommendations")
def sync_recommendations():
    inserted = get_container().lifecycle.sync()
    return {"status": "ok", "inserted": inserted}


@shared_task(name="cache_advisor.tasks.analysis.auto_apply_recommendations")
def auto_apply_recommendations():
    result = get_container().lifecycle.process_auto_apply()
    if result.get("status") == "success" and result.get("processed"):
        logger.info("auto-apply processed=%s total=%s dry_run=%s", result["processed"], result.get("total"), result.get("dry_run"))
    return result


@shared_task(name="cache_advisor.tasks.analysis.broadcast_stats")
def broadcast_stats():
    c = get_container()
    if not c.settings.broadcasting_enabled:
        return {"status": "skipped"}
    stats = c.aggregator.get_stats()
    # driver_stats can be large (largest_files, key patterns); dashboards only need the summary
    summary = {k: v for k, v in stats.items() if k != "driver_stats"}
    c.notifier.publish(STATS_TOPIC, stats_event(summary))
    return {"status": "ok"}


@shared_task(name="cache_advisor.tasks.analysis.cleanup_unused_keys")
def cleanup_unused_keys(days: int = 7, dry_run: bool = False):
    result = get_container().aggregator.cleanup_unused_keys(int(days), dry_run=bool(dry_run))
    return {"status": "ok", **result}
