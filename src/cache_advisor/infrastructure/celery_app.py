from celery import Celery
from celery import signals
import logging
import time
from prometheus_client import Counter, Histogram
from cache_advisor.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

celery_app = Celery(
    "cache_advisor",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "cache_advisor.tasks.analysis",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    # bounded handoff from the query hot path
    broker_connection_timeout=settings.dispatch_timeout_seconds,
    task_acks_late=True,
)

TASK_SUCCESS = Counter('celery_task_success_total', 'Celery task successes', ['task'])
TASK_FAILURE = Counter('celery_task_failure_total', 'Celery task failures', ['task'])
TASK_DURATION = Histogram('celery_task_duration_seconds', 'Celery task runtime', ['task'], buckets=(0.01,0.05,0.1,0.25,0.5,1,2,5,10,30))

_task_start_times = {}


@signals.task_prerun.connect
def _task_prerun(sender=None, task_id=None, **kwargs):  # noqa
    _task_start_times[task_id] = time.time()


@signals.task_postrun.connect
def _task_postrun(sender=None, task_id=None, state=None, **kwargs):  # noqa
    name = sender.name if sender else 'unknown'
    start = _task_start_times.pop(task_id, None)
    if start is not None:
        TASK_DURATION.labels(task=name).observe(time.time() - start)
    if state == 'SUCCESS':
        TASK_SUCCESS.labels(task=name).inc()
    elif state is not None:
        TASK_FAILURE.labels(task=name).inc()
        logger.warning("task %s finished in state %s", name, state)


@signals.worker_shutdown.connect
def _worker_shutdown(sender=None, **kwargs):  # noqa
    # flush statements the worker process still holds in a buffered monitor
    from cache_advisor.container import shutdown_container

    shutdown_container()


def build_beat_schedule(s) -> dict:
    schedule = {}
    if s.analyze_interval > 0:
        schedule["sync-recommendations"] = {
            "task": "cache_advisor.tasks.analysis.sync_recommendations",
            "schedule": float(s.analyze_interval),
        }
        # returns a disabled status unless auto-apply is switched on
        schedule["auto-apply-recommendations"] = {
            "task": "cache_advisor.tasks.analysis.auto_apply_recommendations",
            "schedule": float(s.analyze_interval),
        }
    if s.broadcasting_enabled and s.stats_update_interval > 0:
        schedule["broadcast-stats"] = {
            "task": "cache_advisor.tasks.analysis.broadcast_stats",
            "schedule": float(s.stats_update_interval),
            "options": {"expires": max(1, s.stats_update_interval - 1)},
        }
    return schedule


# Periodic tasks (beat). Requires worker with -B or separate beat service.
celery_app.conf.beat_schedule = build_beat_schedule(settings)
