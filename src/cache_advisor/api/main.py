from fastapi import FastAPI, Depends, Response
from prometheus_client import REGISTRY, generate_latest, CONTENT_TYPE_LATEST
from datetime import datetime
import logging
from cache_advisor.api.dashboard import router as dashboard_router
from sqlalchemy.exc import SQLAlchemyError
from cache_advisor.config import get_settings
from cache_advisor.container import Container, get_container, shutdown_container
from cache_advisor.infrastructure.db import healthcheck
from cache_advisor.metrics import render_metrics

settings = get_settings()

app = FastAPI(title="Cache Advisor")
app.include_router(dashboard_router, prefix="/" + settings.dashboard_path.strip("/"))


@app.on_event("startup")
def startup():
    settings = get_settings()
    logger = logging.getLogger("cache_advisor")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))


@app.on_event("shutdown")
def shutdown():
    shutdown_container()


@app.get("/health")
def health(c: Container = Depends(get_container)):
    enabled = bool(c.settings.enabled)
    try:
        db_ok = healthcheck(c.session_factory)
    except SQLAlchemyError as e:
        logging.getLogger(__name__).warning("database healthcheck failed: %s", e)
        db_ok = False
    return {
        "status": "healthy" if enabled else "disabled",
        "enabled": enabled,
        "db": db_ok,
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/metrics")
def metrics(c: Container = Depends(get_container)):
    snapshot = render_metrics(c.aggregator.get_stats(), c.lifecycle.count_pending())
    # process-lifetime operational counters (observation outcomes, probe errors, auto-apply)
    operational = generate_latest(REGISTRY).decode("utf-8")
    return Response(content=snapshot + operational, media_type=CONTENT_TYPE_LATEST)
