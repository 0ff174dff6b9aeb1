from __future__ import annotations
from datetime import datetime
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from cache_advisor.container import Container, get_container
from cache_advisor.lifecycle import InvalidRequestError

router = APIRouter(prefix="/api", tags=["smart-cache"])


class RecommendationIds(BaseModel):
    ids: List[int] = Field(default_factory=list)


class CleanupRequest(BaseModel):
    days: int = 7
    dry_run: bool = False


def _ok(data):
    return {"success": True, "data": data}


@router.get("/stats")
def stats(c: Container = Depends(get_container)):
    return _ok(c.aggregator.get_stats())


@router.get("/recommendations")
def recommendations(c: Container = Depends(get_container)):
    return _ok(c.engine.get_recommendations())


@router.get("/recommendations/pending")
def pending_recommendations(c: Container = Depends(get_container)):
    return _ok([r.to_dict() for r in c.lifecycle.list_pending()])


@router.get("/queries")
def queries(limit: int = Query(20, ge=1, le=500), c: Container = Depends(get_container)):
    return _ok(c.aggregator.get_top_queries(limit))


@router.get("/unused-keys")
def unused_keys(days: int = Query(7, ge=0), c: Container = Depends(get_container)):
    return _ok(c.aggregator.get_unused_keys(days))


@router.post("/unused-keys/cleanup")
def cleanup_unused_keys(body: CleanupRequest, c: Container = Depends(get_container)):
    try:
        return _ok(c.aggregator.cleanup_unused_keys(body.days, dry_run=body.dry_run))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/stream")
def stream(c: Container = Depends(get_container)):
    return _ok({
        "stats": c.aggregator.get_stats(),
        "top_queries": c.aggregator.get_top_queries(5),
        "recommendations": c.engine.get_recommendations(),
        "timestamp": datetime.utcnow().isoformat(),
    })


@router.post("/recommendations/sync")
def sync(c: Container = Depends(get_container)):
    return _ok({"inserted": c.lifecycle.sync()})


@router.post("/recommendations/approve")
def approve(body: RecommendationIds, c: Container = Depends(get_container)):
    try:
        return _ok({"approved": c.lifecycle.approve(body.ids)})
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/recommendations/reject")
def reject(body: RecommendationIds, c: Container = Depends(get_container)):
    try:
        return _ok({"rejected": c.lifecycle.reject(body.ids)})
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/recommendations/auto-apply")
def auto_apply(c: Container = Depends(get_container)):
    return _ok(c.lifecycle.process_auto_apply())
