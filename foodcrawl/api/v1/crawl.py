from fastapi import APIRouter, Depends, HTTPException, Query

from foodcrawl.api.deps import get_dedup, get_state_store
from foodcrawl.services.crawler.deduplication import DeduplicationService
from foodcrawl.services.crawler.rotation import Source
from foodcrawl.services.crawler.state import CrawlState, CrawlStateStore, StatePersistenceError
from foodcrawl.services.store.base import StoreError

router = APIRouter()


def _state_payload(state: CrawlState) -> dict:
    return {
        "active_source": state.active_source.value,
        "source_cursor": state.source_cursor,
        "last_seen_external_id": state.last_seen_external_id,
        "last_seen_url": state.last_seen_url,
        "total_processed": state.total_processed,
        "last_run_at": state.last_run_at.isoformat() if state.last_run_at else None,
        "last_error": state.last_error,
        "last_error_at": state.last_error_at.isoformat() if state.last_error_at else None,
        "statistics": state.statistics,
    }


@router.post("/crawl", status_code=202)
async def start_crawl():
    """Queue one time-boxed crawl session; it resumes from the stored cursor."""
    from foodcrawl.workers.crawl_tasks import run_crawl_session_task

    task = run_crawl_session_task.delay()
    return {
        "task_id": task.id,
        "status": "queued",
        "message": "Crawl session queued",
    }


@router.get("/crawl/tasks/{task_id}")
async def get_crawl_task(task_id: str):
    from foodcrawl.workers.celery_app import celery

    result = celery.AsyncResult(task_id)
    return {
        "task_id": task_id,
        "status": result.status,
        "summary": result.result if result.successful() else None,
    }


@router.get("/crawl/state")
async def get_crawl_state(state_store: CrawlStateStore = Depends(get_state_store)):
    try:
        state = await state_store.load()
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e}")
    return _state_payload(state)


@router.post("/crawl/state/reset")
async def reset_crawl_state(
    request: dict,
    state_store: CrawlStateStore = Depends(get_state_store),
):
    """Rewind a source's page cursor.

    Body:
      - source: opff | fressnapf | zooplus
      - full: rewind every source (default false)
      - make_active: also make ``source`` the active one (default false)
    """
    try:
        source = Source(request.get("source"))
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid source. Must be one of: {[s.value for s in Source]}",
        )

    try:
        state = await state_store.reset_source(
            source,
            full=bool(request.get("full", False)),
            make_active=bool(request.get("make_active", False)),
        )
    except (StoreError, StatePersistenceError) as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e}")
    return _state_payload(state)


@router.get("/crawl/history")
async def get_crawl_history(
    limit: int = Query(10, ge=1, le=100),
    state_store: CrawlStateStore = Depends(get_state_store),
):
    try:
        sessions = await state_store.get_crawl_history(limit)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e}")
    return {
        "sessions": [
            {
                **s,
                "first_product": s["first_product"].isoformat() if s["first_product"] else None,
                "last_product": s["last_product"].isoformat() if s["last_product"] else None,
            }
            for s in sessions
        ]
    }


@router.get("/submissions/similar")
async def find_similar_submissions(
    name: str = Query(..., min_length=1),
    brand: str | None = Query(None),
    dedup: DeduplicationService = Depends(get_dedup),
):
    """Advisory near-duplicate lookup for moderators (bigram Dice >= threshold)."""
    try:
        matches = await dedup.find_similar_products(name, brand)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e}")
    return {
        "matches": [
            {
                "id": m.get("id"),
                "external_id": m.get("external_id"),
                "brand": m.get("brand"),
                "name": m.get("name"),
                "status": m.get("status"),
            }
            for m in matches
        ]
    }
