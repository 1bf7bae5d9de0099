"""
Sync trigger, queue and status endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_upstream_client
from core.exceptions import UnknownJobTypeError
from models.base import SyncJobType
from models.sync_log import SyncLog
from pipeline.court_sync import CourtSyncManager
from pipeline.decision_sync import DecisionSyncManager
from pipeline.extractors.courtlistener import UpstreamClient
from pipeline.judge_sync import JudgeSyncManager
from pipeline.queue_manager import SyncQueueManager
from schemas.api import (
    EnqueueJobRequest,
    EnqueueJobResponse,
    QueueStatsResponse,
    SyncRunInfo,
    SyncRunResponse,
    SyncStatusResponse,
)
from schemas.sync import CourtSyncOptions, DecisionSyncOptions, JudgeSyncOptions, SyncResult
import time
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["Sync"])

PARTIAL_SUCCESS = status.HTTP_207_MULTI_STATUS


def _run_response(sync_type: str, result: SyncResult, started: float, response: Response) -> SyncRunResponse:
    # 207 when the run finished with per-entity errors
    if not result.success:
        response.status_code = PARTIAL_SUCCESS
    return SyncRunResponse(
        success=result.success,
        sync_type=sync_type,
        data=result.model_dump(mode="json", exclude={"success", "errors"}),
        errors=result.errors,
        api_duration_ms=int((time.perf_counter() - started) * 1000)
    )


@router.post("/courts", response_model=SyncRunResponse)
async def sync_courts(
    response: Response,
    options: Optional[CourtSyncOptions] = None,
    db: AsyncSession = Depends(get_db),
    client: UpstreamClient = Depends(get_upstream_client)
):
    """Run a court directory sync now"""
    started = time.perf_counter()
    logger.info(f"POST /sync/courts {options.model_dump() if options else {}}")
    result = await CourtSyncManager(db, client).sync_courts(options)
    return _run_response("court", result, started, response)


@router.post("/judges", response_model=SyncRunResponse)
async def sync_judges(
    response: Response,
    options: Optional[JudgeSyncOptions] = None,
    db: AsyncSession = Depends(get_db),
    client: UpstreamClient = Depends(get_upstream_client)
):
    """Run a judge profile refresh now"""
    started = time.perf_counter()
    result = await JudgeSyncManager(db, client).sync_judges(options)
    return _run_response("judge", result, started, response)


@router.post("/decisions", response_model=SyncRunResponse)
async def sync_decisions(
    response: Response,
    options: Optional[DecisionSyncOptions] = None,
    db: AsyncSession = Depends(get_db),
    client: UpstreamClient = Depends(get_upstream_client)
):
    """
    Run a decision sync now.

    Long-running: prefer POST /sync/queue for anything beyond a few judges.
    """
    started = time.perf_counter()
    logger.info(f"POST /sync/decisions {options.model_dump() if options else {}}")
    result = await DecisionSyncManager(db, client).sync_decisions(options)
    return _run_response("decision", result, started, response)


@router.post("/queue", response_model=EnqueueJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_job(request: EnqueueJobRequest, db: AsyncSession = Depends(get_db)):
    """Queue a sync job for the worker"""
    queue = SyncQueueManager(db)
    job_id = await queue.add_job(
        request.type,
        request.options,
        priority=request.priority,
        scheduled_for=request.scheduled_for,
        max_retries=request.max_retries
    )
    return EnqueueJobResponse(job_id=job_id, type=request.type, priority=request.priority)


@router.delete("/queue")
async def cancel_jobs(
    type: Optional[str] = Query(None, description="Only cancel pending jobs of this type"),
    db: AsyncSession = Depends(get_db)
):
    """Cancel pending jobs; running jobs are left alone"""
    try:
        cancelled = await SyncQueueManager(db).cancel_jobs(type)
    except UnknownJobTypeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return {"cancelled": cancelled}


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def queue_stats(db: AsyncSession = Depends(get_db)):
    stats = await SyncQueueManager(db).get_stats()
    return QueueStatsResponse(**stats)


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to return"),
    sync_type: Optional[SyncJobType] = Query(None, description="Filter runs by sync type"),
    db: AsyncSession = Depends(get_db)
):
    """Recent sync runs plus queue counts"""
    query = select(SyncLog.__table__).order_by(SyncLog.started_at.desc()).limit(limit)
    if sync_type is not None:
        query = query.where(SyncLog.sync_type == sync_type.value)

    rows = await db.execute(query)
    stats = await SyncQueueManager(db).get_stats()

    return SyncStatusResponse(
        recent_runs=[SyncRunInfo.from_row(row) for row in rows],
        queue=QueueStatsResponse(**stats)
    )
