"""
Health check endpoint with database, sync run and queue status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, func, text
from api.dependencies import get_db
from core.clock import utcnow
from models.base import SyncJobStatus, SyncLogStatus
from models.sync_job import SyncJob
from models.sync_log import SyncLog
from schemas.api import HealthCheckResponse, SyncRunInfo
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])

RECENT_LOG_WINDOW = 50


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Latest run per sync type (a failed latest run degrades health)
    - Number of pending queue jobs
    """

    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    latest_runs = []
    failed_sync_types = 0
    pending_jobs = 0

    if db_connected:
        try:
            result = await db.execute(
                select(SyncLog.__table__)
                .order_by(SyncLog.started_at.desc())
                .limit(RECENT_LOG_WINDOW)
            )
            seen = set()
            for row in result:
                if row.sync_type in seen:
                    continue
                seen.add(row.sync_type)
                if row.status == SyncLogStatus.FAILED:
                    failed_sync_types += 1
                latest_runs.append(SyncRunInfo.from_row(row))

            pending = await db.execute(
                select(func.count(SyncJob.id)).where(SyncJob.status == SyncJobStatus.PENDING)
            )
            pending_jobs = pending.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch sync status: {str(e)}")

    # Overall status is derived by the HealthCheckResponse validator
    return HealthCheckResponse(
        timestamp=utcnow(),
        database_connected=db_connected,
        latest_runs=latest_runs,
        total_sync_types=len(latest_runs),
        failed_sync_types=failed_sync_types,
        pending_jobs=pending_jobs
    )
