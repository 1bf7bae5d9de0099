"""
Persistent sync job queue backed by the sync_queue table.

Jobs are claimed by a single consumer (see pipeline.worker), dispatched to
the matching sync manager and either completed or failed. A failed job
with retries left is put back to pending with an exponential delay of
2^retry_count minutes.
"""

from typing import Any, Dict, Optional, Union
from datetime import datetime, timedelta
from pydantic import ValidationError
from sqlalchemy import select, update, delete, insert, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, system_clock
from core.exceptions import (
    ConfigurationError,
    InvalidJobOptionsError,
    JobNotFoundError,
    UnknownJobTypeError,
    is_retryable,
)
from models.base import SyncJobStatus, SyncJobType
from models.sync_job import SyncJob
from pipeline.court_sync import CourtSyncManager
from pipeline.decision_sync import DecisionSyncManager
from pipeline.extractors.courtlistener import UpstreamClient
from pipeline.judge_sync import JudgeSyncManager
from schemas.sync import (
    CleanupResult,
    CourtSyncOptions,
    DecisionSyncOptions,
    FullSyncOptions,
    FullSyncResult,
    JudgeSyncOptions,
    SyncResult,
)
import logging
import uuid

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETENTION_DAYS = 7
# cancelled jobs are never removed by cleanup
CLEANUP_STATUSES = (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED)


def coerce_job_type(value: Union[SyncJobType, str]) -> SyncJobType:
    if isinstance(value, SyncJobType):
        return value
    try:
        return SyncJobType(value)
    except ValueError as e:
        raise UnknownJobTypeError(
            f"Unknown sync job type: {value}",
            context={"job_type": value},
            original_exception=e
        )


class SyncQueueManager:
    """
    Queue operations plus job dispatch.

    The client is only needed to process jobs; enqueueing, stats and
    housekeeping work without one.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: Optional[UpstreamClient] = None,
        clock: Optional[Clock] = None
    ):
        self.db = db_session
        self.client = client
        self.clock = clock or system_clock

    # ------------------------------------------------------------------
    # Enqueue / claim
    # ------------------------------------------------------------------

    async def add_job(
        self,
        job_type: Union[SyncJobType, str],
        options: Optional[Dict[str, Any]] = None,
        priority: int = 0,
        scheduled_for: Optional[datetime] = None,
        max_retries: int = DEFAULT_MAX_RETRIES
    ) -> str:
        job_type = coerce_job_type(job_type)
        job_id = str(uuid.uuid4())
        now = self.clock.now()
        await self.db.execute(
            insert(SyncJob).values(
                id=job_id,
                type=job_type,
                status=SyncJobStatus.PENDING,
                options=options or {},
                priority=priority,
                scheduled_for=scheduled_for or now,
                retry_count=0,
                max_retries=max_retries,
                created_at=now,
                updated_at=now,
            )
        )
        await self.db.commit()

        logger.info(f"Queued {job_type.value} job {job_id} (priority={priority})")
        return job_id

    async def get_next_job(self) -> Optional[Dict[str, Any]]:
        """Highest priority due job, then earliest scheduled, then oldest."""
        result = await self.db.execute(
            select(
                SyncJob.id,
                SyncJob.type,
                SyncJob.options,
                SyncJob.priority,
                SyncJob.retry_count,
                SyncJob.max_retries,
            )
            .where(
                SyncJob.status == SyncJobStatus.PENDING,
                SyncJob.scheduled_for <= self.clock.now()
            )
            .order_by(
                SyncJob.priority.desc(),
                SyncJob.scheduled_for.asc(),
                SyncJob.created_at.asc()
            )
            .limit(1)
        )
        row = result.first()
        return dict(row._mapping) if row else None

    async def get_job(self, job_id: str) -> Dict[str, Any]:
        result = await self.db.execute(
            select(SyncJob.__table__).where(SyncJob.id == job_id)
        )
        row = result.first()
        if row is None:
            raise JobNotFoundError(f"Sync job {job_id} not found", context={"job_id": job_id})
        return dict(row._mapping)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def start_job(self, job_id: str) -> bool:
        """Mark a pending job running. False when it is no longer pending."""
        now = self.clock.now()
        result = await self.db.execute(
            update(SyncJob)
            .where(SyncJob.id == job_id, SyncJob.status == SyncJobStatus.PENDING)
            .values(status=SyncJobStatus.RUNNING, started_at=now, updated_at=now)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def complete_job(self, job_id: str, result: SyncResult):
        now = self.clock.now()
        await self.db.execute(
            update(SyncJob)
            .where(SyncJob.id == job_id)
            .values(
                status=SyncJobStatus.COMPLETED,
                completed_at=now,
                result=result.model_dump(mode="json"),
                error_message=None,
                updated_at=now,
            )
        )
        await self.db.commit()
        logger.info(f"Sync job {job_id} completed")

    async def fail_job(
        self,
        job_id: str,
        error: str,
        should_retry: bool = True,
        result: Optional[SyncResult] = None
    ) -> bool:
        """
        Reschedule the job if retries remain, otherwise mark it failed.

        Returns True when the job was rescheduled.
        """
        job = await self.db.execute(
            select(SyncJob.retry_count, SyncJob.max_retries).where(SyncJob.id == job_id)
        )
        row = job.first()
        if row is None:
            raise JobNotFoundError(f"Sync job {job_id} not found", context={"job_id": job_id})

        now = self.clock.now()
        values: Dict[str, Any] = {
            "error_message": error,
            "updated_at": now,
        }
        if result is not None:
            values["result"] = result.model_dump(mode="json")

        if should_retry and row.retry_count < row.max_retries:
            delay = timedelta(minutes=2 ** row.retry_count)
            values.update(
                status=SyncJobStatus.PENDING,
                scheduled_for=now + delay,
                retry_count=row.retry_count + 1,
                started_at=None,
            )
            rescheduled = True
            logger.warning(
                f"Sync job {job_id} failed (attempt {row.retry_count + 1}/{row.max_retries + 1}), "
                f"retrying in {delay}: {error}"
            )
        else:
            values.update(status=SyncJobStatus.FAILED, completed_at=now)
            rescheduled = False
            logger.error(f"Sync job {job_id} failed permanently: {error}")

        await self.db.execute(update(SyncJob).where(SyncJob.id == job_id).values(**values))
        await self.db.commit()
        return rescheduled

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_job(self, job: Dict[str, Any]) -> Optional[SyncResult]:
        """
        Run a claimed job to completion.

        An exception or an aborted run fails the job; non-retryable causes
        are not rescheduled. Returns the run result, or None when the job
        raised or was no longer pending.
        """
        job_id = job["id"]
        if not await self.start_job(job_id):
            logger.warning(f"Sync job {job_id} is no longer pending, skipping")
            return None

        job_type = job["type"]
        logger.info(f"Processing sync job {job_id} ({getattr(job_type, 'value', job_type)})")

        try:
            result = await self.dispatch(job_type, job.get("options") or {})
        except Exception as e:
            logger.exception(f"Sync job {job_id} raised")
            await self._rollback_quietly()
            await self.fail_job(job_id, str(e), should_retry=is_retryable(e))
            return None

        if result.aborted:
            error = "; ".join(result.errors) or "Sync aborted"
            await self.fail_job(job_id, error, should_retry=result.retryable, result=result)
        else:
            await self.complete_job(job_id, result)
        return result

    async def dispatch(self, job_type: Union[SyncJobType, str], options: Dict[str, Any]) -> SyncResult:
        job_type = coerce_job_type(job_type)

        if job_type == SyncJobType.CLEANUP:
            retention = options.get("older_than_days", DEFAULT_RETENTION_DAYS)
            removed = await self.cleanup_old_jobs(retention)
            return CleanupResult(jobs_removed=removed)

        if self.client is None:
            raise ConfigurationError(
                "Processing sync jobs requires an upstream client",
                context={"job_type": job_type.value}
            )

        if job_type == SyncJobType.COURT:
            return await CourtSyncManager(self.db, self.client, self.clock).sync_courts(
                _parse_options(CourtSyncOptions, options)
            )
        if job_type == SyncJobType.JUDGE:
            return await JudgeSyncManager(self.db, self.client, self.clock).sync_judges(
                _parse_options(JudgeSyncOptions, options)
            )
        if job_type == SyncJobType.DECISION:
            return await DecisionSyncManager(self.db, self.client, self.clock).sync_decisions(
                _parse_options(DecisionSyncOptions, options)
            )
        if job_type == SyncJobType.FULL:
            return await self.run_full_sync(_parse_options(FullSyncOptions, options))

        raise UnknownJobTypeError(
            f"No handler for sync job type: {job_type.value}",
            context={"job_type": job_type.value}
        )

    async def run_full_sync(self, options: Optional[FullSyncOptions] = None) -> FullSyncResult:
        """Court, then judge, then decision sync. Succeeds only if all three do."""
        options = options or FullSyncOptions()
        started = self.clock.now()

        court = await CourtSyncManager(self.db, self.client, self.clock).sync_courts(options.court)
        judge = await JudgeSyncManager(self.db, self.client, self.clock).sync_judges(options.judge)
        decision = await DecisionSyncManager(self.db, self.client, self.clock).sync_decisions(options.decision)

        stages = (court, judge, decision)
        aborted = [stage for stage in stages if stage.aborted]
        errors = [error for stage in stages for error in stage.errors]

        return FullSyncResult(
            success=all(stage.success for stage in stages),
            errors=errors,
            duration_ms=int((self.clock.now() - started).total_seconds() * 1000),
            aborted=bool(aborted),
            retryable=any(stage.retryable for stage in aborted),
            court=court,
            judge=judge,
            decision=decision,
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def get_stats(self) -> Dict[str, Any]:
        by_status = {status.value: 0 for status in SyncJobStatus}
        rows = await self.db.execute(
            select(SyncJob.status, func.count(SyncJob.id)).group_by(SyncJob.status)
        )
        for status, count in rows:
            by_status[status.value] = count

        pending_by_type = {job_type.value: 0 for job_type in SyncJobType}
        rows = await self.db.execute(
            select(SyncJob.type, func.count(SyncJob.id))
            .where(SyncJob.status == SyncJobStatus.PENDING)
            .group_by(SyncJob.type)
        )
        for job_type, count in rows:
            pending_by_type[job_type.value] = count

        next_due = await self.db.execute(
            select(func.min(SyncJob.scheduled_for)).where(SyncJob.status == SyncJobStatus.PENDING)
        )

        return {
            **by_status,
            "total": sum(by_status.values()),
            "pending_by_type": pending_by_type,
            "next_scheduled_for": next_due.scalar_one_or_none(),
        }

    async def cleanup_old_jobs(self, older_than_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete completed and failed jobs that finished more than `older_than_days` ago."""
        cutoff = self.clock.now() - timedelta(days=older_than_days)
        result = await self.db.execute(
            delete(SyncJob).where(
                SyncJob.status.in_(CLEANUP_STATUSES),
                SyncJob.completed_at < cutoff
            )
        )
        await self.db.commit()
        removed = result.rowcount or 0
        logger.info(f"Removed {removed} finished sync jobs older than {older_than_days} days")
        return removed

    async def cancel_jobs(self, job_type: Optional[Union[SyncJobType, str]] = None) -> int:
        """Cancel pending jobs, optionally of one type. Running jobs are not touched."""
        query = update(SyncJob).where(SyncJob.status == SyncJobStatus.PENDING)
        if job_type is not None:
            query = query.where(SyncJob.type == coerce_job_type(job_type))

        now = self.clock.now()
        result = await self.db.execute(
            query.values(status=SyncJobStatus.CANCELLED, completed_at=now, updated_at=now)
        )
        await self.db.commit()
        cancelled = result.rowcount or 0
        logger.info(f"Cancelled {cancelled} pending sync jobs")
        return cancelled

    async def _rollback_quietly(self):
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed: {e}")


def _parse_options(model, options: Dict[str, Any]):
    try:
        return model.model_validate(options)
    except ValidationError as e:
        raise InvalidJobOptionsError(
            f"Invalid options for {model.__name__}: {e}",
            context={"options": options},
            original_exception=e
        )
