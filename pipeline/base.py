"""
Base class for sync managers with run bracketing.

Every run writes a sync_logs row when it starts and updates it when it
completes or fails. Those writes are best effort: a failure to log is
itself logged and never changes the outcome of the run.
"""

from typing import Optional
from pydantic import BaseModel
from sqlalchemy import insert, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, system_clock
from models.base import SyncLogStatus
from models.sync_log import SyncLog
from pipeline.extractors.courtlistener import UpstreamClient
from schemas.sync import SyncResult
import logging
import uuid

logger = logging.getLogger(__name__)


class SyncManager:
    """
    Shared plumbing for the court, judge and decision sync managers.

    Responsibilities:
    - Run id generation
    - sync_logs bracketing (start, completion, error)
    - Elapsed time measured on the injected clock
    """

    sync_type = "base"

    def __init__(
        self,
        db_session: AsyncSession,
        client: UpstreamClient,
        clock: Optional[Clock] = None
    ):
        self.db = db_session
        self.client = client
        self.clock = clock or system_clock
        self.run_id: Optional[str] = None
        self._started_at = None

    def _begin_run(self) -> str:
        self.run_id = f"{self.sync_type}-sync-{uuid.uuid4().hex[:12]}"
        self._started_at = self.clock.now()
        return self.run_id

    def elapsed_ms(self) -> int:
        if self._started_at is None:
            return 0
        return int((self.clock.now() - self._started_at).total_seconds() * 1000)

    async def log_sync_start(self, options: BaseModel):
        try:
            await self.db.execute(
                insert(SyncLog).values(
                    run_id=self.run_id,
                    sync_type=self.sync_type,
                    status=SyncLogStatus.STARTED,
                    options=options.model_dump(mode="json"),
                    started_at=self._started_at,
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback_quietly()
            logger.error(f"Failed to log sync start for {self.run_id}: {e}")

    async def log_sync_completion(self, result: SyncResult):
        status = SyncLogStatus.COMPLETED if result.success else SyncLogStatus.FAILED
        await self._finish_log(status, result, error_message=None)

    async def log_sync_error(self, error: BaseException, result: Optional[SyncResult] = None):
        await self._finish_log(SyncLogStatus.FAILED, result, error_message=str(error))

    async def _finish_log(
        self,
        status: SyncLogStatus,
        result: Optional[SyncResult],
        error_message: Optional[str]
    ):
        try:
            await self.db.execute(
                update(SyncLog)
                .where(SyncLog.run_id == self.run_id)
                .values(
                    status=status,
                    result=result.model_dump(mode="json") if result else None,
                    error_message=error_message,
                    completed_at=self.clock.now(),
                    duration_ms=self.elapsed_ms(),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback_quietly()
            logger.error(f"Failed to log sync {status.value} for {self.run_id}: {e}")

    async def _rollback_quietly(self):
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed for {self.run_id}: {e}")
