import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession
from core.clock import Clock, system_clock
from core.config import settings
from core.database import async_session_maker
from models.base import SyncJobType
from pipeline.queue_manager import SyncQueueManager

logger = logging.getLogger(__name__)

# (type, options, priority)
DAILY_JOBS: List[Tuple[SyncJobType, Dict[str, Any], int]] = [
    (SyncJobType.DECISION, {"days_since_last": 1, "max_decisions_per_judge": 20}, 100),
    (SyncJobType.JUDGE, {}, 50),
]

WEEKLY_JOBS: List[Tuple[SyncJobType, Dict[str, Any], int]] = [
    (SyncJobType.COURT, {"force_refresh": True}, 200),
    (SyncJobType.JUDGE, {"force_refresh": True}, 150),
    (SyncJobType.DECISION, {"days_since_last": 30}, 100),
]

CLEANUP_PRIORITY = 10


class SyncScheduler:
    """Enqueues recurring sync jobs; the QueueWorker does the actual work."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        clock: Optional[Clock] = None
    ):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.session_factory = session_factory or async_session_maker
        self.clock = clock or system_clock

    async def enqueue(self, jobs: List[Tuple[SyncJobType, Dict[str, Any], int]]) -> List[str]:
        async with self.session_factory() as session:
            queue = SyncQueueManager(session, clock=self.clock)
            job_ids = []
            for job_type, options, priority in jobs:
                job_ids.append(await queue.add_job(
                    job_type,
                    dict(options),
                    priority=priority,
                    max_retries=settings.SYNC_JOB_MAX_RETRIES
                ))
        return job_ids

    async def enqueue_daily_jobs(self) -> List[str]:
        logger.info("Scheduler: queueing daily sync jobs")
        try:
            return await self.enqueue(DAILY_JOBS)
        except Exception as e:
            logger.error(f"Scheduler: failed to queue daily jobs - {e}")
            return []

    async def enqueue_weekly_jobs(self) -> List[str]:
        logger.info("Scheduler: queueing weekly sync jobs")
        try:
            return await self.enqueue(WEEKLY_JOBS)
        except Exception as e:
            logger.error(f"Scheduler: failed to queue weekly jobs - {e}")
            return []

    async def enqueue_cleanup(self) -> List[str]:
        try:
            return await self.enqueue([(
                SyncJobType.CLEANUP,
                {"older_than_days": settings.SYNC_JOB_RETENTION_DAYS},
                CLEANUP_PRIORITY,
            )])
        except Exception as e:
            logger.error(f"Scheduler: failed to queue cleanup job - {e}")
            return []

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.enqueue_daily_jobs,
            trigger=CronTrigger(hour=2, minute=0),
            id="daily_sync",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.enqueue_weekly_jobs,
            trigger=CronTrigger(day_of_week="sun", hour=3, minute=0),
            id="weekly_sync",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.enqueue_cleanup,
            trigger=CronTrigger(hour=4, minute=30),
            id="queue_cleanup",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Sync scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")
