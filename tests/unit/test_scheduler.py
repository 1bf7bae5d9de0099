import asyncio
import pytest
from unittest.mock import MagicMock
from sqlalchemy import select

from models.base import SyncJobType
from models.sync_job import SyncJob
from pipeline.scheduler import SyncScheduler


async def queued_jobs(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(SyncJob.type, SyncJob.priority, SyncJob.options).order_by(SyncJob.priority.desc())
        )
        return [tuple(row) for row in result]


@pytest.mark.asyncio
async def test_daily_jobs(session_factory, clock):
    scheduler = SyncScheduler(session_factory, clock)

    job_ids = await scheduler.enqueue_daily_jobs()

    assert len(job_ids) == 2
    assert await queued_jobs(session_factory) == [
        (SyncJobType.DECISION, 100, {"days_since_last": 1, "max_decisions_per_judge": 20}),
        (SyncJobType.JUDGE, 50, {}),
    ]


@pytest.mark.asyncio
async def test_weekly_jobs(session_factory, clock):
    scheduler = SyncScheduler(session_factory, clock)

    job_ids = await scheduler.enqueue_weekly_jobs()

    assert len(job_ids) == 3
    jobs = await queued_jobs(session_factory)
    assert [(job_type, priority) for job_type, priority, _ in jobs] == [
        (SyncJobType.COURT, 200),
        (SyncJobType.JUDGE, 150),
        (SyncJobType.DECISION, 100),
    ]
    assert jobs[0][2] == {"force_refresh": True}


@pytest.mark.asyncio
async def test_cleanup_job(session_factory, clock):
    scheduler = SyncScheduler(session_factory, clock)

    await scheduler.enqueue_cleanup()

    assert await queued_jobs(session_factory) == [(SyncJobType.CLEANUP, 10, {"older_than_days": 7})]


@pytest.mark.asyncio
async def test_enqueue_failure_is_logged_not_raised(clock):
    broken_factory = MagicMock(side_effect=RuntimeError("no database"))
    scheduler = SyncScheduler(broken_factory, clock)

    assert await scheduler.enqueue_daily_jobs() == []
    assert await scheduler.enqueue_weekly_jobs() == []
    assert await scheduler.enqueue_cleanup() == []


@pytest.mark.asyncio
async def test_start_registers_recurring_jobs(session_factory, clock):
    scheduler = SyncScheduler(session_factory, clock)

    scheduler.start()
    try:
        assert scheduler.scheduler.running
        assert {job.id for job in scheduler.scheduler.get_jobs()} == {
            "daily_sync", "weekly_sync", "queue_cleanup"
        }
        weekly = scheduler.scheduler.get_job("weekly_sync")
        assert "day_of_week='sun'" in str(weekly.trigger)
    finally:
        scheduler.stop()

    # AsyncIOScheduler applies shutdown on the next loop iteration
    await asyncio.sleep(0)
    assert not scheduler.scheduler.running


def test_stop_before_start_is_harmless():
    SyncScheduler().stop()
