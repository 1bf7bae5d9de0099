"""
Sync queue: ordering, retries, dispatch and housekeeping
"""

import pytest
from datetime import timedelta

from core.exceptions import AuthenticationError, JobNotFoundError, NetworkError, UnknownJobTypeError
from models.base import SyncJobStatus, SyncJobType
from pipeline.queue_manager import SyncQueueManager, coerce_job_type
from schemas.courtlistener import CourtPage, CourtRecord
from schemas.sync import CleanupResult, CourtSyncResult, FullSyncOptions

NO_PAUSE = {"page_pause_seconds": 0, "batch_pause_seconds": 0}


@pytest.fixture
def queue(db_session, fake_client, clock):
    return SyncQueueManager(db_session, fake_client, clock)


def test_coerce_job_type():
    assert coerce_job_type("decision") is SyncJobType.DECISION
    assert coerce_job_type(SyncJobType.FULL) is SyncJobType.FULL
    with pytest.raises(UnknownJobTypeError):
        coerce_job_type("reindex")


@pytest.mark.asyncio
async def test_added_job_is_pending_with_defaults(queue, clock):
    job_id = await queue.add_job("court", {"force_refresh": True}, priority=5)

    job = await queue.get_job(job_id)
    assert job["type"] == SyncJobType.COURT
    assert job["status"] == SyncJobStatus.PENDING
    assert job["options"] == {"force_refresh": True}
    assert job["priority"] == 5
    assert job["scheduled_for"] == clock.now()
    assert job["retry_count"] == 0
    assert job["max_retries"] == 3


@pytest.mark.asyncio
async def test_unknown_job_type_is_rejected(queue):
    with pytest.raises(UnknownJobTypeError):
        await queue.add_job("reindex")


@pytest.mark.asyncio
async def test_missing_job_raises(queue):
    with pytest.raises(JobNotFoundError):
        await queue.get_job("does-not-exist")


@pytest.mark.asyncio
async def test_next_job_order(queue, clock):
    low = await queue.add_job("judge", priority=10)
    later = await queue.add_job("decision", priority=100, scheduled_for=clock.now() - timedelta(minutes=1))
    earliest = await queue.add_job("court", priority=100, scheduled_for=clock.now() - timedelta(minutes=5))
    await queue.add_job("full", priority=500, scheduled_for=clock.now() + timedelta(hours=1))

    claimed = []
    while True:
        job = await queue.get_next_job()
        if job is None:
            break
        claimed.append(job["id"])
        assert await queue.start_job(job["id"]) is True

    assert claimed == [earliest, later, low]


@pytest.mark.asyncio
async def test_start_job_only_claims_pending(queue):
    job_id = await queue.add_job("court")

    assert await queue.start_job(job_id) is True
    assert await queue.start_job(job_id) is False


@pytest.mark.asyncio
async def test_failed_job_is_rescheduled_with_backoff(queue, clock):
    job_id = await queue.add_job("court")
    await queue.start_job(job_id)

    rescheduled = await queue.fail_job(job_id, "timeout")

    job = await queue.get_job(job_id)
    assert rescheduled is True
    assert job["status"] == SyncJobStatus.PENDING
    assert job["retry_count"] == 1
    assert job["scheduled_for"] == clock.now() + timedelta(minutes=1)
    assert job["started_at"] is None
    assert job["error_message"] == "timeout"

    assert await queue.get_next_job() is None
    clock.advance(minutes=1)
    assert (await queue.get_next_job())["id"] == job_id


@pytest.mark.asyncio
async def test_backoff_doubles_then_gives_up(queue, clock):
    job_id = await queue.add_job("court", max_retries=3)
    delays = []

    for _ in range(3):
        await queue.start_job(job_id)
        before = clock.now()
        assert await queue.fail_job(job_id, "boom") is True
        job = await queue.get_job(job_id)
        delays.append(job["scheduled_for"] - before)
        clock.current = job["scheduled_for"]

    await queue.start_job(job_id)
    assert await queue.fail_job(job_id, "boom") is False

    job = await queue.get_job(job_id)
    assert delays == [timedelta(minutes=1), timedelta(minutes=2), timedelta(minutes=4)]
    assert job["status"] == SyncJobStatus.FAILED
    assert job["retry_count"] == 3
    assert job["completed_at"] == clock.now()


@pytest.mark.asyncio
async def test_non_retryable_failure_is_final(queue):
    job_id = await queue.add_job("court")
    await queue.start_job(job_id)

    assert await queue.fail_job(job_id, "bad token", should_retry=False) is False
    assert (await queue.get_job(job_id))["status"] == SyncJobStatus.FAILED


@pytest.mark.asyncio
async def test_process_job_completes_successful_run(queue, fake_client):
    fake_client.court_pages = [CourtPage(results=[CourtRecord(id="cal", name="Supreme Court of California")])]
    job_id = await queue.add_job("court", NO_PAUSE)

    result = await queue.process_job(await queue.get_next_job())

    assert isinstance(result, CourtSyncResult)
    assert result.courts_created == 1
    stats = await queue.get_stats()
    assert stats["completed"] == 1

    job = await queue.get_job(job_id)
    assert job["result"]["courts_created"] == 1
    assert job["completed_at"] is not None


@pytest.mark.asyncio
async def test_aborted_retryable_run_is_rescheduled(queue, fake_client, clock):
    fake_client.failures["courts"] = NetworkError("connection reset")
    job_id = await queue.add_job("court", NO_PAUSE)

    result = await queue.process_job(await queue.get_next_job())

    job = await queue.get_job(job_id)
    assert result.aborted is True
    assert job["status"] == SyncJobStatus.PENDING
    assert job["retry_count"] == 1
    assert job["scheduled_for"] == clock.now() + timedelta(minutes=1)
    assert "connection reset" in job["error_message"]
    assert job["result"]["aborted"] is True


@pytest.mark.asyncio
async def test_aborted_non_retryable_run_fails(queue, fake_client):
    fake_client.failures["courts"] = AuthenticationError("invalid token")
    job_id = await queue.add_job("court", NO_PAUSE)

    await queue.process_job(await queue.get_next_job())

    job = await queue.get_job(job_id)
    assert job["status"] == SyncJobStatus.FAILED
    assert job["retry_count"] == 0


@pytest.mark.asyncio
async def test_invalid_options_fail_without_retry(queue):
    job_id = await queue.add_job("decision", {"batch_size": "lots"})

    result = await queue.process_job(await queue.get_next_job())

    job = await queue.get_job(job_id)
    assert result is None
    assert job["status"] == SyncJobStatus.FAILED
    assert "InvalidJobOptionsError" in job["error_message"]


@pytest.mark.asyncio
async def test_processing_without_client_fails_job(db_session, clock):
    queue = SyncQueueManager(db_session, clock=clock)
    job_id = await queue.add_job("judge")

    await queue.process_job(await queue.get_next_job())

    job = await queue.get_job(job_id)
    assert job["status"] == SyncJobStatus.FAILED
    assert "ConfigurationError" in job["error_message"]


@pytest.mark.asyncio
async def test_cleanup_job_removes_old_finished_jobs(queue, clock):
    done = await queue.add_job("court")
    await queue.start_job(done)
    await queue.complete_job(done, CourtSyncResult())
    pending = await queue.add_job("judge", scheduled_for=clock.now() + timedelta(days=30))

    clock.advance(days=8)
    await queue.add_job("cleanup", {"older_than_days": 7}, priority=10)
    result = await queue.process_job(await queue.get_next_job())

    assert isinstance(result, CleanupResult)
    assert result.jobs_removed == 1
    with pytest.raises(JobNotFoundError):
        await queue.get_job(done)
    assert (await queue.get_job(pending))["status"] == SyncJobStatus.PENDING


@pytest.mark.asyncio
async def test_recent_finished_jobs_are_kept(queue, clock):
    done = await queue.add_job("court")
    await queue.start_job(done)
    await queue.complete_job(done, CourtSyncResult())

    clock.advance(days=3)
    assert await queue.cleanup_old_jobs(7) == 0


@pytest.mark.asyncio
async def test_cancel_jobs_by_type(queue):
    court = await queue.add_job("court")
    decision = await queue.add_job("decision")
    running = await queue.add_job("decision")
    await queue.start_job(running)

    assert await queue.cancel_jobs("decision") == 1
    assert (await queue.get_job(decision))["status"] == SyncJobStatus.CANCELLED
    assert (await queue.get_job(running))["status"] == SyncJobStatus.RUNNING
    assert (await queue.get_job(court))["status"] == SyncJobStatus.PENDING

    assert await queue.cancel_jobs() == 1
    assert (await queue.get_job(court))["status"] == SyncJobStatus.CANCELLED


@pytest.mark.asyncio
async def test_stats(queue, clock):
    first = await queue.add_job("court")
    await queue.add_job("decision", scheduled_for=clock.now() + timedelta(hours=2))
    await queue.add_job("decision", scheduled_for=clock.now() + timedelta(hours=1))
    await queue.start_job(first)

    stats = await queue.get_stats()

    assert stats["pending"] == 2
    assert stats["running"] == 1
    assert stats["failed"] == 0
    assert stats["total"] == 3
    assert stats["pending_by_type"]["decision"] == 2
    assert stats["pending_by_type"]["court"] == 0
    assert stats["next_scheduled_for"] == clock.now() + timedelta(hours=1)


@pytest.mark.asyncio
async def test_full_sync_runs_every_stage(queue, fake_client, make_judge, make_opinion):
    fake_client.court_pages = [CourtPage(results=[CourtRecord(id="cal", name="Supreme Court of California")])]
    await make_judge(external_id="1001")
    fake_client.people["1001"] = {"positions": [{"job_title": "Judge"}]}
    fake_client.opinions["1001"] = [make_opinion(1)]

    options = FullSyncOptions.model_validate({
        "court": NO_PAUSE,
        "judge": {"batch_pause_seconds": 0},
        "decision": {"batch_pause_seconds": 0, "judge_pause_seconds": 0, "years_back": 1},
    })
    result = await queue.run_full_sync(options)

    assert result.success is True
    assert result.aborted is False
    assert result.court.courts_created == 1
    assert result.judge.judges_updated == 1
    assert result.decision.decisions_created == 1


@pytest.mark.asyncio
async def test_full_sync_aborts_when_a_stage_aborts(queue, fake_client):
    fake_client.failures["courts"] = NetworkError("connection reset")

    result = await queue.run_full_sync(FullSyncOptions.model_validate({"court": NO_PAUSE}))

    assert result.success is False
    assert result.aborted is True
    assert result.retryable is True
    # Later stages still run
    assert result.judge is not None
    assert result.decision is not None



@pytest.mark.asyncio
async def test_cleanup_keeps_cancelled_jobs(queue, clock):
    cancelled = await queue.add_job("decision")
    await queue.cancel_jobs("decision")
    failed = await queue.add_job("court", max_retries=0)
    await queue.start_job(failed)
    await queue.fail_job(failed, "boom", should_retry=False)

    clock.advance(days=8)
    assert await queue.cleanup_old_jobs(7) == 1

    assert (await queue.get_job(cancelled))["status"] == SyncJobStatus.CANCELLED
    with pytest.raises(JobNotFoundError):
        await queue.get_job(failed)
