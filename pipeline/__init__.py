"""
CourtListener sync pipeline.

Modules:
    base: Run bracketing (sync_logs) shared by the sync managers
    court_sync: Court directory sync
    judge_sync: Judge profile enrichment
    decision_sync: Per-judge decision sync, optionally followed by filings
    filings: Docket filings for one judge
    opinions: Lazy opinion full-text rows
    queue_manager: Persistent job queue and job dispatch
    worker: Single-consumer polling loop over the queue
    scheduler: APScheduler cron jobs that enqueue recurring syncs

Subpackages:
    extractors: CourtListener REST client
    transformers: Normalization and docket helpers
    loaders: Decision repository and conflict policies

Usage:
    from pipeline.extractors.courtlistener import CourtListenerClient
    from pipeline.decision_sync import DecisionSyncManager

Example:
    async with CourtListenerClient() as client:
        async with async_session_maker() as session:
            manager = DecisionSyncManager(session, client)
            result = await manager.sync_decisions(DecisionSyncOptions(days_since_last=7))

    print(f"Created {result.decisions_created} decisions")

Error Handling:
    Upstream, persistence and queue failures are raised as subclasses of
    core.exceptions.SyncException. Managers isolate failures per record and
    per judge; the queue reschedules jobs whose cause is retryable.
"""

__all__ = [
    "CourtSyncManager",
    "JudgeSyncManager",
    "DecisionSyncManager",
    "SyncQueueManager",
    "QueueWorker",
    "SyncScheduler",
]
