"""
Run a sync, queue a job or drain the sync queue from the command line

Examples:
    python scripts/run_sync.py courts --force-refresh
    python scripts/run_sync.py decisions --days-since-last 7 --judge-id 12 --judge-id 40
    python scripts/run_sync.py enqueue decision --priority 100 --options '{"days_since_last": 1}'
    python scripts/run_sync.py worker --max-iterations 10
"""

import argparse
import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import SyncException
from core.logging import setup_logging
from models.base import SyncJobType
from pipeline.court_sync import CourtSyncManager
from pipeline.decision_sync import DecisionSyncManager
from pipeline.extractors.courtlistener import CourtListenerClient
from pipeline.judge_sync import JudgeSyncManager
from pipeline.queue_manager import SyncQueueManager
from pipeline.worker import QueueWorker
from schemas.sync import CourtSyncOptions, DecisionSyncOptions, FullSyncOptions, JudgeSyncOptions

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CourtListener sync runner")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    courts = commands.add_parser("courts", help="Sync the court directory")
    courts.add_argument("--jurisdiction")
    courts.add_argument("--force-refresh", action="store_true")
    courts.add_argument("--max-courts", type=int)

    judges = commands.add_parser("judges", help="Refresh judge profiles")
    judges.add_argument("--jurisdiction")
    judges.add_argument("--force-refresh", action="store_true")
    judges.add_argument("--judge-id", dest="judge_ids", type=int, action="append")

    decisions = commands.add_parser("decisions", help="Sync judge decisions (and filings)")
    decisions.add_argument("--jurisdiction")
    decisions.add_argument("--judge-id", dest="judge_ids", type=int, action="append")
    decisions.add_argument("--days-since-last", type=int)
    decisions.add_argument("--years-back", type=int)
    decisions.add_argument("--max-decisions-per-judge", type=int)
    decisions.add_argument("--include-dockets", action="store_true")
    decisions.add_argument("--batch-size", type=int)

    commands.add_parser("full", help="Court, judge and decision sync in sequence")

    enqueue = commands.add_parser("enqueue", help="Queue a sync job")
    enqueue.add_argument("type", choices=[job_type.value for job_type in SyncJobType])
    enqueue.add_argument("--priority", type=int, default=0)
    enqueue.add_argument("--options", default="{}", help="JSON options for the job")

    worker = commands.add_parser("worker", help="Process queued jobs")
    worker.add_argument("--max-iterations", type=int)
    worker.add_argument("--poll-seconds", type=float, default=settings.SYNC_QUEUE_POLL_SECONDS)

    commands.add_parser("stats", help="Print queue statistics")
    return parser


def _options(args, *names):
    """Only the flags actually given, so option defaults apply otherwise."""
    values = {}
    for name in names:
        value = getattr(args, name, None)
        if value not in (None, False):
            values[name] = value
    return values


async def run(args) -> int:
    if args.command == "enqueue":
        async with async_session_maker() as session:
            job_id = await SyncQueueManager(session).add_job(
                args.type, json.loads(args.options), priority=args.priority
            )
        print(job_id)
        return 0

    if args.command == "stats":
        async with async_session_maker() as session:
            stats = await SyncQueueManager(session).get_stats()
        print(json.dumps(stats, indent=2, default=str))
        return 0

    async with CourtListenerClient() as client:
        if args.command == "worker":
            worker = QueueWorker(async_session_maker, client, poll_interval_seconds=args.poll_seconds)
            await worker.run(max_iterations=args.max_iterations)
            return 0

        async with async_session_maker() as session:
            if args.command == "courts":
                options = CourtSyncOptions(**_options(args, "jurisdiction", "force_refresh", "max_courts"))
                result = await CourtSyncManager(session, client).sync_courts(options)
            elif args.command == "judges":
                options = JudgeSyncOptions(**_options(args, "jurisdiction", "force_refresh", "judge_ids"))
                result = await JudgeSyncManager(session, client).sync_judges(options)
            elif args.command == "decisions":
                options = DecisionSyncOptions(**_options(
                    args, "jurisdiction", "judge_ids", "days_since_last", "years_back",
                    "max_decisions_per_judge", "include_dockets", "batch_size"
                ))
                result = await DecisionSyncManager(session, client).sync_decisions(options)
            else:
                result = await SyncQueueManager(session, client).run_full_sync(FullSyncOptions())

    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


def main() -> int:
    args = build_parser().parse_args()
    setup_logging(args.log_level)
    try:
        return asyncio.run(_run_and_dispose(args))
    except SyncException as e:
        logger.error(f"Sync runner failed: {e}")
        return 2


async def _run_and_dispose(args) -> int:
    try:
        return await run(args)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
