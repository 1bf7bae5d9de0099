"""
Decision sync: pull each judge's recent opinions from CourtListener and
store them as decided cases, optionally followed by docket filings.

Incremental by design: each judge resumes from a since-date cursor derived
from what is already stored, and re-running against unchanged upstream
data writes no new rows.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from datetime import date, timedelta
from sqlalchemy import select

from core.clock import Clock, subtract_years
from core.exceptions import is_retryable
from models.judge import Judge
from pipeline.base import SyncManager
from pipeline.extractors.courtlistener import UpstreamClient
from pipeline.filings import FilingSync
from pipeline.loaders.conflict_policy import ConflictPolicy
from pipeline.loaders.decision_repository import DecisionRepository
from pipeline.opinions import OpinionTextLoader
from pipeline.transformers.docket_helpers import format_date, get_decision_key
from schemas.courtlistener import OpinionSummary
from schemas.sync import DecisionSyncOptions, DecisionSyncResult
import logging

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 90
DEFAULT_FETCH_YEARS_BACK = 5


@dataclass
class JudgeDecisionStats:
    processed: int = 0
    created: int = 0
    updated: int = 0
    duplicates_skipped: int = 0
    conflicts_flagged: int = 0


class DecisionSyncManager(SyncManager):
    """
    Decision and filing sync across judges linked to CourtListener.

    Failure isolation:
    - a failing record is logged and skipped
    - a failing judge adds one entry to the run's error list
    - a failing batch adds one entry to the run's error list
    - only a failure to select candidate judges aborts the run
    """

    sync_type = "decision"

    def __init__(
        self,
        db_session,
        client: UpstreamClient,
        clock: Optional[Clock] = None,
        policy: Optional[ConflictPolicy] = None
    ):
        super().__init__(db_session, client, clock)
        self.repository = DecisionRepository(db_session, policy)
        self.opinions = OpinionTextLoader(db_session, client)
        self.filings = FilingSync(db_session, client, self.repository, self.clock)

    async def sync_decisions(self, options: Optional[DecisionSyncOptions] = None) -> DecisionSyncResult:
        options = options or DecisionSyncOptions()
        self._begin_run()
        result = DecisionSyncResult()

        logger.info(f"Starting decision sync {self.run_id} (jurisdiction={options.jurisdiction})")
        await self.log_sync_start(options)

        try:
            judges = await self.get_judges_for_decision_sync(options)
        except Exception as e:
            await self._rollback_quietly()
            result.success = False
            result.aborted = True
            result.retryable = is_retryable(e)
            result.errors.append(f"Sync failed: {e}")
            result.duration_ms = self.elapsed_ms()
            logger.exception(f"Decision sync {self.run_id} failed while selecting judges")
            await self.log_sync_error(e, result)
            return result

        result.judges_processed = len(judges)
        if not judges:
            logger.info("No judges found for decision sync")

        for batch_number, start in enumerate(range(0, len(judges), options.batch_size), start=1):
            batch = judges[start:start + options.batch_size]
            try:
                await self._process_batch(batch, options, result)
            except Exception as e:
                await self._rollback_quietly()
                result.errors.append(f"Batch {batch_number} failed: {e}")
                logger.exception(f"Decision batch {batch_number} failed")

            if start + options.batch_size < len(judges):
                await self.clock.sleep(options.batch_pause_seconds)

        result.duration_ms = self.elapsed_ms()
        result.success = not result.errors
        await self.log_sync_completion(result)

        logger.info(
            f"Decision sync {self.run_id} completed: judges={result.judges_processed} "
            f"decisions={result.decisions_processed} created={result.decisions_created} "
            f"updated={result.decisions_updated} filings={result.filings_processed} "
            f"errors={len(result.errors)}"
        )
        return result

    async def get_judges_for_decision_sync(self, options: DecisionSyncOptions) -> List[Dict[str, Any]]:
        query = select(
            Judge.id, Judge.name, Judge.external_id, Judge.jurisdiction, Judge.court_id
        ).where(Judge.external_id.is_not(None))

        if options.jurisdiction:
            query = query.where(Judge.jurisdiction == options.jurisdiction)
        if options.judge_ids:
            query = query.where(Judge.id.in_(options.judge_ids))

        rows = await self.db.execute(query.order_by(Judge.id).limit(options.max_judges))
        return [dict(row._mapping) for row in rows]

    async def _process_batch(
        self,
        judges: List[Dict[str, Any]],
        options: DecisionSyncOptions,
        result: DecisionSyncResult
    ):
        for judge in judges:
            try:
                stats = await self.sync_judge_decisions(judge, options)
            except Exception as e:
                await self._rollback_quietly()
                message = f"Failed to sync decisions for judge {judge['name']}: {e}"
                result.errors.append(message)
                logger.error(message, extra={"error_context": {"judge_id": judge["id"]}})
                continue

            result.decisions_processed += stats.processed
            result.decisions_created += stats.created
            result.decisions_updated += stats.updated
            result.duplicates_skipped += stats.duplicates_skipped
            result.conflicts_flagged += stats.conflicts_flagged

            if options.include_dockets:
                try:
                    filing_stats = await self.filings.sync_judge_filings(judge, options)
                except Exception as e:
                    await self._rollback_quietly()
                    message = f"Failed to sync filings for judge {judge['name']}: {e}"
                    result.errors.append(message)
                    logger.error(message, extra={"error_context": {"judge_id": judge["id"]}})
                else:
                    result.filings_processed += filing_stats.processed
                    result.filings_created += filing_stats.created
                    result.filings_updated += filing_stats.updated
                    result.filings_skipped += filing_stats.skipped

            await self.clock.sleep(options.judge_pause_seconds)

    async def get_since_date(self, judge_id: int, options: DecisionSyncOptions) -> date:
        """
        Resume point for a judge: explicit lookback, else the day after the
        latest stored decision, else the years_back window, else 90 days.
        """
        today = self.clock.today()
        if options.days_since_last:
            return today - timedelta(days=options.days_since_last)

        latest = await self.repository.latest_decision_date(judge_id)
        if latest:
            return latest + timedelta(days=1)

        if options.years_back and options.years_back > 0:
            return subtract_years(today, options.years_back)

        return today - timedelta(days=DEFAULT_LOOKBACK_DAYS)

    async def fetch_judge_decisions(
        self,
        external_judge_id: str,
        since: date,
        options: DecisionSyncOptions
    ) -> List[OpinionSummary]:
        years_back = options.years_back if options.years_back and options.years_back > 0 else DEFAULT_FETCH_YEARS_BACK
        decisions = await self.client.get_recent_opinions_by_judge(external_judge_id, years_back)

        # Upstream date filtering is not exact
        recent = []
        for decision in decisions:
            filed = format_date(decision.date_filed)
            if filed is not None and filed >= since:
                recent.append(decision)

        return recent[:options.max_decisions_per_judge]

    async def sync_judge_decisions(
        self,
        judge: Dict[str, Any],
        options: DecisionSyncOptions
    ) -> JudgeDecisionStats:
        stats = JudgeDecisionStats()

        since = await self.get_since_date(judge["id"], options)
        logger.info(f"Syncing decisions for judge {judge['name']} ({judge['external_id']}) since {since}")

        decisions = await self.fetch_judge_decisions(judge["external_id"], since, options)
        stats.processed = len(decisions)
        if not decisions:
            logger.info(f"No new decisions found for judge {judge['name']}")
            return stats

        keys = [get_decision_key(decision) for decision in decisions]
        existing = await self.repository.get_existing_decisions(judge["id"], keys)
        today = self.clock.today()

        for decision, key in zip(decisions, keys):
            try:
                if key in existing:
                    await self.opinions.ensure_opinion_for_case(existing[key], decision)
                    stats.updated += 1
                    continue

                upsert = await self.repository.upsert_decision(
                    judge["id"], judge.get("jurisdiction"), decision, today, judge.get("court_id")
                )
                if upsert.conflict_case_id:
                    stats.conflicts_flagged += 1

                if upsert.case_id:
                    await self.opinions.ensure_opinion_for_case(upsert.case_id, decision)
                    existing[key] = upsert.case_id

                if upsert.created:
                    stats.created += 1
                elif upsert.case_id:
                    stats.updated += 1
                else:
                    stats.duplicates_skipped += 1

            except Exception as e:
                await self._rollback_quietly()
                logger.error(
                    f"Failed to process decision {key} ({decision.case_name}) for judge {judge['name']}: {e}",
                    extra={"error_context": {"judge_id": judge["id"], "decision_key": key}}
                )

        await self.repository.update_judge_case_count(judge["id"])
        logger.info(
            f"Completed decision sync for judge {judge['name']}: processed={stats.processed} "
            f"created={stats.created} updated={stats.updated}"
        )
        return stats
