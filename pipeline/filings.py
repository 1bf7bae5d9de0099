"""
Docket filing sync for a single judge.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional
from datetime import date, timedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, system_clock, subtract_years
from core.exceptions import SyncException, ValidationGap
from pipeline.extractors.courtlistener import UpstreamClient
from pipeline.loaders.decision_repository import DecisionRepository
from pipeline.transformers.docket_helpers import (
    build_case_summary_from_docket,
    build_source_url,
    classify_case_type_from_docket,
    determine_case_outcome_and_status,
    format_date,
)
from pipeline.transformers.normalization import (
    create_docket_hash,
    normalize_case_number,
    normalize_jurisdiction,
)
from schemas.courtlistener import Docket
from schemas.sync import DecisionSyncOptions
import logging

logger = logging.getLogger(__name__)

DEFAULT_FILING_YEARS_BACK = 5


@dataclass
class FilingStats:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0


class PreparedFiling(NamedTuple):
    docket: Docket
    case_number: Optional[str]
    filing_date: Optional[date]
    docket_hash: Optional[str]


class FilingSync:
    """
    Pull a judge's dockets and upsert them as cases.

    Dockets are matched against stored rows by docket hash, then by case
    number. Dockets without a case number or filing date are skipped and
    counted.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: UpstreamClient,
        repository: DecisionRepository,
        clock: Optional[Clock] = None
    ):
        self.db = db_session
        self.client = client
        self.repository = repository
        self.clock = clock or system_clock

    async def get_since_date(self, judge_id: int, options: DecisionSyncOptions) -> date:
        today = self.clock.today()
        if options.filing_days_since_last:
            return today - timedelta(days=options.filing_days_since_last)

        latest = await self.repository.latest_filing_date(judge_id)
        if latest:
            return latest + timedelta(days=1)

        return subtract_years(today, _filing_years_back(options))

    def prepare(self, judge: Dict[str, Any], docket: Docket, jurisdiction: Optional[str]) -> PreparedFiling:
        case_number = normalize_case_number(docket.docket_number or docket.pacer_case_id, fallback=docket.id)
        filing_date = format_date(docket.date_filed)
        docket_hash = create_docket_hash(
            case_number.key,
            jurisdiction,
            judge["id"],
            docket.id,
            filing_date
        )
        return PreparedFiling(docket, case_number.display, filing_date, docket_hash)

    def build_case_record(
        self,
        judge: Dict[str, Any],
        filing: PreparedFiling,
        jurisdiction: Optional[str]
    ) -> Dict[str, Any]:
        docket = filing.docket
        if not filing.case_number or not filing.filing_date:
            missing = [
                name for name, value in (
                    ("case_number", filing.case_number),
                    ("filing_date", filing.filing_date),
                ) if not value
            ]
            raise ValidationGap(
                f"Docket {docket.id} is missing {', '.join(missing)}",
                context={"external_id": docket.id, "missing_fields": missing}
            )

        disposition = determine_case_outcome_and_status(docket)
        last_activity = format_date(docket.date_last_filing)

        return {
            "judge_id": judge["id"],
            "court_id": judge.get("court_id"),
            "case_name": (docket.case_name or docket.case_name_short or "Unknown Case")[:500],
            "case_number": filing.case_number,
            "docket_hash": filing.docket_hash,
            "case_type": classify_case_type_from_docket(docket),
            "filing_date": filing.filing_date,
            "decision_date": disposition.decision_date,
            "status": disposition.status,
            "outcome": disposition.outcome_label,
            "summary": build_case_summary_from_docket(
                docket, filing.filing_date, disposition.decision_date, last_activity
            ),
            "external_id": f"docket-{docket.id}",
            "source_url": build_source_url(docket.absolute_url),
            "jurisdiction": jurisdiction,
        }

    async def sync_judge_filings(self, judge: Dict[str, Any], options: DecisionSyncOptions) -> FilingStats:
        """Upstream fetch errors propagate; per-docket failures are counted as skipped."""
        stats = FilingStats()
        if not judge.get("external_id"):
            return stats

        since = await self.get_since_date(judge["id"], options)
        dockets: List[Docket] = await self.client.get_recent_dockets_by_judge(
            judge["external_id"],
            start_date=since,
            years_back=_filing_years_back(options),
            max_records=options.max_filings_per_judge
        )
        stats.processed = len(dockets)
        logger.info(f"Fetched {len(dockets)} dockets for judge {judge['name']} since {since}")
        if not dockets:
            return stats

        jurisdiction = normalize_jurisdiction(judge.get("jurisdiction"))
        prepared = [self.prepare(judge, docket, jurisdiction) for docket in dockets]
        existing = await self.repository.get_existing_filings(
            judge["id"],
            [filing.case_number for filing in prepared],
            [filing.docket_hash for filing in prepared]
        )

        for filing in prepared:
            try:
                record = self.build_case_record(judge, filing, jurisdiction)
            except ValidationGap as gap:
                logger.debug(str(gap))
                stats.skipped += 1
                continue

            case_id = (
                (existing.by_hash.get(filing.docket_hash) if filing.docket_hash else None)
                or existing.by_case_number.get(filing.case_number)
            )

            try:
                if case_id:
                    await self.repository.update_case(case_id, record)
                    stats.updated += 1
                else:
                    upsert = await self.repository.upsert_case(record)
                    case_id = upsert.case_id
                    if upsert.created:
                        stats.created += 1
                    else:
                        stats.updated += 1
            except (SQLAlchemyError, SyncException) as e:
                await self.db.rollback()
                logger.error(
                    f"Failed to store filing {filing.case_number} for judge {judge['name']}: {e}",
                    extra={"error_context": {"judge_id": judge["id"], "docket_id": filing.docket.id}}
                )
                stats.skipped += 1
                continue

            if case_id:
                existing.by_case_number[filing.case_number] = case_id
                if filing.docket_hash:
                    existing.by_hash[filing.docket_hash] = case_id

        return stats


def _filing_years_back(options: DecisionSyncOptions) -> int:
    if options.filing_years_back is not None:
        return options.filing_years_back
    if options.years_back is not None:
        return options.years_back
    return DEFAULT_FILING_YEARS_BACK
