"""
Idempotent persistence of decisions and filings into the cases table.

Upserts target docket_hash when one can be computed and fall back to the
(case_number, jurisdiction) key otherwise, using the dialect's
INSERT ... ON CONFLICT DO UPDATE (PostgreSQL in production, SQLite in
tests). What an upsert writes over an existing row is decided by the
repository's ConflictPolicy.
"""

from typing import Any, Dict, Iterable, NamedTuple, Optional
from datetime import date
from sqlalchemy import select, update, func, or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.exceptions import PersistenceConflictError, PersistenceError
from models.base import CaseStatus
from models.case import Case
from models.judge import Judge
from pipeline.loaders.conflict_policy import ConflictPolicy, get_policy
from pipeline.transformers.docket_helpers import format_date, get_decision_key
from pipeline.transformers.normalization import (
    create_docket_hash,
    normalize_case_number,
    normalize_jurisdiction,
    normalize_outcome_label,
)
from schemas.courtlistener import OpinionSummary
import logging

logger = logging.getLogger(__name__)

KEY_COLUMNS = ("docket_hash", "case_number", "jurisdiction")
UNKNOWN_CASE = "Unknown Case"


class UpsertResult(NamedTuple):
    """
    case_id: row the record landed on
    created: a new row was inserted
    conflict_case_id: a second row matched the record's case number
        while the docket hash matched case_id (split match, flagged)
    """
    case_id: Optional[int]
    created: bool
    conflict_case_id: Optional[int] = None


class ExistingFilings(NamedTuple):
    by_hash: Dict[str, int]
    by_case_number: Dict[str, int]


class DecisionRepository:
    """
    Case persistence for the decision and filing syncs.

    Ensures:
    - No duplicate rows on repeated runs
    - Stored rows are updated in place when upstream data changes
    - One commit per record, so a failing record never undoes the others
    """

    def __init__(self, db_session: AsyncSession, policy: Optional[ConflictPolicy] = None):
        self.db = db_session
        self.policy = policy or get_policy()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_existing_decisions(self, judge_id: int, keys: Iterable[str]) -> Dict[str, int]:
        """Map of external id → case id for the judge's already stored decisions."""
        keys = [key for key in keys if key]
        if not keys:
            return {}

        result = await self.db.execute(
            select(Case.id, Case.external_id).where(
                Case.judge_id == judge_id,
                Case.external_id.in_(keys)
            )
        )
        return {row.external_id: row.id for row in result if row.external_id}

    async def get_existing_filings(
        self,
        judge_id: int,
        case_numbers: Iterable[Optional[str]],
        docket_hashes: Iterable[Optional[str]]
    ) -> ExistingFilings:
        case_numbers = {value for value in case_numbers if value}
        docket_hashes = {value for value in docket_hashes if value}
        by_hash: Dict[str, int] = {}
        by_case_number: Dict[str, int] = {}

        if not case_numbers and not docket_hashes:
            return ExistingFilings(by_hash, by_case_number)

        conditions = []
        if case_numbers:
            conditions.append(Case.case_number.in_(case_numbers))
        if docket_hashes:
            conditions.append(Case.docket_hash.in_(docket_hashes))

        result = await self.db.execute(
            select(Case.id, Case.case_number, Case.docket_hash).where(
                Case.judge_id == judge_id,
                or_(*conditions)
            )
        )
        for row in result:
            if row.case_number:
                by_case_number[row.case_number] = row.id
            if row.docket_hash:
                by_hash[row.docket_hash] = row.id

        return ExistingFilings(by_hash, by_case_number)

    async def latest_decision_date(self, judge_id: int) -> Optional[date]:
        result = await self.db.execute(
            select(func.max(Case.decision_date)).where(
                Case.judge_id == judge_id,
                Case.decision_date.is_not(None)
            )
        )
        return result.scalar_one_or_none()

    async def latest_filing_date(self, judge_id: int) -> Optional[date]:
        result = await self.db.execute(
            select(func.max(Case.filing_date)).where(
                Case.judge_id == judge_id,
                Case.filing_date.is_not(None)
            )
        )
        return result.scalar_one_or_none()

    async def _find_id_by_hash(self, docket_hash: Optional[str]) -> Optional[int]:
        if not docket_hash:
            return None
        result = await self.db.execute(select(Case.id).where(Case.docket_hash == docket_hash))
        return result.scalar_one_or_none()

    async def _find_id_by_case_number(
        self, case_number: Optional[str], jurisdiction: Optional[str]
    ) -> Optional[int]:
        # NULL jurisdictions never collide on the unique constraint
        if not case_number or jurisdiction is None:
            return None
        result = await self.db.execute(
            select(Case.id).where(
                Case.case_number == case_number,
                Case.jurisdiction == jurisdiction
            )
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def build_decision_record(
        self,
        judge_id: int,
        jurisdiction: Optional[str],
        decision: OpinionSummary,
        today: date,
        court_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Case row for an opinion; undated opinions are stamped with `today`."""
        decision_key = get_decision_key(decision)
        normalized_jurisdiction = normalize_jurisdiction(jurisdiction)
        cluster_id = decision.cluster_id
        case_number = normalize_case_number(
            f"CL-{cluster_id}" if cluster_id else None,
            fallback=cluster_id or decision.id
        )
        filing_date = format_date(decision.date_filed) or today
        docket_hash = create_docket_hash(
            case_number.key,
            normalized_jurisdiction,
            judge_id,
            cluster_id or decision.id,
            filing_date
        )
        outcome = normalize_outcome_label(decision.precedential_status or "Decided")
        case_name = (decision.case_name or UNKNOWN_CASE)[:500]

        if decision.case_name:
            summary = f"CourtListener opinion for {decision.case_name}"
        else:
            summary = f"CourtListener opinion {decision_key}"

        return {
            "judge_id": judge_id,
            "court_id": court_id,
            "case_name": case_name,
            "case_number": case_number.display,
            "docket_hash": docket_hash,
            "filing_date": filing_date,
            "decision_date": filing_date,
            "case_type": "Opinion",
            "status": CaseStatus.DECIDED,
            "outcome": outcome.label,
            "summary": summary,
            "external_id": decision_key,
            "jurisdiction": normalized_jurisdiction,
            "source_url": None,
        }

    async def upsert_decision(
        self,
        judge_id: int,
        jurisdiction: Optional[str],
        decision: OpinionSummary,
        today: date,
        court_id: Optional[int] = None
    ) -> UpsertResult:
        record = self.build_decision_record(judge_id, jurisdiction, decision, today, court_id)
        return await self.upsert_case(record)

    async def upsert_case(self, record: Dict[str, Any]) -> UpsertResult:
        """
        Insert or update a case row keyed by docket_hash, else (case_number, jurisdiction).

        Split match: when the hash matches one row and the case number
        another, the hash row is updated (its key columns untouched) and
        the other row's id is reported as conflict_case_id.
        """
        docket_hash = record.get("docket_hash")
        case_number = record.get("case_number")
        jurisdiction = record.get("jurisdiction")

        if not docket_hash and not case_number:
            raise PersistenceError(
                "Case record has neither a docket hash nor a case number",
                context={"external_id": record.get("external_id")}
            )

        hash_id = await self._find_id_by_hash(docket_hash)
        number_id = await self._find_id_by_case_number(case_number, jurisdiction)

        if hash_id and number_id and hash_id != number_id:
            logger.warning(
                f"Docket hash matches case {hash_id} but case number {case_number} "
                f"({jurisdiction}) matches case {number_id}; keeping the hash match",
                extra={"error_context": {
                    "docket_hash": docket_hash,
                    "case_number": case_number,
                    "hash_case_id": hash_id,
                    "number_case_id": number_id,
                }}
            )
            await self._update_without_keys(hash_id, record)
            return UpsertResult(hash_id, False, number_id)

        if docket_hash and not hash_id and number_id:
            # Same case number already stored under another (or no) hash
            await self._update_without_keys(number_id, record, adopt_hash=docket_hash)
            return UpsertResult(number_id, False)

        existing_id = hash_id or number_id
        try:
            await self._execute_upsert(record)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            resolved = await self._resolve_conflict(docket_hash, case_number, jurisdiction, e)
            return UpsertResult(resolved, False)

        case_id = existing_id
        if case_id is None:
            case_id = (
                await self._find_id_by_hash(docket_hash)
                or await self._find_id_by_case_number(case_number, jurisdiction)
            )
        return UpsertResult(case_id, existing_id is None)

    async def _execute_upsert(self, record: Dict[str, Any]):
        insert = self._insert_for_dialect()
        values = {**record, "updated_at": utcnow()}
        stmt = insert(Case).values(**values)

        if record.get("docket_hash"):
            index_elements = ["docket_hash"]
        else:
            index_elements = ["case_number", "jurisdiction"]

        update_columns = [
            column for column in values
            if column not in index_elements and column != "judge_id"
        ]
        set_ = self.policy.set_clause(stmt, update_columns)
        set_["updated_at"] = stmt.excluded.updated_at

        stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
        await self.db.execute(stmt)

    async def _resolve_conflict(
        self,
        docket_hash: Optional[str],
        case_number: Optional[str],
        jurisdiction: Optional[str],
        error: IntegrityError
    ) -> int:
        """A unique-constraint collision resolves to the row that owns the key."""
        case_id = (
            await self._find_id_by_hash(docket_hash)
            or await self._find_id_by_case_number(case_number, jurisdiction)
        )
        if case_id is None:
            raise PersistenceConflictError(
                "Unique constraint violated but no row owns the key",
                context={
                    "table_name": Case.__tablename__,
                    "conflict_fields": KEY_COLUMNS,
                    "docket_hash": docket_hash,
                    "case_number": case_number,
                },
                original_exception=error
            )
        logger.info(f"Upsert conflict on case {case_id} resolved by key lookup")
        return case_id

    async def _update_without_keys(
        self, case_id: int, record: Dict[str, Any], adopt_hash: Optional[str] = None
    ):
        values = {
            key: value for key, value in record.items()
            if key not in KEY_COLUMNS and key != "judge_id"
        }
        values = self.policy.update_values(values)
        if adopt_hash:
            stored = await self.db.execute(select(Case.docket_hash).where(Case.id == case_id))
            if stored.scalar_one_or_none() is None:
                values["docket_hash"] = adopt_hash
        values["updated_at"] = utcnow()

        await self.db.execute(update(Case).where(Case.id == case_id).values(**values))
        await self.db.commit()

    async def update_case(self, case_id: int, record: Dict[str, Any]):
        """In-place update of a filing already matched by hash or case number."""
        await self._update_without_keys(case_id, record, adopt_hash=record.get("docket_hash"))

    async def update_judge_case_count(self, judge_id: int) -> int:
        """Recount the judge's decided cases into judges.total_cases."""
        result = await self.db.execute(
            select(func.count(Case.id)).where(
                Case.judge_id == judge_id,
                Case.status == CaseStatus.DECIDED
            )
        )
        count = result.scalar_one()

        await self.db.execute(
            update(Judge)
            .where(Judge.id == judge_id)
            .values(total_cases=count, updated_at=utcnow())
        )
        await self.db.commit()
        return count

    def _insert_for_dialect(self):
        return dialect_insert(self.db)


def dialect_insert(session: AsyncSession):
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise PersistenceError(
        f"Upsert is not supported on dialect {dialect}",
        context={"dialect": dialect}
    )
