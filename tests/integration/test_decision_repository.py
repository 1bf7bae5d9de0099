"""
Case upserts, key fallbacks and split-match handling
"""

import pytest
from datetime import date
from sqlalchemy import func, insert, select

from models.base import CaseStatus
from models.case import Case
from models.judge import Judge
from pipeline.loaders.conflict_policy import LastWriteWins
from pipeline.loaders.decision_repository import DecisionRepository
from pipeline.transformers.normalization import create_docket_hash


def case_record(judge_id, **values):
    record = {
        "judge_id": judge_id,
        "case_name": "Smith v. Jones",
        "case_number": "24-CV-1",
        "docket_hash": create_docket_hash("24CV1", "CA", judge_id, 1, "2024-01-02"),
        "filing_date": date(2024, 1, 2),
        "status": CaseStatus.PENDING,
        "summary": "Filed 2024-01-02",
        "external_id": "docket-1",
        "jurisdiction": "CA",
    }
    record.update(values)
    return record


async def count_cases(session) -> int:
    return (await session.execute(select(func.count()).select_from(Case))).scalar_one()


@pytest.mark.asyncio
async def test_upsert_creates_then_updates_in_place(db_session, make_judge):
    judge_id = await make_judge()
    repository = DecisionRepository(db_session)

    created = await repository.upsert_case(case_record(judge_id))
    updated = await repository.upsert_case(case_record(judge_id, case_name="Smith v. Jones (Amended)"))

    assert created.created is True
    assert updated.created is False
    assert updated.case_id == created.case_id
    assert await count_cases(db_session) == 1

    name = await db_session.execute(select(Case.case_name).where(Case.id == created.case_id))
    assert name.scalar_one() == "Smith v. Jones (Amended)"


@pytest.mark.asyncio
async def test_default_policy_keeps_stored_value_over_null(db_session, make_judge):
    judge_id = await make_judge()
    repository = DecisionRepository(db_session)

    first = await repository.upsert_case(case_record(judge_id))
    await repository.upsert_case(case_record(judge_id, summary=None))

    summary = await db_session.execute(select(Case.summary).where(Case.id == first.case_id))
    assert summary.scalar_one() == "Filed 2024-01-02"


@pytest.mark.asyncio
async def test_last_write_wins_policy_overwrites_with_null(db_session, make_judge):
    judge_id = await make_judge()
    repository = DecisionRepository(db_session, LastWriteWins())

    first = await repository.upsert_case(case_record(judge_id))
    await repository.upsert_case(case_record(judge_id, summary=None))

    summary = await db_session.execute(select(Case.summary).where(Case.id == first.case_id))
    assert summary.scalar_one() is None


@pytest.mark.asyncio
async def test_upsert_without_hash_uses_case_number_and_jurisdiction(db_session, make_judge):
    judge_id = await make_judge()
    repository = DecisionRepository(db_session)

    first = await repository.upsert_case(case_record(judge_id, docket_hash=None))
    second = await repository.upsert_case(case_record(judge_id, docket_hash=None, case_name="Renamed"))

    assert first.created is True
    assert second.created is False
    assert second.case_id == first.case_id
    assert await count_cases(db_session) == 1


@pytest.mark.asyncio
async def test_new_hash_for_known_case_number_adopts_row(db_session, make_judge):
    judge_id = await make_judge()
    repository = DecisionRepository(db_session)

    first = await repository.upsert_case(case_record(judge_id, docket_hash=None))
    second = await repository.upsert_case(case_record(judge_id, docket_hash="a" * 40))

    assert second.case_id == first.case_id
    assert second.created is False
    stored = await db_session.execute(select(Case.docket_hash).where(Case.id == first.case_id))
    assert stored.scalar_one() == "a" * 40


@pytest.mark.asyncio
async def test_split_match_prefers_hash_row_and_flags_conflict(db_session, make_judge):
    judge_id = await make_judge()
    repository = DecisionRepository(db_session)

    hash_row = await repository.upsert_case(case_record(judge_id, case_number="24-CV-1", docket_hash="a" * 40))
    number_row = await repository.upsert_case(case_record(judge_id, case_number="24-CV-2", docket_hash="b" * 40))

    result = await repository.upsert_case(
        case_record(judge_id, case_number="24-CV-2", docket_hash="a" * 40, case_name="Merged Name")
    )

    assert result.case_id == hash_row.case_id
    assert result.conflict_case_id == number_row.case_id
    assert result.created is False
    assert await count_cases(db_session) == 2

    row = (await db_session.execute(
        select(Case.case_number, Case.case_name).where(Case.id == hash_row.case_id)
    )).one()
    assert row.case_number == "24-CV-1"
    assert row.case_name == "Merged Name"


@pytest.mark.asyncio
async def test_record_without_any_key_is_rejected(db_session, make_judge):
    from core.exceptions import PersistenceError

    judge_id = await make_judge()
    repository = DecisionRepository(db_session)

    with pytest.raises(PersistenceError):
        await repository.upsert_case(case_record(judge_id, docket_hash=None, case_number=None))


@pytest.mark.asyncio
async def test_existing_lookups_are_scoped_to_judge(db_session, make_judge):
    judge_id = await make_judge(name="First", external_id="1")
    other_id = await make_judge(name="Second", external_id="2")
    repository = DecisionRepository(db_session)

    await repository.upsert_case(case_record(judge_id, external_id="900", docket_hash="c" * 40))

    assert await repository.get_existing_decisions(judge_id, ["900", "901"]) == {"900": 1}
    assert await repository.get_existing_decisions(other_id, ["900"]) == {}

    filings = await repository.get_existing_filings(judge_id, ["24-CV-1"], ["c" * 40])
    assert filings.by_hash == {"c" * 40: 1}
    assert filings.by_case_number == {"24-CV-1": 1}


@pytest.mark.asyncio
async def test_judge_case_count_counts_decided_only(db_session, make_judge):
    judge_id = await make_judge()
    await db_session.execute(insert(Case), [
        {"judge_id": judge_id, "case_name": "A", "status": CaseStatus.DECIDED, "case_number": "1"},
        {"judge_id": judge_id, "case_name": "B", "status": CaseStatus.DECIDED, "case_number": "2"},
        {"judge_id": judge_id, "case_name": "C", "status": CaseStatus.PENDING, "case_number": "3"},
    ])
    await db_session.commit()

    count = await DecisionRepository(db_session).update_judge_case_count(judge_id)

    assert count == 2
    stored = await db_session.execute(select(Judge.total_cases).where(Judge.id == judge_id))
    assert stored.scalar_one() == 2
