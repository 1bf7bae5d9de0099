"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.clock import Clock
from models.base import Base
# Imported so every table is registered on Base.metadata
from models.court import Court
from models.judge import Judge
from models.case import Case
from models.opinion import Opinion
from models.sync_job import SyncJob
from models.sync_log import SyncLog
from schemas.courtlistener import CourtPage, Docket, OpinionDetail, OpinionSummary

FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0)


class FakeClock(Clock):
    """Clock whose sleep returns at once and advances time instead"""

    def __init__(self, start: datetime = FIXED_NOW):
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta):
        self.current += timedelta(**delta)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.current += timedelta(seconds=seconds)


class FakeUpstreamClient:
    """
    In-memory stand-in for CourtListenerClient.

    failures maps an external judge id (or "courts") to the exception the
    corresponding call raises.
    """

    def __init__(self):
        self.court_pages: List[CourtPage] = []
        self.opinions: Dict[str, List[OpinionSummary]] = {}
        self.dockets: Dict[str, List[Docket]] = {}
        self.details: Dict[int, OpinionDetail] = {}
        self.people: Dict[str, Dict[str, Any]] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    async def list_courts(self, cursor: Optional[str] = None, ordering: str = "id") -> CourtPage:
        self.calls.append(("list_courts", cursor))
        if "courts" in self.failures:
            raise self.failures["courts"]
        index = int(cursor) if cursor else 0
        if index >= len(self.court_pages):
            return CourtPage(results=[], next=None)
        return self.court_pages[index]

    async def get_recent_opinions_by_judge(self, external_judge_id: str, years_back: int = 3):
        self.calls.append(("opinions", external_judge_id, years_back))
        if external_judge_id in self.failures:
            raise self.failures[external_judge_id]
        return list(self.opinions.get(external_judge_id, []))

    async def get_recent_dockets_by_judge(
        self, external_judge_id: str, start_date=None, years_back: int = 5, max_records: int = 300
    ):
        self.calls.append(("dockets", external_judge_id, start_date, years_back, max_records))
        return list(self.dockets.get(external_judge_id, []))[:max_records]

    async def get_opinion_detail(self, opinion_id: Any) -> OpinionDetail:
        self.calls.append(("opinion_detail", opinion_id))
        if opinion_id in self.details:
            return self.details[opinion_id]
        return OpinionDetail(id=opinion_id, type="lead", plain_text=f"Opinion text {opinion_id}")

    async def get_person(self, external_judge_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("person", external_judge_id))
        if external_judge_id in self.failures:
            raise self.failures[external_judge_id]
        return self.people.get(external_judge_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeUpstreamClient:
    return FakeUpstreamClient()


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """SQLite database file per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'courtsync_test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_judge(db_session):
    """Insert a judge row and return its id"""

    async def _make(
        name: str = "Hon. Ada Park",
        external_id: Optional[str] = "1001",
        jurisdiction: Optional[str] = "CA",
        court_id: Optional[int] = None,
        **values
    ) -> int:
        result = await db_session.execute(
            insert(Judge).values(
                name=name,
                external_id=external_id,
                jurisdiction=jurisdiction,
                court_id=court_id,
                **values
            )
        )
        await db_session.commit()
        return result.inserted_primary_key[0]

    return _make


@pytest.fixture
def make_opinion():
    """OpinionSummary as returned by get_recent_opinions_by_judge"""

    def _make(
        opinion_id: int,
        cluster_id: Optional[int] = None,
        date_filed: Optional[str] = "2024-05-01",
        case_name: Optional[str] = None,
        precedential_status: Optional[str] = "Published"
    ) -> OpinionSummary:
        return OpinionSummary(
            id=opinion_id,
            opinion_id=opinion_id,
            cluster_id=cluster_id if cluster_id is not None else opinion_id + 10000,
            case_name=case_name or f"People v. Case {opinion_id}",
            date_filed=date_filed,
            precedential_status=precedential_status,
            author_str="Park",
        )

    return _make
