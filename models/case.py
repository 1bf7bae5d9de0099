from sqlalchemy import (
    Column, String, Date, DateTime, Text, Enum, ForeignKey, Index, UniqueConstraint
)
from models.base import Base, CaseStatus, IdType
from core.clock import utcnow


class Case(Base):
    """
    A decision or docket filing attributed to a judge.

    Idempotency:
    - docket_hash is the primary key for upserts (SHA-1 of the normalized
      case number, jurisdiction, judge, external id and filing date)
    - (case_number, jurisdiction) is the fallback key when no hash exists

    Rows are created on the first successful upsert, updated in place on
    re-sync and never deleted by the pipeline.
    """
    __tablename__ = "cases"

    id = Column(IdType, primary_key=True, autoincrement=True)

    judge_id = Column(IdType, ForeignKey("judges.id"), nullable=False, index=True)
    court_id = Column(IdType, ForeignKey("courts.id"), nullable=True)

    case_name = Column(String(500), nullable=False)
    case_number = Column(String(100), nullable=True)
    docket_hash = Column(String(40), nullable=True, unique=True)

    filing_date = Column(Date, nullable=True, index=True)
    decision_date = Column(Date, nullable=True, index=True)

    case_type = Column(String(100), nullable=True)
    status = Column(Enum(CaseStatus), nullable=False, default=CaseStatus.PENDING)
    outcome = Column(String(200), nullable=True)
    summary = Column(Text, nullable=True)

    external_id = Column(String(100), nullable=True)
    jurisdiction = Column(String(10), nullable=True)
    source_url = Column(String(2048), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("case_number", "jurisdiction", name="uq_cases_case_number_jurisdiction"),
        Index("idx_cases_judge_external", "judge_id", "external_id"),
        Index("idx_cases_judge_status", "judge_id", "status"),
    )
