from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey, Index
from models.base import Base, IdType
from core.clock import utcnow


class Opinion(Base):
    """
    Full opinion text for a decided case.

    Created lazily once the text has been fetched; at most one row per
    (case_id, external_id).
    """
    __tablename__ = "opinions"

    id = Column(IdType, primary_key=True, autoincrement=True)
    case_id = Column(IdType, ForeignKey("cases.id"), nullable=False, index=True)

    cluster_id = Column(String(50), nullable=True)
    opinion_type = Column(String(50), nullable=False, default="lead")
    author_name = Column(String(255), nullable=True)
    per_curiam = Column(Boolean, nullable=False, default=False)

    plain_text = Column(Text, nullable=True)
    html_text = Column(Text, nullable=True)

    external_id = Column(String(100), nullable=False, unique=True)
    date_created = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_opinions_case_external", "case_id", "external_id"),
    )
