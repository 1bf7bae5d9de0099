from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index
from models.base import Base, IdType, JSONType
from core.clock import utcnow


class Judge(Base):
    """
    Judge directory entry.

    Rows are owned by the directory layer. The pipeline only writes the
    external id linkage, total_cases and the profile enrichment columns.
    """
    __tablename__ = "judges"

    id = Column(IdType, primary_key=True, autoincrement=True)

    name = Column(String(255), nullable=False, index=True)
    jurisdiction = Column(String(10), nullable=True, index=True)
    court_id = Column(IdType, ForeignKey("courts.id"), nullable=True, index=True)
    external_id = Column(String(100), nullable=True, index=True)

    total_cases = Column(Integer, nullable=False, default=0)

    # Profile enrichment
    bio = Column(Text, nullable=True)
    education = Column(JSONType, nullable=True)
    profile_metadata = Column(JSONType, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_judges_external_jurisdiction", "external_id", "jurisdiction"),
    )
