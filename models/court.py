from sqlalchemy import Column, String, DateTime, Text, Enum, Index
from models.base import Base, CourtType, IdType, JSONType
from core.clock import utcnow


class Court(Base):
    """
    Court directory entry mirrored from CourtListener.

    Matching on re-sync:
    - external_id (CourtListener court slug) first
    - case-insensitive name second, for rows created before linkage
    """
    __tablename__ = "courts"

    id = Column(IdType, primary_key=True, autoincrement=True)

    name = Column(String(255), nullable=False, index=True)
    type = Column(Enum(CourtType), nullable=False, default=CourtType.STATE)
    jurisdiction = Column(String(10), nullable=True, index=True)
    external_id = Column(String(100), nullable=True, unique=True)
    website = Column(String(500), nullable=True)
    address = Column(Text, nullable=True)

    # Provenance: source tag, run id, fetch timestamp, raw payload
    provenance = Column(JSONType, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_courts_jurisdiction_name", "jurisdiction", "name"),
    )
