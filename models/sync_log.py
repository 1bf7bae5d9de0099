from sqlalchemy import Column, String, Integer, DateTime, Text, Enum, Index
from models.base import Base, SyncLogStatus, IdType, JSONType
from core.clock import utcnow


class SyncLog(Base):
    """
    Audit trail of sync runs.

    One row per manager invocation, inserted as STARTED and updated on
    completion or failure. Independent of the queue: direct CLI and API
    runs are logged too.
    """
    __tablename__ = "sync_logs"

    id = Column(IdType, primary_key=True, autoincrement=True)
    run_id = Column(String(64), unique=True, nullable=False, index=True)

    sync_type = Column(String(20), nullable=False, index=True)
    status = Column(Enum(SyncLogStatus), nullable=False, default=SyncLogStatus.STARTED)

    options = Column(JSONType, nullable=True)
    result = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_sync_logs_type_started", "sync_type", "started_at"),
    )
