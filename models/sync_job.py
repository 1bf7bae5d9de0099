from sqlalchemy import Column, String, Integer, DateTime, Text, Enum, Index
from models.base import Base, SyncJobType, SyncJobStatus, JSONType
from core.clock import utcnow
import uuid


def _job_id() -> str:
    return str(uuid.uuid4())


class SyncJob(Base):
    """
    Persistent work item for the sync queue.

    Claim order: highest priority first, then earliest scheduled_for, then
    earliest created_at. Failed jobs with retries left go back to PENDING
    with an exponentially later scheduled_for.
    """
    __tablename__ = "sync_queue"

    id = Column(String(36), primary_key=True, default=_job_id)

    type = Column(Enum(SyncJobType), nullable=False, index=True)
    status = Column(Enum(SyncJobStatus), nullable=False, default=SyncJobStatus.PENDING)
    options = Column(JSONType, nullable=True)
    priority = Column(Integer, nullable=False, default=0)

    scheduled_for = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    result = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)

    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_sync_queue_status_scheduled", "status", "scheduled_for"),
        Index("idx_sync_queue_priority", "priority"),
    )
