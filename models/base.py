from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on SQLite (tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer(), "sqlite")


# ============================================================================
# ENUMS
# ============================================================================

class CourtType(str, enum.Enum):
    """Court level"""
    FEDERAL = "federal"
    STATE = "state"


class CaseStatus(str, enum.Enum):
    """Case lifecycle status"""
    PENDING = "pending"
    DECIDED = "decided"
    SETTLED = "settled"
    DISMISSED = "dismissed"


class OutcomeCategory(str, enum.Enum):
    """Category of a normalized outcome label"""
    JUDGMENT_PLAINTIFF = "judgment_plaintiff"
    JUDGMENT_DEFENDANT = "judgment_defendant"
    DISMISSED = "dismissed"
    SETTLED = "settled"
    VACATED = "vacated"
    REMANDED = "remanded"
    PENDING = "pending"
    CLOSED = "closed"
    OTHER = "other"


class SyncJobType(str, enum.Enum):
    """Work a queued job dispatches to"""
    COURT = "court"
    JUDGE = "judge"
    DECISION = "decision"
    FULL = "full"
    CLEANUP = "cleanup"


class SyncJobStatus(str, enum.Enum):
    """Queued job status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncLogStatus(str, enum.Enum):
    """Sync run status"""
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
