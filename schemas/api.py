"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from core.clock import utcnow
from models.base import SyncJobType


# ============================================================================
# Sync Run Schemas
# ============================================================================

class SyncRunInfo(BaseModel):
    """Latest sync_logs entry for one sync type"""
    run_id: str
    sync_type: str
    status: str
    started_at: Optional[datetime]
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        """Build from a sync_logs row, unwrapping the status enum"""
        return cls(
            run_id=row.run_id,
            sync_type=row.sync_type,
            status=getattr(row.status, "value", row.status),
            started_at=row.started_at,
            completed_at=row.completed_at,
            duration_ms=row.duration_ms,
            error_message=row.error_message,
        )

    class Config:
        from_attributes = True


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    latest_runs: List[SyncRunInfo] = Field(default_factory=list)
    total_sync_types: int = 0
    failed_sync_types: int = 0
    pending_jobs: int = 0
    # Declared last so the validator sees the fields above
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        failed = values.get("failed_sync_types", 0)
        total = values.get("total_sync_types", 0)

        if total == 0:
            return "healthy"  # Nothing has synced yet

        if failed == 0:
            return "healthy"
        elif failed < total:
            return "degraded"
        else:
            return "unhealthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "degraded",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "total_sync_types": 2,
                "failed_sync_types": 1,
                "pending_jobs": 3,
                "latest_runs": [
                    {
                        "run_id": "decision-sync-3f9a1c2b7d4e",
                        "sync_type": "decision",
                        "status": "failed",
                        "started_at": "2024-01-15T02:00:00Z",
                        "completed_at": "2024-01-15T02:14:03Z",
                        "duration_ms": 843112,
                        "error_message": "Sync failed: database is locked"
                    }
                ]
            }
        }


# ============================================================================
# Queue Schemas
# ============================================================================

class EnqueueJobRequest(BaseModel):
    """Request body for POST /sync/queue"""
    type: SyncJobType
    options: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    scheduled_for: Optional[datetime] = None
    max_retries: int = Field(3, ge=0, le=10)

    @validator("scheduled_for")
    def drop_timezone(cls, v):
        # Stored timestamps are naive UTC
        if v is not None and v.tzinfo is not None:
            return v.replace(tzinfo=None) - v.utcoffset()
        return v


class EnqueueJobResponse(BaseModel):
    job_id: str
    type: SyncJobType
    priority: int
    status: str = "pending"

    class Config:
        use_enum_values = True


class QueueStatsResponse(BaseModel):
    """Job counts by status, plus pending counts by type"""
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    total: int = 0
    pending_by_type: Dict[str, int] = Field(default_factory=dict)
    next_scheduled_for: Optional[datetime] = None


class SyncStatusResponse(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    recent_runs: List[SyncRunInfo] = Field(default_factory=list)
    queue: QueueStatsResponse


# ============================================================================
# Sync Trigger Schemas
# ============================================================================

class SyncRunResponse(BaseModel):
    """Outcome of a sync run triggered over HTTP"""
    success: bool
    sync_type: str
    data: Dict[str, Any]
    errors: List[str] = Field(default_factory=list)
    api_duration_ms: int
    timestamp: datetime = Field(default_factory=utcnow)


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Upstream client unavailable",
                "detail": "CourtListener API token is not configured",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
