"""
Pydantic schemas for data validation and serialization.

Schemas:
    courtlistener: Upstream payloads (courts, opinions, dockets, opinion detail)
    sync: Sync options and run results shared by managers, queue and API
    api: API endpoint request/response schemas

Usage:
    from schemas.sync import DecisionSyncOptions, DecisionSyncResult
    from schemas.courtlistener import OpinionSummary, Docket
    from schemas.api import HealthCheckResponse, EnqueueJobRequest

Example:
    # Job options arrive as JSON; unknown keys are ignored
    options = DecisionSyncOptions.model_validate({"days_since_last": 1})
    assert options.batch_size == 5
"""

__all__ = [
    "CourtRecord",
    "OpinionSummary",
    "Docket",
    "OpinionDetail",
    "CourtSyncOptions",
    "JudgeSyncOptions",
    "DecisionSyncOptions",
    "FullSyncOptions",
    "SyncResult",
    "CourtSyncResult",
    "JudgeSyncResult",
    "DecisionSyncResult",
    "FullSyncResult",
    "CleanupResult",
    "HealthCheckResponse",
    "EnqueueJobRequest",
    "QueueStatsResponse",
    "SyncStatusResponse",
]
