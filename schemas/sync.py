"""
Pydantic schemas for sync options and run results.

Options arrive from queued job rows (JSON), API requests and the CLI, so
every field has a default and unknown keys are ignored. Results are
persisted on sync_logs and sync_queue rows via model_dump().
"""

from pydantic import BaseModel, Field
from typing import Optional, List


# ============================================================================
# Options
# ============================================================================

class CourtSyncOptions(BaseModel):
    """Options for a court directory sync"""
    batch_size: int = Field(20, ge=1)
    jurisdiction: Optional[str] = None
    force_refresh: bool = False
    max_courts: int = Field(2000, ge=1)
    ordering: str = "id"
    staleness_days: int = Field(7, ge=0)
    page_pause_seconds: float = Field(1.0, ge=0)
    batch_pause_seconds: float = Field(1.0, ge=0)

    class Config:
        extra = "ignore"


class JudgeSyncOptions(BaseModel):
    """Options for a judge profile refresh"""
    batch_size: int = Field(10, ge=1)
    jurisdiction: Optional[str] = None
    force_refresh: bool = False
    judge_ids: Optional[List[int]] = None
    max_judges: int = Field(100, ge=1)
    staleness_days: int = Field(7, ge=0)
    batch_pause_seconds: float = Field(2.0, ge=0)

    class Config:
        extra = "ignore"


class DecisionSyncOptions(BaseModel):
    """Options for a decision (and optionally docket filing) sync"""
    batch_size: int = Field(5, ge=1)
    jurisdiction: Optional[str] = None
    days_since_last: Optional[int] = Field(None, ge=0)
    judge_ids: Optional[List[int]] = None
    max_decisions_per_judge: int = Field(150, ge=0)
    years_back: Optional[int] = Field(None, ge=0)
    include_dockets: bool = False
    max_filings_per_judge: int = Field(300, ge=0)
    filing_years_back: Optional[int] = Field(None, ge=0)
    filing_days_since_last: Optional[int] = Field(None, ge=0)
    max_judges: int = Field(100, ge=1)
    batch_pause_seconds: float = Field(3.0, ge=0)
    judge_pause_seconds: float = Field(1.0, ge=0)

    class Config:
        extra = "ignore"


class FullSyncOptions(BaseModel):
    """Court → judge → decision chain, each stage with its own options"""
    court: CourtSyncOptions = Field(default_factory=CourtSyncOptions)
    judge: JudgeSyncOptions = Field(default_factory=JudgeSyncOptions)
    decision: DecisionSyncOptions = Field(default_factory=DecisionSyncOptions)

    class Config:
        extra = "ignore"


# ============================================================================
# Results
# ============================================================================

class SyncResult(BaseModel):
    """
    Common run outcome.

    success is False whenever errors were recorded. aborted means the run
    stopped before processing its candidates (the queue fails the job);
    retryable tells the queue whether the abort is worth rescheduling.
    """
    success: bool = True
    errors: List[str] = Field(default_factory=list)
    duration_ms: int = 0
    aborted: bool = False
    retryable: bool = False


class CourtSyncResult(SyncResult):
    courts_processed: int = 0
    courts_created: int = 0
    courts_updated: int = 0
    courts_skipped: int = 0


class JudgeSyncResult(SyncResult):
    judges_processed: int = 0
    judges_updated: int = 0
    judges_skipped: int = 0


class DecisionSyncResult(SyncResult):
    judges_processed: int = 0
    decisions_processed: int = 0
    decisions_created: int = 0
    decisions_updated: int = 0
    duplicates_skipped: int = 0
    conflicts_flagged: int = 0
    filings_processed: int = 0
    filings_created: int = 0
    filings_updated: int = 0
    filings_skipped: int = 0


class FullSyncResult(SyncResult):
    court: Optional[CourtSyncResult] = None
    judge: Optional[JudgeSyncResult] = None
    decision: Optional[DecisionSyncResult] = None


class CleanupResult(SyncResult):
    jobs_removed: int = 0
