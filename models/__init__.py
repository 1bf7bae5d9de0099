"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class, shared enums and portable column types
    court: Court directory mirrored from CourtListener
    judge: Judge directory (enriched, never created, by the pipeline)
    case: Decisions and docket filings, keyed by docket hash
    opinion: Opinion full text per case
    sync_log: Audit trail of sync runs
    sync_job: Persistent sync queue

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and plain JSON elsewhere, so the test suite can run
    against SQLite.

Usage:
    from models.case import Case
    from models.base import CaseStatus, SyncJobStatus

Example:
    job = SyncJob(type=SyncJobType.COURT, options={"batch_size": 20})
    session.add(job)
    await session.commit()

Relationships:
    - Court → Judge (one-to-many via judges.court_id)
    - Judge → Case (one-to-many via cases.judge_id)
    - Case → Opinion (one-to-many via opinions.case_id)
"""

__all__ = [
    "Base",
    "CourtType",
    "CaseStatus",
    "SyncJobType",
    "SyncJobStatus",
    "SyncLogStatus",
    "Court",
    "Judge",
    "Case",
    "Opinion",
    "SyncLog",
    "SyncJob",
]
