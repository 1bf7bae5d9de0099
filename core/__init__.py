"""
Core utilities and configuration for the CourtListener sync system.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Database engine and async session factory
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    clock: Injectable time source (now, today, sleep)

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import TransientUpstreamError, ValidationGap
    from core.logging import setup_logging

Example:
    setup_logging()

    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "async_session_maker",
    "get_session",
    "setup_logging",
    "Clock",
    "utcnow",
    # Exceptions
    "SyncException",
    "RetryableError",
    "NonRetryableError",
    "UpstreamError",
    "TransientUpstreamError",
    "NetworkError",
    "RateLimitError",
    "CircuitOpenError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "PersistenceError",
    "PersistenceConflictError",
    "DatabaseConnectionError",
    "ValidationGap",
    "ConfigurationError",
    "QueueError",
    "JobNotFoundError",
    "UnknownJobTypeError",
    "InvalidJobOptionsError",
]
