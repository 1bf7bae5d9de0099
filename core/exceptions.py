"""
Custom exceptions for the sync pipeline with structured error context.

Every exception carries a human-readable message, a context dictionary
and, optionally, the exception it wraps. The retry mixins tell the queue
whether a failed job is worth rescheduling.

Exception Hierarchy:
    SyncException (base)
    ├── UpstreamError
    │   ├── TransientUpstreamError (retryable)
    │   │   ├── NetworkError
    │   │   ├── RateLimitError
    │   │   └── CircuitOpenError
    │   ├── AuthenticationError (non-retryable)
    │   └── ResourceNotFoundError (non-retryable)
    ├── PersistenceError
    │   ├── PersistenceConflictError
    │   └── DatabaseConnectionError (retryable)
    ├── ValidationGap (non-retryable)
    ├── ConfigurationError (non-retryable)
    ├── QueueError
    │   ├── JobNotFoundError (non-retryable)
    │   ├── UnknownJobTypeError (non-retryable)
    │   └── InvalidJobOptionsError (non-retryable)
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from core.clock import utcnow


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (judge id, url, job id, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{self.original_exception}"
            )

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(SyncException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Upstream 5xx responses
    - Temporary database connection issues
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(SyncException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    - Records missing required fields
    - Missing configuration
    """
    pass


def is_retryable(error: BaseException) -> bool:
    """Anything not explicitly marked permanent is worth another attempt."""
    return not isinstance(error, NonRetryableError)


# ============================================================================
# Upstream Errors
# ============================================================================

class UpstreamError(SyncException):
    """
    Base exception for CourtListener API failures.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - attempt: Attempt number when the error was raised
    """
    pass


class TransientUpstreamError(RetryableError, UpstreamError):
    """Timeouts, 5xx and throttling. The job is retried with backoff."""
    pass


class NetworkError(TransientUpstreamError):
    """Network failures and 5xx responses after retries were exhausted."""
    pass


class RateLimitError(TransientUpstreamError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class CircuitOpenError(TransientUpstreamError):
    """Raised without touching the network while the circuit breaker is open."""
    pass


class AuthenticationError(NonRetryableError, UpstreamError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, UpstreamError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(SyncException):
    """Base exception for store failures."""
    pass


class PersistenceConflictError(PersistenceError):
    """
    Unique-constraint collision during an upsert.

    Resolved by looking the row up by its key instead of failing the record.

    Context should include:
        - table_name: Name of the table
        - conflict_fields: Fields that caused the conflict
    """
    pass


class DatabaseConnectionError(RetryableError, PersistenceError):
    """Database connection errors that should be retried."""
    pass


# ============================================================================
# Validation & Configuration Errors
# ============================================================================

class ValidationGap(NonRetryableError):
    """
    Upstream record lacks a field required to persist it.

    The record is skipped and counted, never retried.

    Context should include:
        - external_id: Upstream id of the record
        - missing_fields: Names of the absent fields
    """
    pass


class ConfigurationError(NonRetryableError):
    """Missing credentials or invalid settings. Fatal at construction time."""
    pass


# ============================================================================
# Queue Errors
# ============================================================================

class QueueError(SyncException):
    """Base exception for sync queue failures."""
    pass


class JobNotFoundError(NonRetryableError, QueueError):
    """The referenced job id does not exist."""
    pass


class UnknownJobTypeError(NonRetryableError, QueueError):
    """The job carries a type no sync manager handles."""
    pass


class InvalidJobOptionsError(NonRetryableError, QueueError):
    """The job's options do not validate against its sync options schema."""
    pass
