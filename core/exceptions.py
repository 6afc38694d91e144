"""
Custom exceptions for the price sync pipeline with structured error context.

Each exception carries context information for debugging and for the
per-item log line the runner emits when an item ends up missing.

Exception Hierarchy:
    PriceSyncException (base)
    ├── FetchError
    │   ├── NetworkError            (retryable: 5xx, timeout, transport)
    │   ├── RateLimitError          (retryable: HTTP 429)
    │   ├── AuthenticationError     (terminal: 401/403)
    │   ├── ResourceNotFoundError   (terminal: 404)
    │   └── ClientRequestError      (terminal: other 4xx, bad payloads)
    ├── PersistenceError
    │   ├── DatabaseError
    │   ├── DatabaseConnectionError (retryable)
    │   └── SerializationError      (retryable: serialization/deadlock)
    ├── SchemaMismatchError
    ├── ConfigurationError
    └── RetryableError / NonRetryableError (mixins)

Score rejects (stopword/presale) and empty samples are pipeline outcomes,
not exceptions.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class PriceSyncException(Exception):
    """
    Base exception for all price sync errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (item, url, table, ...)
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
        self.timestamp = datetime.now(timezone.utc)

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
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

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

class RetryableError(PriceSyncException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Temporary database connection issues
    - Service unavailable (HTTP 5xx)
    """
    pass


class NonRetryableError(PriceSyncException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Other client errors (HTTP 4xx except 429)
    - Schema and configuration problems
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(PriceSyncException):
    """
    Base exception for listing fetch failures.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - query: The search query being fetched
    """
    pass


class NetworkError(RetryableError, FetchError):
    """Network errors, timeouts and HTTP 5xx responses."""
    pass


class RateLimitError(RetryableError, FetchError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after  # Seconds to wait before retry
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, FetchError):
    """Authentication failures (HTTP 401, 403)."""
    pass


class ResourceNotFoundError(NonRetryableError, FetchError):
    """Resource not found (HTTP 404)."""
    pass


class ClientRequestError(NonRetryableError, FetchError):
    """Other 4xx responses and unparseable payloads."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(PriceSyncException):
    """
    Base exception for snapshot write failures.

    Context should include:
        - operation: UPSERT, UPDATE or INSERT
        - table_name: Destination table
        - key: The (item_id, category, segment) being written
    """
    pass


class DatabaseError(NonRetryableError, PersistenceError):
    """Database errors that are not known to be transient."""
    pass


class DatabaseConnectionError(RetryableError, PersistenceError):
    """Lost connections, server shutdowns, exhausted connection slots."""
    pass


class SerializationError(RetryableError, PersistenceError):
    """Serialization failures and deadlocks."""
    pass


# ============================================================================
# Setup Errors
# ============================================================================

class SchemaMismatchError(NonRetryableError, PersistenceError):
    """
    Destination table lacks any recognized id column.

    Context should include:
        - table_name: The table that was profiled
        - columns: The columns that were found
    """
    pass


class ConfigurationError(NonRetryableError):
    """Missing or invalid configuration; aborts the run before scheduling."""
    pass
