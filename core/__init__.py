"""
Core utilities and configuration for the collectibles price sync.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    retry: Retry policy shared by HTTP fetches and database writes
    rate_limit: Per-host request spacing

Usage:
    from core.config import settings
    from core.database import create_engine
    from core.exceptions import NetworkError, SchemaMismatchError
    from core.logging import setup_logging
    from core.retry import RetryPolicy
    from core.rate_limit import RateLimiter
"""

__all__ = [
    "settings",
    "create_engine",
    "create_session_maker",
    "setup_logging",
    "RetryPolicy",
    "RateLimiter",
    # Exceptions
    "PriceSyncException",
    "RetryableError",
    "NonRetryableError",
    "FetchError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "ClientRequestError",
    "PersistenceError",
    "DatabaseError",
    "DatabaseConnectionError",
    "SerializationError",
    "SchemaMismatchError",
    "ConfigurationError",
]
