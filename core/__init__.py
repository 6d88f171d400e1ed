"""
Core utilities and configuration for the catalog ingestion worker.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    retry: Bounded exponential backoff for transient failures

Usage:
    from core.config import settings
    from core.database import create_engine_from_settings, create_session_factory
    from core.exceptions import FetchError, HeaderMismatchError
    from core.logging import setup_logging
    from core.retry import with_retry

Example:
    setup_logging()

    engine = create_engine_from_settings()
    session_maker = create_session_factory(engine)
    async with session_maker() as session:
        ...
    await engine.dispose()
"""

__all__ = [
    "settings",
    "create_engine_from_settings",
    "create_session_factory",
    "get_session",
    "setup_logging",
    "with_retry",
    # Exceptions
    "IngestionError",
    "InputFormatError",
    "MessageFormatError",
    "InvalidObjectKeyError",
    "HeaderMismatchError",
    "NoValidRowsError",
    "FetchError",
    "ObjectNotFoundError",
    "ObjectAccessDeniedError",
    "StagingError",
    "BatchWriteError",
    "LoadError",
    "DatabaseError",
    "PartitionError",
    "BatchLoadError",
    "RetryableError",
    "NonRetryableError",
    "TransientInfraError",
    "NetworkError",
    "DatabaseConnectionError",
    "DatabaseAuthorizationError",
]
