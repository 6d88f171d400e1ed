"""
Custom exceptions for the catalog ingestion pipeline with structured error context.

Every stage raises one of these; the runner converts them into a job status
update so the failure is visible to status queries. Each exception carries a
human-readable ``message`` (what gets stored on the job) plus a ``context``
dictionary for logs.

Exception Hierarchy:
    IngestionError (base)
    ├── InputFormatError
    │   ├── MessageFormatError
    │   ├── InvalidObjectKeyError
    │   ├── HeaderMismatchError
    │   └── NoValidRowsError
    ├── FetchError
    │   ├── ObjectNotFoundError
    │   └── ObjectAccessDeniedError
    ├── StagingError
    │   └── BatchWriteError
    ├── LoadError
    │   ├── DatabaseError
    │   ├── PartitionError
    │   └── BatchLoadError
    └── RetryableError / NonRetryableError (mixins)
        ├── TransientInfraError (NetworkError, DatabaseConnectionError)
        └── DatabaseAuthorizationError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class IngestionError(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error message (stored on the job record)
        context: Additional context information (tenant, list, batch, ...)
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
        """Convert exception to dictionary for logging."""
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

class RetryableError(IngestionError):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Connection refused / reset
    - Connect or read timeouts
    - Throttling and 5xx responses from the object store
    """
    pass


class NonRetryableError(IngestionError):
    """
    Mixin for errors that must fail immediately without consuming retry budget.

    Use this for permanent errors like:
    - Malformed input (bad key, bad header)
    - Object not found
    - Access / permission errors
    """
    pass


# ============================================================================
# Input Format Errors
# ============================================================================

class InputFormatError(NonRetryableError):
    """Base exception for malformed input. Terminal, recorded as job error."""
    pass


class MessageFormatError(InputFormatError):
    """
    Queue message body is not a usable notification.

    Context should include:
        - message_id: Queue message identifier (if known)
        - body_preview: First characters of the body
    """
    pass


class InvalidObjectKeyError(InputFormatError):
    """
    Object key does not match ``{tenantId}/{listId}/{filename}``.

    ``tenant_id``/``list_id`` hold whatever could be parsed (0 otherwise) so
    the failure can still be recorded against a job row.
    Tenant 0 and list 0 are reserved for these records: a later unparseable
    key overwrites the failed job stored at the same pair.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        tenant_id: int = 0,
        list_id: int = 0
    ):
        super().__init__(message, context, original_exception)
        self.tenant_id = tenant_id
        self.list_id = list_id


class HeaderMismatchError(InputFormatError):
    """
    CSV header is not exactly ``ProductName,ImageUrl,Brand,Barcode``.

    Context should include:
        - file_path: Path to the staged CSV file
        - expected: Expected header
        - actual: Header found in the file
    """
    pass


class NoValidRowsError(InputFormatError):
    """A well-headed file produced zero rows after validation and deduplication."""
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(IngestionError):
    """
    Exception raised when the uploaded object cannot be retrieved.

    Context should include:
        - bucket: Object store bucket
        - key: Object key
        - error_code: Object store error code (if available)
    """
    pass


class ObjectNotFoundError(NonRetryableError, FetchError):
    """Object does not exist (``NoSuchKey`` / 404)."""
    pass


class ObjectAccessDeniedError(NonRetryableError, FetchError):
    """Access to the object was denied (``AccessDenied`` / 403)."""
    pass


# ============================================================================
# Staging Errors
# ============================================================================

class StagingError(IngestionError):
    """Base exception for local staging file failures."""
    pass


class BatchWriteError(StagingError):
    """
    Exception raised when a batch artifact cannot be written.

    Context should include:
        - batch_number: 1-based batch number
        - batch_path: Path of the artifact being written
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(IngestionError):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (INSERT, UPSERT, DDL)
        - table_name: Name of the table
    """
    pass


class PartitionError(LoadError):
    """
    Exception raised when the tenant partition cannot be ensured.

    Context should include:
        - tenant_id: Tenant whose partition was requested
        - partition_name: Physical table name
    """
    pass


class BatchLoadError(LoadError):
    """
    A batch failed to load after earlier batches committed.

    ``processed_batches`` is the number of batches committed before the
    failing one, so ``processed_batches < total_batches`` on the job record.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        batch_number: int = 0,
        processed_batches: int = 0
    ):
        super().__init__(message, context, original_exception)
        self.batch_number = batch_number
        self.processed_batches = processed_batches
        self.context["batch_number"] = batch_number
        self.context["processed_batches"] = processed_batches


# ============================================================================
# Transient Infrastructure Errors
# ============================================================================

class TransientInfraError(RetryableError):
    """Connection refused, timeouts and similar. Retried, then terminal."""
    pass


class NetworkError(TransientInfraError, FetchError):
    """Network-related object store errors that should be retried."""
    pass


class DatabaseConnectionError(TransientInfraError, DatabaseError):
    """Database connection errors that should be retried."""
    pass


class DatabaseAuthorizationError(NonRetryableError, DatabaseError):
    """Authentication or permission failures against the database."""
    pass
