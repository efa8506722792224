"""
coastline.core — the multi-backend data-access layer.

Re-exports the pieces most callers need: the facade, select options, the
result envelopes and the error taxonomy.
"""

from coastline.core.errors import (
    BackendError,
    BackendTimeoutError,
    CoastlineError,
    ConfigError,
    ConstraintViolationError,
    DatabaseConnectionError,
    ErrorCategory,
    MissingConfigError,
    PermissionDeniedError,
    StorageError,
    TransactionAbortError,
    TranslationError,
)
from coastline.core.filters import DEFAULT_PAGE_SIZE, SelectOptions
from coastline.core.result import (
    DeleteResult,
    FileDeleteResult,
    FileResult,
    InsertResult,
    OperationResult,
    QueryResult,
    UpdateResult,
)
from coastline.core.service import BackendService, get_backend_service, reset_backend_service

__all__ = [
    # Facade
    "BackendService",
    "get_backend_service",
    "reset_backend_service",
    # Options
    "SelectOptions",
    "DEFAULT_PAGE_SIZE",
    # Results
    "OperationResult",
    "QueryResult",
    "InsertResult",
    "UpdateResult",
    "DeleteResult",
    "FileResult",
    "FileDeleteResult",
    # Errors
    "CoastlineError",
    "ErrorCategory",
    "DatabaseConnectionError",
    "TranslationError",
    "BackendError",
    "ConstraintViolationError",
    "PermissionDeniedError",
    "BackendTimeoutError",
    "StorageError",
    "TransactionAbortError",
    "ConfigError",
    "MissingConfigError",
]
