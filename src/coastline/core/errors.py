"""
Structured error types for the coastline data-access layer.

Every failure the layer can report is a ``CoastlineError`` subclass carrying
a category, a retryable flag, structured context and the chained driver
exception.  Adapters never raise these for backend-reported failures: they
are placed in the ``error`` field of an operation result.  Only
``connect()``, configuration loading and ``transaction()`` raise.

Manifesto:
    - **Typed taxonomy:** callers branch on the error class, not on strings
    - **Failures are values:** adapters return errors instead of raising
    - **Rich context:** backend, table and operation travel with the error
    - **Error chaining:** the original driver exception is kept as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       CoastlineError                          │
        │        (category, retryable, context, cause)                  │
        ├──────────────────────────────────────────────────────────────┤
        │  DatabaseConnectionError   TranslationError    ConfigError    │
        │  (DATABASE, retryable)     (VALIDATION)        (CONFIG)       │
        │                                                  │            │
        │  BackendError              TransactionAbortError MissingConfig│
        │  (DATABASE)                (TRANSACTION)       InvalidConfig  │
        │       │                                                       │
        │  ConstraintViolationError  PermissionDeniedError              │
        │  BackendTimeoutError       StorageError                       │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = TranslationError("unknown operator 'like'")
    >>> error.retryable
    False
    >>> error.with_context(table="services", operation="select").to_dict()["context"]
    {'table': 'services', 'operation': 'select'}

Guardrails:
    ❌ DON'T: raise BackendError out of an adapter operation
    ✅ DO: return it in the result's ``error`` field

    ❌ DON'T: drop the driver exception
    ✅ DO: pass it as ``cause=``

Tags:
    error-handling, exception-hierarchy, error-context, coastline,
    data-access

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # DNS, TLS, refused connections
    DATABASE = "DATABASE"         # Backend rejected or failed the statement
    STORAGE = "STORAGE"           # Object storage / media metadata
    VALIDATION = "VALIDATION"     # Malformed filter, order or payload shape
    CONFIG = "CONFIG"             # Missing or invalid settings
    AUTH = "AUTH"                 # Permission denied by the backend
    TRANSACTION = "TRANSACTION"   # Unit of work aborted
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        backend: Backend kind that produced the error (``platform``/``relational``)
        table: Table the operation addressed
        operation: Contract operation name (``select``, ``insert``, ...)
        metadata: Additional key-value pairs (driver codes, hints)
    """

    backend: str | None = None
    table: str | None = None
    operation: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("backend", "table", "operation"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CoastlineError(Exception):
    """
    Base exception for all data-access errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    most call sites only pass a message and, where there is one, the
    underlying driver exception.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CoastlineError:
        """
        Add context to this error (fluent API).

        Usage:
            return QueryResult.failure(
                BackendError("insert failed").with_context(table="bookings")
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONNECTION ERRORS
# =============================================================================


class DatabaseConnectionError(CoastlineError):
    """The backend could not be reached or refused the credentials.

    Raised by ``connect()``; returned as a value by every other operation
    (for example when the host becomes unreachable mid-session).  Never
    retried inside the adapter.
    """

    default_category = ErrorCategory.DATABASE
    default_retryable = True


# =============================================================================
# TRANSLATION ERRORS (caller bugs)
# =============================================================================


class TranslationError(CoastlineError):
    """A ``where``/``order_by``/projection shape the layer cannot translate."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


# =============================================================================
# BACKEND ERRORS
# =============================================================================


class BackendError(CoastlineError):
    """The physical backend rejected or failed the operation."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False

    def __init__(self, message: str, *, code: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.code is not None:
            result["code"] = self.code
        return result


class ConstraintViolationError(BackendError):
    """Unique, foreign-key, not-null or check constraint violation."""

    pass


class PermissionDeniedError(BackendError):
    """Row-level security or privilege check refused the operation."""

    default_category = ErrorCategory.AUTH


class BackendTimeoutError(BackendError):
    """The backend did not answer within the configured timeout."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class StorageError(BackendError):
    """Object storage (bucket or media metadata) failure."""

    default_category = ErrorCategory.STORAGE


# =============================================================================
# TRANSACTION ERRORS
# =============================================================================


class TransactionAbortError(CoastlineError):
    """A unit of work was rolled back because an operation inside it failed.

    Exceptions raised by the transaction callback itself are re-raised
    unchanged; this type is used when the failure arrived as an error value
    (an operation inside the context returned one, or the callback returned
    a failed result) or when the commit itself failed.
    """

    default_category = ErrorCategory.TRANSACTION
    default_retryable = False


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(CoastlineError):
    """Configuration error. Fatal at startup."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """A required setting is absent."""

    def __init__(self, key: str, message: str | None = None):
        super().__init__(message or f"Missing required configuration: {key}")
        self.key = key


class InvalidConfigError(ConfigError):
    """A setting has an unusable value."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        super().__init__(message or f"Invalid configuration value for {key}: {value!r}")
        self.key = key
        self.value = value


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, CoastlineError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, CoastlineError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CoastlineError",
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
    "InvalidConfigError",
    "is_retryable",
    "categorize_error",
]
