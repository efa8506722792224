"""
Operation result envelopes returned by every backend operation.

Adapters never raise for backend-reported failures.  Each operation returns
one of the envelopes below with exactly one of ``data`` / ``error``
meaningfully populated, so callers branch on ``result.ok`` instead of
wrapping every call in ``try``/``except``.

Manifesto:
    - **Failures are values:** a rejected insert is ordinary control flow
    - **One shape per operation:** select, insert, update and delete each
      return a named envelope so signatures document themselves
    - **Explicit extraction:** ``unwrap()`` raises the carried error,
      ``unwrap_or()`` never does

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                 OperationResult[T]                        │
        │        data: T | None   error   count                     │
        ├───────────────┬───────────────┬──────────────────────────┤
        │ QueryResult   │ InsertResult  │ UpdateResult/DeleteResult │
        │ list[row]     │ row           │ list[row] + count         │
        ├───────────────┴───────────────┴──────────────────────────┤
        │ FileResult (url, error)      FileDeleteResult (error)     │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> result = QueryResult.success([{"id": 1}])
    >>> result.ok, result.count
    (True, 1)
    >>> QueryResult.failure(TranslationError("bad")).unwrap_or([])
    []

Tags:
    result-pattern, error-handling, coastline, data-access

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from coastline.core.errors import CoastlineError

T = TypeVar("T")
U = TypeVar("U")

Row = dict[str, Any]


@dataclass(frozen=True, slots=True)
class OperationResult(Generic[T]):
    """Envelope for a single backend operation.

    Attributes:
        data: The payload (``None`` on failure, and on a not-found lookup).
        error: The failure (``None`` on success).
        count: Row count where the operation has one.
    """

    data: T | None = None
    error: CoastlineError | None = None
    count: int | None = None

    @classmethod
    def success(cls, data: T | None, count: int | None = None) -> Any:
        """Create a successful result."""
        return cls(data=data, error=None, count=count)

    @classmethod
    def failure(cls, error: CoastlineError) -> Any:
        """Create a failed result."""
        return cls(data=None, error=error, count=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T | None:
        """Return ``data`` or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.data

    def unwrap_or(self, default: T) -> T:
        """Return ``data`` on success (when present), else ``default``."""
        if self.error is not None or self.data is None:
            return default
        return self.data

    def map(self, f: Callable[[T], U]) -> OperationResult[U]:
        """Transform ``data`` on success; errors and ``None`` pass through."""
        if self.error is not None:
            return OperationResult(error=self.error)
        if self.data is None:
            return OperationResult(data=None, count=self.count)
        return OperationResult(data=f(self.data), count=self.count)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict (for JSON output)."""
        d: dict[str, Any] = {"ok": self.ok, "data": self.data}
        if self.count is not None:
            d["count"] = self.count
        if self.error is not None:
            d["error"] = self.error.to_dict()
        return d


@dataclass(frozen=True, slots=True)
class QueryResult(OperationResult[list[T]]):
    """Rows returned by ``select`` or ``query``."""

    @classmethod
    def success(cls, data: list[T] | None, count: int | None = None) -> QueryResult[T]:
        rows = data if data is not None else []
        return cls(data=rows, error=None, count=len(rows) if count is None else count)


@dataclass(frozen=True, slots=True)
class InsertResult(OperationResult[T]):
    """The persisted row, including server-generated fields."""


@dataclass(frozen=True, slots=True)
class UpdateResult(OperationResult[list[T]]):
    """Rows as they are after the update, and how many changed."""

    @classmethod
    def success(cls, data: list[T] | None, count: int | None = None) -> UpdateResult[T]:
        rows = data if data is not None else []
        return cls(data=rows, error=None, count=len(rows) if count is None else count)


@dataclass(frozen=True, slots=True)
class DeleteResult(OperationResult[list[Row]]):
    """Rows removed by ``delete``; ``count`` is zero when nothing matched."""

    @classmethod
    def success(cls, data: list[Row] | None, count: int | None = None) -> DeleteResult:
        rows = data if data is not None else []
        return cls(data=rows, error=None, count=len(rows) if count is None else count)


@dataclass(frozen=True, slots=True)
class FileResult:
    """Outcome of ``upload_file``: the public URL or an error."""

    url: str | None = None
    error: CoastlineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"ok": self.ok, "url": self.url}
        if self.error is not None:
            d["error"] = self.error.to_dict()
        return d


@dataclass(frozen=True, slots=True)
class FileDeleteResult:
    """Outcome of ``delete_file``."""

    error: CoastlineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "Row",
    "OperationResult",
    "QueryResult",
    "InsertResult",
    "UpdateResult",
    "DeleteResult",
    "FileResult",
    "FileDeleteResult",
]
