"""Backend adapter base class.

Manifesto:
    Callers describe reads and writes in backend-neutral terms (table name,
    ``SelectOptions``, payload dicts) and receive result envelopes.  The
    abstract base class pins that contract down so the data service never
    depends on which backend is active.

Features:
    - Abstract async ``connect()``/``disconnect()`` lifecycle
    - Abstract CRUD, raw ``query()``, ``transaction()`` and file operations
    - ``capabilities`` so callers can see what a backend cannot promise
    - Shared failure logging and the not-connected guard
    - Async context-manager protocol for connection lifecycle

Tags:
    coastline, database, abstract-base, adapter-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from coastline.core.errors import CoastlineError, DatabaseConnectionError, TranslationError
from coastline.core.filters import Filter, SelectOptions
from coastline.core.logging import get_logger
from coastline.core.result import (
    DeleteResult,
    FileDeleteResult,
    FileResult,
    InsertResult,
    QueryResult,
    Row,
    UpdateResult,
)

from .types import BackendKind

logger = get_logger(__name__)

R = TypeVar("R")


@dataclass(frozen=True, slots=True)
class Capabilities:
    """What a backend can guarantee.

    Attributes:
        atomic_transactions: ``transaction()`` rolls back on failure.
        join_hints: ``SelectOptions.join`` is honoured.
    """

    atomic_transactions: bool
    join_hints: bool

    def to_dict(self) -> dict[str, bool]:
        return {"atomic_transactions": self.atomic_transactions, "join_hints": self.join_hints}


class BackendAdapter(ABC):
    """
    Abstract base class for backend adapters.

    Every operation except ``connect()`` and ``transaction()`` reports
    failure through the ``error`` field of its result instead of raising.
    """

    kind: BackendKind
    capabilities: Capabilities

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the adapter holds a live connection/session."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Establish the connection; a no-op when already connected."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the connection/session."""
        ...

    @abstractmethod
    async def select(self, table: str, options: SelectOptions | None = None) -> QueryResult[Row]:
        ...

    @abstractmethod
    async def insert(self, table: str, data: Mapping[str, Any]) -> InsertResult[Row]:
        ...

    @abstractmethod
    async def update(
        self,
        table: str,
        data: Mapping[str, Any],
        where: Mapping[str, Any] | None,
        *,
        allow_all: bool = False,
    ) -> UpdateResult[Row]:
        ...

    @abstractmethod
    async def delete(
        self,
        table: str,
        where: Mapping[str, Any] | None,
        *,
        allow_all: bool = False,
    ) -> DeleteResult:
        ...

    @abstractmethod
    async def query(self, sql: str, params: list[Any] | tuple[Any, ...] | None = None) -> QueryResult[Row]:
        """Run raw parameterized SQL (escape hatch)."""
        ...

    @abstractmethod
    async def transaction(self, fn: Callable[[BackendAdapter], Awaitable[R]]) -> R:
        """Await ``fn(ctx)`` inside a unit of work and return its value."""
        ...

    @abstractmethod
    async def upload_file(
        self,
        bucket: str,
        path: str,
        content: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> FileResult:
        ...

    @abstractmethod
    async def delete_file(self, bucket: str, path: str) -> FileDeleteResult:
        ...

    @abstractmethod
    def get_file_url(self, bucket: str, path: str) -> str:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Live round trip to the backend.  Never raises."""
        ...

    # ------------------------------------------------------------------ #
    # Shared helpers
    # ------------------------------------------------------------------ #

    def _not_connected(self, operation: str, table: str | None = None) -> DatabaseConnectionError:
        return DatabaseConnectionError(f"{self.kind.value} backend is not connected").with_context(
            backend=self.kind.value, operation=operation, table=table
        )

    def _unfiltered(self, operation: str, table: str, where: Filter, allow_all: bool) -> TranslationError | None:
        """An empty filter on a write touches every row; require opt-in."""
        if where or allow_all:
            return None
        return TranslationError(f"Refusing unfiltered {operation} on {table!r}; pass allow_all=True")

    def _failed(self, error: CoastlineError, operation: str, table: str | None = None) -> CoastlineError:
        """Attach context to ``error`` and log it."""
        error.with_context(backend=self.kind.value, operation=operation)
        if table is not None:
            error.with_context(table=table)
        logger.warning(
            "backend_operation_failed",
            backend=self.kind.value,
            operation=operation,
            table=table,
            error_type=type(error).__name__,
            error=error.message,
        )
        return error

    async def __aenter__(self) -> BackendAdapter:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()


__all__ = [
    "Capabilities",
    "BackendAdapter",
]
