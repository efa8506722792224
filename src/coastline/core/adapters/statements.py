"""Statement execution shared by the relational adapter and its transactions.

Both ``RelationalAdapter`` (pooled connections) and ``TransactionContext``
(one pinned connection) compile operations the same way; they differ only
in where a compiled statement runs.  ``SqlStatementAdapter`` implements
the whole operation set on top of one abstract ``_fetch()``.
"""

from __future__ import annotations

import re
from abc import abstractmethod
from collections.abc import Mapping
from typing import Any

import asyncpg

from coastline.core.errors import (
    BackendError,
    BackendTimeoutError,
    CoastlineError,
    ConstraintViolationError,
    DatabaseConnectionError,
    PermissionDeniedError,
    StorageError,
)
from coastline.core.filters import SelectOptions, parse_where
from coastline.core.result import (
    DeleteResult,
    FileDeleteResult,
    FileResult,
    InsertResult,
    QueryResult,
    Row,
    UpdateResult,
)
from coastline.core.sql import (
    CompiledQuery,
    compile_count,
    compile_delete,
    compile_insert,
    compile_select,
    compile_update,
)

from .base import BackendAdapter, Capabilities
from .types import BackendKind, RelationalConfig


def classify_relational_error(exc: BaseException) -> CoastlineError:
    """Map an asyncpg/driver exception onto the error taxonomy."""
    if isinstance(exc, CoastlineError):
        return exc
    if isinstance(exc, asyncpg.IntegrityConstraintViolationError):
        return ConstraintViolationError(str(exc), code=exc.sqlstate, cause=exc)
    if isinstance(exc, asyncpg.InsufficientPrivilegeError):
        return PermissionDeniedError(str(exc), code=exc.sqlstate, cause=exc)
    if isinstance(exc, asyncpg.QueryCanceledError):
        return BackendTimeoutError(str(exc), code=exc.sqlstate, cause=exc)
    if isinstance(exc, asyncpg.PostgresConnectionError):
        return DatabaseConnectionError(f"Relational backend connection lost: {exc}", cause=exc).with_context(
            sqlstate=exc.sqlstate
        )
    if isinstance(exc, asyncpg.PostgresError):
        return BackendError(str(exc), code=exc.sqlstate, cause=exc)
    if isinstance(exc, TimeoutError):
        return BackendTimeoutError(f"Statement timed out: {exc}", cause=exc)
    if isinstance(exc, OSError):
        return DatabaseConnectionError(f"Relational backend unreachable: {exc}", cause=exc)
    return BackendError(str(exc) or type(exc).__name__, cause=exc)


_ARGUMENT_RE = re.compile(r"query argument \$(\d+)")


def unmatchable_filter(exc: BaseException, first_filter_arg: int = 1, *, server_side: bool = True) -> bool:
    """
    Whether ``exc`` reports a WHERE value its column type cannot hold.

    Such a value matches no row (``'does-not-exist'`` against a ``uuid``
    key).  asyncpg rejects most of these while encoding, naming the
    ``$n`` argument; a value parsed as text by the server (an enum label,
    say) comes back as SQLSTATE 22P02 without one.  Arguments numbered
    below ``first_filter_arg`` are written values, not filters.
    """
    if not isinstance(exc, asyncpg.DataError):
        return False
    match = _ARGUMENT_RE.search(str(exc))
    if match is not None:
        return int(match.group(1)) >= first_filter_arg
    return server_side and first_filter_arg == 1 and isinstance(exc, asyncpg.InvalidTextRepresentationError)


class SqlStatementAdapter(BackendAdapter):
    """Operation set for a PostgreSQL backend, parameterized by ``_fetch``."""

    kind = BackendKind.RELATIONAL
    capabilities = Capabilities(atomic_transactions=True, join_hints=False)

    def __init__(self, config: RelationalConfig):
        self._config = config

    @property
    def config(self) -> RelationalConfig:
        return self._config

    @abstractmethod
    async def _fetch(self, query: CompiledQuery) -> list[Row]:
        """Run one compiled statement and return its rows as dicts."""
        ...

    def _unavailable(self, operation: str, table: str | None = None) -> CoastlineError | None:
        """Return an error when statements cannot run right now."""
        if not self.is_connected:
            return self._not_connected(operation, table)
        return None

    def _in_transaction(self) -> bool:
        """Whether statements currently run inside a server transaction."""
        return False

    def _matches_nothing(self, exc: BaseException, first_filter_arg: int = 1) -> bool:
        # A server-side error has already aborted an open transaction
        return unmatchable_filter(exc, first_filter_arg, server_side=not self._in_transaction())

    async def select(self, table: str, options: SelectOptions | None = None) -> QueryResult[Row]:
        options = options or SelectOptions()
        if error := self._unavailable("select", table):
            return QueryResult.failure(error)
        try:
            rows = await self._fetch(compile_select(table, options))
            total = None
            if options.count:
                counted = await self._fetch(compile_count(table, options.where))
                total = int(counted[0]["count"]) if counted else 0
        except Exception as e:
            if self._matches_nothing(e):
                return QueryResult.success([], count=0 if options.count else None)
            return QueryResult.failure(self._failed(classify_relational_error(e), "select", table))
        return QueryResult.success(rows, count=total)

    async def insert(self, table: str, data: Mapping[str, Any]) -> InsertResult[Row]:
        if error := self._unavailable("insert", table):
            return InsertResult.failure(error)
        try:
            rows = await self._fetch(compile_insert(table, data))
        except Exception as e:
            return InsertResult.failure(self._failed(classify_relational_error(e), "insert", table))
        if not rows:
            return InsertResult.failure(self._failed(BackendError(f"Insert into {table!r} returned no row"), "insert", table))
        return InsertResult.success(rows[0])

    async def update(
        self,
        table: str,
        data: Mapping[str, Any],
        where: Mapping[str, Any] | None,
        *,
        allow_all: bool = False,
    ) -> UpdateResult[Row]:
        if error := self._unavailable("update", table):
            return UpdateResult.failure(error)
        try:
            parsed = parse_where(where)
            if refused := self._unfiltered("update", table, parsed, allow_all):
                raise refused
            rows = await self._fetch(compile_update(table, data, parsed))
        except Exception as e:
            if self._matches_nothing(e, first_filter_arg=len(data) + 1):
                return UpdateResult.success([])
            return UpdateResult.failure(self._failed(classify_relational_error(e), "update", table))
        return UpdateResult.success(rows)

    async def delete(
        self,
        table: str,
        where: Mapping[str, Any] | None,
        *,
        allow_all: bool = False,
    ) -> DeleteResult:
        if error := self._unavailable("delete", table):
            return DeleteResult.failure(error)
        try:
            parsed = parse_where(where)
            if refused := self._unfiltered("delete", table, parsed, allow_all):
                raise refused
            rows = await self._fetch(compile_delete(table, parsed))
        except Exception as e:
            if self._matches_nothing(e):
                return DeleteResult.success([])
            return DeleteResult.failure(self._failed(classify_relational_error(e), "delete", table))
        return DeleteResult.success(rows)

    async def query(self, sql: str, params: list[Any] | tuple[Any, ...] | None = None) -> QueryResult[Row]:
        if error := self._unavailable("query"):
            return QueryResult.failure(error)
        try:
            rows = await self._fetch(CompiledQuery(sql, tuple(params or ())))
        except Exception as e:
            return QueryResult.failure(self._failed(classify_relational_error(e), "query"))
        return QueryResult.success(rows)

    # ------------------------------------------------------------------ #
    # Files: a metadata row per object plus a conventional URL
    # ------------------------------------------------------------------ #

    @staticmethod
    def storage_path(bucket: str, path: str) -> str:
        return f"{bucket}/{path.lstrip('/')}"

    async def upload_file(
        self,
        bucket: str,
        path: str,
        content: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> FileResult:
        if error := self._unavailable("upload_file"):
            return FileResult(error=error)
        metadata = dict(metadata or {})
        filename = path.rsplit("/", 1)[-1]
        url = self.get_file_url(bucket, path)
        row = {
            "filename": filename,
            "original_name": metadata.get("original_name") or filename,
            "file_type": metadata.get("content_type"),
            "file_size": len(content),
            "storage_path": self.storage_path(bucket, path),
            "public_url": url,
            "alt_text": metadata.get("alt_text"),
            "caption": metadata.get("caption"),
            "metadata": metadata,
            "uploaded_by": metadata.get("uploaded_by"),
        }
        result = await self.insert(self._config.media_table, row)
        if result.error is not None:
            return FileResult(error=self._storage_error(result.error, bucket, path))
        return FileResult(url=url)

    async def delete_file(self, bucket: str, path: str) -> FileDeleteResult:
        if error := self._unavailable("delete_file"):
            return FileDeleteResult(error=error)
        result = await self.delete(self._config.media_table, {"storage_path": self.storage_path(bucket, path)})
        if result.error is not None:
            return FileDeleteResult(error=self._storage_error(result.error, bucket, path))
        return FileDeleteResult()

    def get_file_url(self, bucket: str, path: str) -> str:
        return self._config.public_url(bucket, path)

    def _storage_error(self, error: CoastlineError, bucket: str, path: str) -> CoastlineError:
        if isinstance(error, (DatabaseConnectionError, BackendTimeoutError, StorageError)):
            return error.with_context(bucket=bucket, path=path)
        return StorageError(f"Media metadata write failed: {error.message}", cause=error).with_context(
            backend=self.kind.value, table=self._config.media_table, bucket=bucket, path=path
        )


__all__ = [
    "SqlStatementAdapter",
    "classify_relational_error",
    "unmatchable_filter",
]
