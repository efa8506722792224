"""Managed data platform adapter (Supabase / PostgREST).

Manifesto:
    The platform speaks a declarative filter API over HTTP rather than
    SQL.  This adapter translates the backend-neutral ``Filter`` tree into
    chained PostgREST predicates, uses bucket storage for files and calls
    a configured stored procedure for raw SQL.

Features:
    - ``eq``/``in_``/``gt``/``gte``/``lt``/``lte``/``is_`` predicate chaining
    - Half-open ``range()`` pagination with the same page semantics as SQL
    - Join hints rendered as embedded resources (``*, users(*)``)
    - JSON-compatible payload conversion (datetimes, UUIDs, decimals)
    - Bucket storage upload/remove with conventional public URLs

Guardrails:
    ``transaction()`` cannot roll back on this backend.  It runs the
    callback directly, logs a warning on every use and advertises the gap
    through ``capabilities.atomic_transactions``.  Failed operations inside
    the callback still abort it with ``TransactionAbortError``, as on the
    relational backend, but earlier writes are not undone.

Tags:
    coastline, supabase, postgrest, adapter, storage

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Mapping
from contextvars import ContextVar
from decimal import Decimal
from typing import Any, TypeVar

import httpx
from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from pydantic import TypeAdapter
from storage3.utils import StorageException
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from coastline.core.errors import (
    BackendError,
    BackendTimeoutError,
    CoastlineError,
    ConstraintViolationError,
    DatabaseConnectionError,
    PermissionDeniedError,
    StorageError,
    TransactionAbortError,
    TranslationError,
)
from coastline.core.filters import (
    Filter,
    Operator,
    SelectOptions,
    parse_columns,
    parse_order_by,
    parse_where,
    validate_identifier,
)
from coastline.core.logging import get_logger
from coastline.core.result import (
    DeleteResult,
    FileDeleteResult,
    FileResult,
    InsertResult,
    OperationResult,
    QueryResult,
    Row,
    UpdateResult,
)

from .base import BackendAdapter, Capabilities
from .types import BackendKind, PlatformConfig

logger = get_logger(__name__)

R = TypeVar("R")

_JSON = TypeAdapter(Any)

# PostgREST / PostgreSQL error codes
_PERMISSION_CODES = {"42501", "PGRST301", "PGRST302"}
_TIMEOUT_CODES = {"57014"}
_INVALID_TEXT_CODE = "22P02"
_QUOTED_VALUE_RE = re.compile(r'"([^"]*)"')

# Failures recorded by the platform transaction running in this task
_transaction_failures: ContextVar[tuple[PlatformAdapter, list[CoastlineError]] | None] = ContextVar(
    "coastline_platform_transaction", default=None
)


def to_json_compatible(value: Any) -> Any:
    """Convert a payload value into something the JSON encoder accepts."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Mapping):
        return {str(k): to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_compatible(v) for v in value]
    return _JSON.dump_python(value, mode="json")


def classify_platform_error(exc: BaseException) -> CoastlineError:
    """Map a client/driver exception onto the error taxonomy."""
    if isinstance(exc, CoastlineError):
        return exc
    if isinstance(exc, APIError):
        code = str(exc.code or "")
        message = exc.message or str(exc)
        if code.startswith("23"):
            return ConstraintViolationError(message, code=code, cause=exc)
        if code in _PERMISSION_CODES:
            return PermissionDeniedError(message, code=code, cause=exc)
        if code in _TIMEOUT_CODES:
            return BackendTimeoutError(message, code=code, cause=exc)
        return BackendError(message, code=code or None, cause=exc)
    if isinstance(exc, httpx.TimeoutException):
        return BackendTimeoutError(f"Platform request timed out: {exc}", cause=exc)
    if isinstance(exc, httpx.TransportError):
        return DatabaseConnectionError(f"Platform unreachable: {exc}", cause=exc)
    if isinstance(exc, StorageException):
        return StorageError(str(exc), cause=exc)
    return BackendError(str(exc) or type(exc).__name__, cause=exc)


def _filter_values(where: Filter) -> set[str]:
    values: set[str] = set()
    for predicate in where:
        items = predicate.value if isinstance(predicate.value, (list, tuple)) else [predicate.value]
        values.update(str(to_json_compatible(item)) for item in items if item is not None)
    return values


def unmatchable_filter(exc: BaseException, where: Filter | None = None) -> bool:
    """
    Whether ``exc`` is PostgREST rejecting a filter value its column type
    cannot parse (SQLSTATE 22P02).  Such a value matches no row.

    With ``where`` given, the rejected literal must be one of its values;
    an update body can trip the same code.
    """
    if not isinstance(exc, APIError) or str(exc.code or "") != _INVALID_TEXT_CODE:
        return False
    if where is None:
        return True
    rejected = set(_QUOTED_VALUE_RE.findall(exc.message or ""))
    return bool(rejected & _filter_values(where))


def apply_filter(builder: Any, where: Filter) -> Any:
    """Chain one PostgREST predicate per ``Predicate``."""
    for predicate in where:
        if predicate.is_null_test:
            builder = builder.is_(predicate.column, "null")
        elif predicate.op is Operator.IN:
            builder = builder.in_(predicate.column, to_json_compatible(predicate.value))
        else:
            method = getattr(builder, predicate.op.value)
            builder = method(predicate.column, to_json_compatible(predicate.value))
    return builder


def render_projection(options: SelectOptions) -> str:
    columns = parse_columns(options.select)
    projection = "*" if columns is None else ",".join(columns)
    if options.join:
        embedded = ",".join(f"{validate_identifier(hint, 'join')}(*)" for hint in options.join)
        projection = f"{projection},{embedded}"
    return projection


class PlatformAdapter(BackendAdapter):
    """
    Supabase adapter on the async client.

    The client is created by ``connect()``; every request after that is a
    stateless HTTP call, so there is no pool to manage.
    """

    kind = BackendKind.PLATFORM
    capabilities = Capabilities(atomic_transactions=False, join_hints=True)

    def __init__(self, config: PlatformConfig):
        self._config = config
        self._client: AsyncClient | None = None

    @property
    def config(self) -> PlatformConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the platform client."""
        if self._client is not None:
            return
        options = AsyncClientOptions(
            postgrest_client_timeout=self._config.request_timeout,
            storage_client_timeout=int(self._config.request_timeout),
        )
        try:
            self._client = await acreate_client(self._config.url, self._config.api_key, options=options)
        except Exception as e:
            raise DatabaseConnectionError(
                f"Failed to connect to platform at {self._config.url}: {e}",
                cause=e,
            ).with_context(backend=self.kind.value, operation="connect") from e
        logger.info("backend_connected", backend=self.kind.value, url=self._config.url)

    async def disconnect(self) -> None:
        if self._client is None:
            return
        self._client = None
        logger.info("backend_disconnected", backend=self.kind.value)

    # ------------------------------------------------------------------ #
    # CRUD
    # ------------------------------------------------------------------ #

    async def select(self, table: str, options: SelectOptions | None = None) -> QueryResult[Row]:
        options = options or SelectOptions()
        if self._client is None:
            return QueryResult.failure(self._not_connected("select", table))
        try:
            where = parse_where(options.where)
            order = parse_order_by(options.order_by)
            page = options.page()
            count = CountMethod.exact if options.count else None

            builder = self._client.table(table).select(render_projection(options), count=count)
            builder = apply_filter(builder, where)
            for term in order:
                builder = builder.order(term.column, desc=term.descending)
            if page is not None:
                limit, offset = page
                if limit == 0:
                    # An empty half-open range cannot be expressed with range()
                    builder = builder.limit(0)
                else:
                    builder = builder.range(offset, offset + limit - 1)

            response = await builder.execute()
        except Exception as e:
            if unmatchable_filter(e):
                return QueryResult.success([], count=0 if options.count else None)
            return QueryResult.failure(self._failed(classify_platform_error(e), "select", table))

        rows = list(response.data or [])
        return QueryResult.success(rows, count=response.count if options.count else None)

    async def insert(self, table: str, data: Mapping[str, Any]) -> InsertResult[Row]:
        if self._client is None:
            return InsertResult.failure(self._not_connected("insert", table))
        try:
            response = await self._client.table(table).insert(to_json_compatible(data)).execute()
        except Exception as e:
            return InsertResult.failure(self._failed(classify_platform_error(e), "insert", table))

        rows = response.data or []
        if not rows:
            error = BackendError(f"Insert into {table!r} returned no row")
            return InsertResult.failure(self._failed(error, "insert", table))
        return InsertResult.success(rows[0])

    async def update(
        self,
        table: str,
        data: Mapping[str, Any],
        where: Mapping[str, Any] | None,
        *,
        allow_all: bool = False,
    ) -> UpdateResult[Row]:
        if self._client is None:
            return UpdateResult.failure(self._not_connected("update", table))
        parsed: Filter | None = None
        try:
            parsed = parse_where(where)
            if refused := self._unfiltered("update", table, parsed, allow_all):
                raise refused
            if not data:
                raise TranslationError(f"Update on {table!r} has no columns to set")
            builder = self._client.table(table).update(to_json_compatible(data))
            response = await apply_filter(builder, parsed).execute()
        except Exception as e:
            if parsed is not None and unmatchable_filter(e, parsed):
                return UpdateResult.success([])
            return UpdateResult.failure(self._failed(classify_platform_error(e), "update", table))

        return UpdateResult.success(list(response.data or []))

    async def delete(
        self,
        table: str,
        where: Mapping[str, Any] | None,
        *,
        allow_all: bool = False,
    ) -> DeleteResult:
        if self._client is None:
            return DeleteResult.failure(self._not_connected("delete", table))
        try:
            parsed = parse_where(where)
            if refused := self._unfiltered("delete", table, parsed, allow_all):
                raise refused
            response = await apply_filter(self._client.table(table).delete(), parsed).execute()
        except Exception as e:
            if unmatchable_filter(e):
                return DeleteResult.success([])
            return DeleteResult.failure(self._failed(classify_platform_error(e), "delete", table))

        return DeleteResult.success(list(response.data or []))

    async def query(self, sql: str, params: list[Any] | tuple[Any, ...] | None = None) -> QueryResult[Row]:
        """Call the configured stored procedure with ``{query, params}``."""
        if self._client is None:
            return QueryResult.failure(self._not_connected("query"))
        payload = {"query": sql, "params": to_json_compatible(list(params or []))}
        try:
            response = await self._client.rpc(self._config.sql_function, payload).execute()
        except Exception as e:
            return QueryResult.failure(self._failed(classify_platform_error(e), "query"))

        data = response.data
        if data is None:
            rows: list[Row] = []
        elif isinstance(data, list):
            rows = data
        else:
            rows = [data]
        return QueryResult.success(rows)

    def _failed(self, error: CoastlineError, operation: str, table: str | None = None) -> CoastlineError:
        error = super()._failed(error, operation, table)
        recording = _transaction_failures.get()
        if recording is not None and recording[0] is self:
            recording[1].append(error)
        return error

    async def transaction(self, fn: Callable[[BackendAdapter], Awaitable[R]]) -> R:
        """
        Run ``fn(self)`` directly; there is no rollback on this backend.

        Failures are reported as on the relational backend: when ``fn``
        raises, the exception propagates unchanged; when an operation inside
        ``fn`` returned an error, or ``fn`` returned a failed result,
        ``TransactionAbortError`` is raised with the first failure as cause.
        Writes that succeeded before the failure stay committed.
        """
        recording = _transaction_failures.get()
        if recording is not None and recording[0] is self:
            logger.debug("transaction_flattened", backend=self.kind.value)
            return await fn(self)

        logger.warning(
            "non_atomic_transaction",
            backend=self.kind.value,
            detail="platform backend cannot roll back; operations commit individually",
        )
        failures: list[CoastlineError] = []
        token = _transaction_failures.set((self, failures))
        try:
            result = await fn(self)
        finally:
            _transaction_failures.reset(token)

        failure = failures[0] if failures else None
        if failure is None and isinstance(result, OperationResult):
            failure = result.error
        if failure is not None:
            logger.warning("transaction_aborted", backend=self.kind.value, reason=type(failure).__name__)
            raise TransactionAbortError(
                f"Transaction aborted: {failure.message}",
                cause=failure,
            ).with_context(backend=self.kind.value)
        return result

    # ------------------------------------------------------------------ #
    # Files
    # ------------------------------------------------------------------ #

    async def upload_file(
        self,
        bucket: str,
        path: str,
        content: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> FileResult:
        if self._client is None:
            return FileResult(error=self._not_connected("upload_file"))
        metadata = metadata or {}
        file_options = {
            "content-type": metadata.get("content_type", "application/octet-stream"),
            "upsert": "true" if metadata.get("upsert") else "false",
        }
        try:
            await self._client.storage.from_(bucket).upload(path, content, file_options=file_options)
        except Exception as e:
            error = classify_platform_error(e)
            if not isinstance(error, (DatabaseConnectionError, BackendTimeoutError)):
                error = StorageError(error.message, cause=e)
            return FileResult(error=self._failed(error.with_context(bucket=bucket, path=path), "upload_file"))

        logger.debug("file_uploaded", backend=self.kind.value, bucket=bucket, path=path, size=len(content))
        return FileResult(url=self.get_file_url(bucket, path))

    async def delete_file(self, bucket: str, path: str) -> FileDeleteResult:
        if self._client is None:
            return FileDeleteResult(error=self._not_connected("delete_file"))
        try:
            await self._client.storage.from_(bucket).remove([path])
        except Exception as e:
            error = classify_platform_error(e)
            if not isinstance(error, (DatabaseConnectionError, BackendTimeoutError)):
                error = StorageError(error.message, cause=e)
            return FileDeleteResult(error=self._failed(error.with_context(bucket=bucket, path=path), "delete_file"))
        return FileDeleteResult()

    def get_file_url(self, bucket: str, path: str) -> str:
        return self._config.public_url(bucket, path)

    async def ping(self) -> bool:
        if self._client is None:
            return False
        result = await self.query("SELECT 1")
        return result.ok


__all__ = [
    "PlatformAdapter",
    "apply_filter",
    "classify_platform_error",
    "unmatchable_filter",
    "render_projection",
    "to_json_compatible",
]
