"""Relational (PostgreSQL) adapter on an asyncpg connection pool.

Manifesto:
    Non-transactional calls borrow any pooled connection for one
    statement.  A ``transaction()`` pins one connection for its whole
    callback so every statement lands in the same server transaction.

Features:
    - asyncpg pool with min/max sizes, command and connect timeouts
    - ``ssl`` mode derived from the encrypt / trust-certificate flags
    - JSON/JSONB codecs so dict payloads bind without manual encoding
    - ``timestamp`` codec: aware datetimes stored as naive UTC, read back aware
    - ``SELECT 1`` liveness check for health reports
    - Atomic ``transaction()`` with flattening of nested calls

Examples:
    >>> adapter = RelationalAdapter(RelationalConfig(host="db", database="app",
    ...                                              user="app", password="secret"))
    >>> await adapter.connect()
    >>> result = await adapter.select("services", SelectOptions(where={"status": "active"}))

Tags:
    coastline, asyncpg, postgresql, adapter, transactions

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, TypeVar

import asyncpg

from coastline.core.errors import CoastlineError, DatabaseConnectionError, TransactionAbortError
from coastline.core.logging import get_logger
from coastline.core.result import OperationResult, Row
from coastline.core.sql import CompiledQuery

from .statements import SqlStatementAdapter, classify_relational_error
from .transaction import TransactionContext, active_transaction, current_transaction
from .types import RelationalConfig

if TYPE_CHECKING:
    from asyncpg import Pool
    from asyncpg.transaction import Transaction

    from .base import BackendAdapter

logger = get_logger(__name__)

R = TypeVar("R")


# ``timestamp without time zone`` on the wire: microseconds since this instant
_PG_EPOCH = datetime(2000, 1, 1)
_PG_INFINITY = 2**63 - 1
_PG_NEGATIVE_INFINITY = -(2**63)


def encode_timestamp(value: datetime) -> tuple[int]:
    """Bind a ``timestamp`` value; aware datetimes are stored as naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return ((value - _PG_EPOCH) // timedelta(microseconds=1),)


def decode_timestamp(value: tuple[int]) -> datetime:
    """Read a ``timestamp`` column as an aware UTC datetime."""
    (micros,) = value
    if micros == _PG_INFINITY:
        return datetime.max.replace(tzinfo=UTC)
    if micros == _PG_NEGATIVE_INFINITY:
        return datetime.min.replace(tzinfo=UTC)
    return (_PG_EPOCH + timedelta(microseconds=micros)).replace(tzinfo=UTC)


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Register JSON and timestamp codecs on every new pooled connection."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=lambda value: json.dumps(value, default=str),
            decoder=json.loads,
            schema="pg_catalog",
        )
    await conn.set_type_codec(
        "timestamp",
        encoder=encode_timestamp,
        decoder=decode_timestamp,
        schema="pg_catalog",
        format="tuple",
    )


class RelationalAdapter(SqlStatementAdapter):
    """
    PostgreSQL adapter.

    Statements use numbered ``$n`` placeholders bound by asyncpg; rows come
    back as plain dicts.
    """

    def __init__(self, config: RelationalConfig):
        super().__init__(config)
        self._pool: Pool | None = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return
        config = self._config
        try:
            self._pool = await asyncpg.create_pool(
                host=config.host,
                port=config.port,
                user=config.user,
                password=config.password.get_secret_value(),
                database=config.database,
                ssl=config.ssl_mode,
                min_size=config.pool_min_size,
                max_size=config.pool_max_size,
                command_timeout=config.command_timeout,
                timeout=config.connect_timeout,
                init=_init_connection,
            )
        except Exception as e:
            raise DatabaseConnectionError(
                f"Failed to connect to {config.host}:{config.port}/{config.database}: {e}",
                cause=e,
            ).with_context(backend=self.kind.value, operation="connect") from e

        logger.info(
            "backend_connected",
            backend=self.kind.value,
            host=config.host,
            database=config.database,
            ssl=config.ssl_mode,
            pool_max_size=config.pool_max_size,
        )

    async def disconnect(self) -> None:
        """Close the pool, waiting for borrowed connections to return."""
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("backend_disconnected", backend=self.kind.value)

    async def _fetch(self, query: CompiledQuery) -> list[Row]:
        ctx = current_transaction(self)
        if ctx is not None:
            # Keep statements issued on the parent inside the active unit of work
            return await ctx._fetch(query)
        if self._pool is None:
            raise self._not_connected("fetch")
        async with self._pool.acquire() as conn:
            records = await conn.fetch(query.sql, *query.params)
        return [dict(record) for record in records]

    def _in_transaction(self) -> bool:
        return current_transaction(self) is not None

    def _failed(self, error: CoastlineError, operation: str, table: str | None = None) -> CoastlineError:
        error = super()._failed(error, operation, table)
        if (ctx := current_transaction(self)) is not None:
            ctx.record_failure(error)
        return error

    async def ping(self) -> bool:
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning("backend_ping_failed", backend=self.kind.value, error=str(e))
            return False

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #

    async def transaction(self, fn: Callable[[BackendAdapter], Awaitable[R]]) -> R:
        """
        Run ``fn(ctx)`` on one pinned connection inside a server transaction.

        Commits when ``fn`` returns and no operation inside it returned an
        error.  Rolls back and re-raises unchanged when ``fn`` raises.  Rolls
        back and raises ``TransactionAbortError`` (first failure as cause)
        when an operation returned an error, when ``fn`` returned a failed
        result, or when the commit fails.
        """
        active = current_transaction(self)
        if active is not None:
            logger.debug("transaction_flattened", backend=self.kind.value)
            return await fn(active)

        if self._pool is None:
            raise self._not_connected("transaction")

        conn = await self._pool.acquire()
        try:
            tx = conn.transaction()
            await tx.start()
            ctx = TransactionContext(self._config, conn, owner=self)
            token = active_transaction.set(ctx)
            try:
                return await self._run(fn, ctx, tx)
            finally:
                ctx.close()
                active_transaction.reset(token)
        finally:
            await self._pool.release(conn)

    async def _run(self, fn: Callable[[BackendAdapter], Awaitable[R]], ctx: TransactionContext, tx: Transaction) -> R:
        try:
            result = await fn(ctx)
        except BaseException as e:
            await self._rollback(tx, reason=type(e).__name__)
            raise

        failure: CoastlineError | None = ctx.first_error
        if failure is None and isinstance(result, OperationResult):
            failure = result.error
        if failure is not None:
            await self._rollback(tx, reason=type(failure).__name__)
            raise TransactionAbortError(
                f"Transaction rolled back: {failure.message}",
                cause=failure,
            ).with_context(backend=self.kind.value)

        try:
            await tx.commit()
        except Exception as e:
            error = classify_relational_error(e)
            logger.error("transaction_commit_failed", backend=self.kind.value, error=error.message)
            raise TransactionAbortError(f"Commit failed: {error.message}", cause=error).with_context(
                backend=self.kind.value
            ) from e

        logger.debug("transaction_committed", backend=self.kind.value)
        return result

    async def _rollback(self, tx: Transaction, reason: str) -> None:
        try:
            await tx.rollback()
        except Exception as e:
            # The original failure is what the caller needs to see
            logger.error("transaction_rollback_failed", backend=self.kind.value, reason=reason, error=str(e))
            return
        logger.warning("transaction_rolled_back", backend=self.kind.value, reason=reason)

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return f"RelationalAdapter({self._config.host}:{self._config.port}/{self._config.database}, {state})"


__all__ = [
    "RelationalAdapter",
]
