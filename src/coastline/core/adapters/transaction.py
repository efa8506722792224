"""Transaction context: the adapter handed to a ``transaction()`` callback.

A ``TransactionContext`` exposes the full operation set but routes every
statement through the one connection its parent adapter pinned for the
unit of work.  It never owns that connection: ``connect()`` and
``disconnect()`` are no-ops and the parent commits, rolls back and
releases.

Once the parent has committed or rolled back, the context is closed and
every operation returns a ``BackendError`` value, so a context leaked out
of its callback cannot write outside the transaction.

Nesting flattens.  ``ctx.transaction(fn)`` runs ``fn(ctx)`` in the same
unit of work, and so does ``parent.transaction(fn)`` when called from the
task that owns the active context (tracked with a ``ContextVar``).  Tasks
spawned from the callback inherit that context, so statements are queued
on the pinned connection one at a time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, TypeVar

from coastline.core.errors import BackendError, CoastlineError
from coastline.core.logging import get_logger
from coastline.core.result import Row
from coastline.core.sql import CompiledQuery

from .statements import SqlStatementAdapter
from .types import RelationalConfig

if TYPE_CHECKING:
    from asyncpg import Connection

    from .base import BackendAdapter

logger = get_logger(__name__)

R = TypeVar("R")

# The context active in the current task, if any
active_transaction: ContextVar[TransactionContext | None] = ContextVar("coastline_active_transaction", default=None)


class TransactionContext(SqlStatementAdapter):
    """Operation set bound to one pinned connection."""

    def __init__(self, config: RelationalConfig, connection: Connection, owner: object):
        super().__init__(config)
        self._connection = connection
        self._owner = owner
        self._closed = False
        self._first_error: CoastlineError | None = None
        # One statement at a time on the pinned connection, even when the
        # callback gathers several operations
        self._lock = asyncio.Lock()

    @property
    def owner(self) -> object:
        return self._owner

    @property
    def is_connected(self) -> bool:
        return not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def first_error(self) -> CoastlineError | None:
        """First error value any operation in this unit of work returned."""
        return self._first_error

    def close(self) -> None:
        self._closed = True

    async def connect(self) -> None:
        """No-op: the parent adapter owns the connection."""

    async def disconnect(self) -> None:
        """No-op: the parent adapter releases the connection."""

    def _unavailable(self, operation: str, table: str | None = None) -> CoastlineError | None:
        if self._closed:
            return BackendError("Transaction context used after commit or rollback").with_context(
                backend=self.kind.value, operation=operation, table=table
            )
        return None

    def _in_transaction(self) -> bool:
        return True

    def record_failure(self, error: CoastlineError) -> None:
        if self._first_error is None:
            self._first_error = error

    def _failed(self, error: CoastlineError, operation: str, table: str | None = None) -> CoastlineError:
        error = super()._failed(error, operation, table)
        self.record_failure(error)
        return error

    async def _fetch(self, query: CompiledQuery) -> list[Row]:
        async with self._lock:
            records = await self._connection.fetch(query.sql, *query.params)
        return [dict(record) for record in records]

    async def transaction(self, fn: Callable[[BackendAdapter], Awaitable[R]]) -> R:
        """Flatten: run ``fn`` inside the unit of work already in progress."""
        if self._closed:
            raise BackendError("Transaction context used after commit or rollback").with_context(
                backend=self.kind.value, operation="transaction"
            )
        logger.debug("transaction_flattened", backend=self.kind.value)
        return await fn(self)

    async def ping(self) -> bool:
        if self._closed:
            return False
        try:
            async with self._lock:
                return await self._connection.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning("backend_ping_failed", backend=self.kind.value, error=str(e))
            return False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"TransactionContext({state})"


def current_transaction(owner: Any) -> TransactionContext | None:
    """The open context pinned by ``owner`` in this task, if any."""
    ctx = active_transaction.get()
    if ctx is not None and ctx.owner is owner and not ctx.closed:
        return ctx
    return None


__all__ = [
    "TransactionContext",
    "active_transaction",
    "current_transaction",
]
