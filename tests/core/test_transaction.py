"""Tests for relational transactions — pinned connection, commit/rollback, flattening."""

from __future__ import annotations

import asyncio

import asyncpg
import pytest

from coastline.core.adapters.transaction import TransactionContext, active_transaction
from coastline.core.errors import (
    BackendError,
    ConstraintViolationError,
    DatabaseConnectionError,
    TransactionAbortError,
)
from coastline.core.filters import SelectOptions
from coastline.core.result import OperationResult


class TestCommit:
    @pytest.mark.asyncio
    async def test_commits_and_returns_callback_value(self, relational_adapter, pg_pool, pg_connection):
        pg_connection.fetch.side_effect = [[{"id": "b-1"}], [{"id": "s-1", "slots": 3}]]

        async def book(tx):
            assert isinstance(tx, TransactionContext)
            booking = await tx.insert("bookings", {"service_id": "s-1"})
            await tx.update("services", {"slots": 3}, {"id": "s-1"})
            return booking.data["id"]

        assert await relational_adapter.transaction(book) == "b-1"
        pg_connection.tx.start.assert_awaited_once()
        pg_connection.tx.commit.assert_awaited_once()
        pg_connection.tx.rollback.assert_not_awaited()
        assert pg_pool.released == [pg_connection]
        assert active_transaction.get() is None

    @pytest.mark.asyncio
    async def test_parent_adapter_calls_join_transaction(self, relational_adapter, pg_pool, pg_connection):
        async def work(tx):
            # statements issued through the parent still run on the pinned connection
            await relational_adapter.select("users")
            return None

        await relational_adapter.transaction(work)
        assert pg_pool.acquired == 1
        assert pg_connection.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_nested_transaction_flattens(self, relational_adapter, pg_connection):
        seen = []

        async def inner(tx):
            seen.append(tx)
            return "inner"

        async def outer(tx):
            seen.append(tx)
            return await relational_adapter.transaction(inner)

        assert await relational_adapter.transaction(outer) == "inner"
        assert seen[0] is seen[1]

    @pytest.mark.asyncio
    async def test_gathered_statements_run_one_at_a_time(self, relational_adapter, pg_pool, pg_connection):
        in_flight = 0
        peak = 0

        async def fetch(sql, *params):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return [{"id": "p-1"}]

        pg_connection.fetch.side_effect = fetch

        async def work(tx):
            return await asyncio.gather(relational_adapter.select("people"), tx.select("people"))

        first, second = await relational_adapter.transaction(work)
        assert first.data == second.data == [{"id": "p-1"}]
        assert peak == 1
        assert pg_pool.acquired == 1
        pg_connection.tx.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unmatchable_filter_value_commits(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = asyncpg.DataError(
            "invalid input for query argument $1: 'does-not-exist' (invalid UUID 'does-not-exist')"
        )

        async def work(tx):
            return await tx.delete("bookings", {"id": "does-not-exist"})

        result = await relational_adapter.transaction(work)
        assert result.count == 0
        pg_connection.tx.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_rejected_filter_value_rolls_back(self, relational_adapter, pg_connection):
        # The server has already aborted the transaction
        pg_connection.fetch.side_effect = asyncpg.InvalidTextRepresentationError(
            'invalid input value for enum booking_status: "bogus"'
        )

        async def work(tx):
            return await tx.select("bookings", SelectOptions(where={"status": "bogus"}))

        with pytest.raises(TransactionAbortError):
            await relational_adapter.transaction(work)
        pg_connection.tx.rollback.assert_awaited_once()
        pg_connection.tx.start.assert_awaited_once()
        pg_connection.tx.commit.assert_awaited_once()


class TestRollback:
    @pytest.mark.asyncio
    async def test_exception_rolls_back_and_reraises(self, relational_adapter, pg_pool, pg_connection):
        async def work(tx):
            await tx.insert("bookings", {"service_id": "s-1"})
            raise RuntimeError("payment declined")

        with pytest.raises(RuntimeError, match="payment declined"):
            await relational_adapter.transaction(work)
        pg_connection.tx.rollback.assert_awaited_once()
        pg_connection.tx.commit.assert_not_awaited()
        assert pg_pool.released == [pg_connection]

    @pytest.mark.asyncio
    async def test_error_value_inside_aborts(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = [asyncpg.ForeignKeyViolationError("fk"), [{"id": 1}]]

        async def work(tx):
            # the caller ignores the failed result; the unit of work must still roll back
            await tx.insert("bookings", {"service_id": "missing"})
            await tx.update("services", {"slots": 0}, {"id": "s-1"})
            return "done"

        with pytest.raises(TransactionAbortError) as exc_info:
            await relational_adapter.transaction(work)
        assert isinstance(exc_info.value.cause, ConstraintViolationError)
        pg_connection.tx.rollback.assert_awaited_once()
        pg_connection.tx.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_result_returned_aborts(self, relational_adapter, pg_connection):
        async def work(tx):
            return OperationResult.failure(BackendError("business rule"))

        with pytest.raises(TransactionAbortError, match="business rule"):
            await relational_adapter.transaction(work)
        pg_connection.tx.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_aborts(self, relational_adapter, pg_connection):
        pg_connection.tx.commit.side_effect = asyncpg.SerializationError("could not serialize")

        async def work(tx):
            return 1

        with pytest.raises(TransactionAbortError, match="Commit failed"):
            await relational_adapter.transaction(work)

    @pytest.mark.asyncio
    async def test_rollback_failure_keeps_original_exception(self, relational_adapter, pg_connection):
        pg_connection.tx.rollback.side_effect = OSError("socket closed")

        async def work(tx):
            raise KeyError("original")

        with pytest.raises(KeyError):
            await relational_adapter.transaction(work)


class TestContextLifecycle:
    @pytest.mark.asyncio
    async def test_context_unusable_after_commit(self, relational_adapter):
        captured = []

        async def work(tx):
            captured.append(tx)

        await relational_adapter.transaction(work)
        (ctx,) = captured
        assert ctx.closed
        result = await ctx.select("users")
        assert isinstance(result.error, BackendError)
        assert "after commit or rollback" in result.error.message
        with pytest.raises(BackendError):
            await ctx.transaction(work)

    @pytest.mark.asyncio
    async def test_not_connected_raises(self, relational_config):
        from coastline.core.adapters.relational import RelationalAdapter

        async def work(tx):
            return None

        with pytest.raises(DatabaseConnectionError):
            await RelationalAdapter(relational_config).transaction(work)

    @pytest.mark.asyncio
    async def test_context_connect_disconnect_are_noops(self, relational_config, pg_connection):
        ctx = TransactionContext(relational_config, pg_connection, owner=object())
        await ctx.connect()
        await ctx.disconnect()
        assert ctx.is_connected
        assert await ctx.ping()
