"""Tests for ``coastline.core.adapters.relational`` — asyncpg adapter on a fake pool."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from coastline.core.adapters.relational import RelationalAdapter, _init_connection, decode_timestamp, encode_timestamp
from coastline.core.adapters.statements import classify_relational_error, unmatchable_filter
from coastline.core.adapters.types import BackendKind, RelationalConfig
from coastline.core.errors import (
    BackendError,
    BackendTimeoutError,
    ConstraintViolationError,
    DatabaseConnectionError,
    PermissionDeniedError,
    StorageError,
    TranslationError,
)
from coastline.core.filters import SelectOptions
from coastline.core.sql import CompiledQuery


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_builds_pool(self, relational_config, pg_pool):
        adapter = RelationalAdapter(relational_config)
        with patch("coastline.core.adapters.relational.asyncpg.create_pool", new=AsyncMock(return_value=pg_pool)) as cp:
            await adapter.connect()
        assert adapter.is_connected
        kwargs = cp.await_args.kwargs
        assert kwargs["host"] == "db.local"
        assert kwargs["password"] == "s3cret"
        assert kwargs["ssl"] == "disable"
        assert kwargs["max_size"] == 10

    @pytest.mark.asyncio
    async def test_connect_failure(self, relational_config):
        adapter = RelationalAdapter(relational_config)
        with patch(
            "coastline.core.adapters.relational.asyncpg.create_pool",
            new=AsyncMock(side_effect=OSError("Connection refused")),
        ):
            with pytest.raises(DatabaseConnectionError, match="db.local"):
                await adapter.connect()
        assert not adapter.is_connected

    @pytest.mark.asyncio
    async def test_disconnect_closes_pool(self, relational_adapter, pg_pool):
        await relational_adapter.disconnect()
        pg_pool.close.assert_awaited_once()
        assert not relational_adapter.is_connected
        # second call is a no-op
        await relational_adapter.disconnect()
        pg_pool.close.assert_awaited_once()

    @pytest.mark.parametrize(
        ("encrypt", "trust", "mode"),
        [(False, False, "disable"), (True, True, "require"), (True, False, "verify-full")],
    )
    def test_ssl_mode(self, encrypt, trust, mode):
        config = RelationalConfig(
            host="h", database="d", user="u", password="p", encrypt=encrypt, trust_server_certificate=trust
        )
        assert config.ssl_mode == mode

    @pytest.mark.asyncio
    async def test_not_connected_is_value(self, relational_config):
        result = await RelationalAdapter(relational_config).insert("users", {"email": "a@b.c"})
        assert isinstance(result.error, DatabaseConnectionError)

    @pytest.mark.asyncio
    async def test_pool_init_registers_codecs(self):
        conn = MagicMock()
        conn.set_type_codec = AsyncMock()
        await _init_connection(conn)
        calls = conn.set_type_codec.await_args_list
        assert [c.args[0] for c in calls] == ["json", "jsonb", "timestamp"]
        assert calls[2].kwargs["format"] == "tuple"
        assert calls[2].kwargs["encoder"] is encode_timestamp

    @pytest.mark.asyncio
    async def test_fetch_without_pool_raises_connection_error(self, relational_config):
        with pytest.raises(DatabaseConnectionError):
            await RelationalAdapter(relational_config)._fetch(CompiledQuery("SELECT 1"))


class TestTimestampCodec:
    def test_aware_values_stored_as_naive_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        aware = datetime(2024, 6, 1, 15, 0, tzinfo=ist)
        assert encode_timestamp(aware) == encode_timestamp(datetime(2024, 6, 1, 9, 30))

    def test_wire_value_counts_microseconds_from_2000(self):
        assert encode_timestamp(datetime(2000, 1, 1, 0, 0, 1)) == (1_000_000,)
        assert decode_timestamp((1_000_000,)) == datetime(2000, 1, 1, 0, 0, 1, tzinfo=UTC)

    def test_read_back_as_aware_utc(self):
        stamped = datetime(2024, 6, 1, 9, 30, 15, 250, tzinfo=UTC)
        assert decode_timestamp(encode_timestamp(stamped)) == stamped

    def test_infinity(self):
        assert decode_timestamp((2**63 - 1,)) == datetime.max.replace(tzinfo=UTC)
        assert decode_timestamp((-(2**63),)) == datetime.min.replace(tzinfo=UTC)


class TestSelect:
    @pytest.mark.asyncio
    async def test_select_compiles_and_binds(self, relational_adapter, pg_connection):
        pg_connection.fetch.return_value = [{"id": "s-1", "price": 1500}]
        result = await relational_adapter.select(
            "services", SelectOptions(where={"price": {"gte": 1000}}, limit=10, offset=0)
        )
        assert result.data == [{"id": "s-1", "price": 1500}]
        pg_connection.fetch.assert_awaited_once_with(
            'SELECT * FROM "services" WHERE "price" >= $1 OFFSET $2 ROWS FETCH NEXT $3 ROWS ONLY', 1000, 0, 10
        )

    @pytest.mark.asyncio
    async def test_count_runs_second_statement(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = [[{"id": "u-1"}], [{"count": 42}]]
        result = await relational_adapter.select("users", SelectOptions(select="id", limit=1, count=True))
        assert result.count == 42
        assert pg_connection.statements()[1] == 'SELECT COUNT(*) AS count FROM "users"'

    @pytest.mark.asyncio
    async def test_join_hints_rejected(self, relational_adapter, pg_connection):
        result = await relational_adapter.select("bookings", SelectOptions(join=("users",)))
        assert isinstance(result.error, TranslationError)
        pg_connection.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_table(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = asyncpg.UndefinedTableError('relation "nope" does not exist')
        result = await relational_adapter.select("nope")
        assert type(result.error) is BackendError
        assert result.error.context.table == "nope"


class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_returns_persisted_row(self, relational_adapter, pg_connection):
        pg_connection.fetch.return_value = [{"id": "u-1", "email": "a@b.c"}]
        result = await relational_adapter.insert("users", {"email": "a@b.c"})
        assert result.data == {"id": "u-1", "email": "a@b.c"}

    @pytest.mark.asyncio
    async def test_unique_violation(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = asyncpg.UniqueViolationError("duplicate key value")
        result = await relational_adapter.insert("users", {"email": "a@b.c"})
        assert isinstance(result.error, ConstraintViolationError)

    @pytest.mark.asyncio
    async def test_update_and_delete_counts(self, relational_adapter, pg_connection):
        pg_connection.fetch.return_value = [{"id": 1}, {"id": 2}]
        updated = await relational_adapter.update("bookings", {"status": "x"}, {"status": ["a", "b"]})
        assert updated.count == 2
        pg_connection.fetch.return_value = []
        deleted = await relational_adapter.delete("bookings", {"id": "missing"})
        assert deleted.ok
        assert deleted.count == 0

    @pytest.mark.asyncio
    async def test_unfiltered_writes_refused(self, relational_adapter, pg_connection):
        assert isinstance((await relational_adapter.update("t", {"a": 1}, None)).error, TranslationError)
        assert isinstance((await relational_adapter.delete("t", {})).error, TranslationError)
        pg_connection.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unfiltered_delete_with_opt_in(self, relational_adapter, pg_connection):
        await relational_adapter.delete("sessions", None, allow_all=True)
        pg_connection.fetch.assert_awaited_once_with('DELETE FROM "sessions" RETURNING *')

    @pytest.mark.asyncio
    async def test_raw_query(self, relational_adapter, pg_connection):
        pg_connection.fetch.return_value = [{"event_type": "view", "event_count": 3}]
        result = await relational_adapter.query("SELECT event_type FROM analytics_events WHERE created_at >= $1", ["x"])
        assert result.count == 1
        pg_connection.fetch.assert_awaited_once_with(
            "SELECT event_type FROM analytics_events WHERE created_at >= $1", "x"
        )


class TestUnmatchableFilterValues:
    @staticmethod
    def bad_argument(n: int) -> asyncpg.DataError:
        return asyncpg.DataError(
            f"invalid input for query argument ${n}: 'does-not-exist' (invalid UUID 'does-not-exist')"
        )

    @pytest.mark.asyncio
    async def test_delete_matches_nothing(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = self.bad_argument(1)
        result = await relational_adapter.delete("bookings", {"id": "does-not-exist"})
        assert result.error is None
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_select_matches_nothing(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = self.bad_argument(1)
        result = await relational_adapter.select("bookings", SelectOptions(where={"id": "does-not-exist"}, count=True))
        assert result.error is None
        assert result.data == []
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_update_filter_argument_matches_nothing(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = self.bad_argument(2)
        result = await relational_adapter.update("bookings", {"status": "confirmed"}, {"id": "does-not-exist"})
        assert result.error is None
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_bad_written_value_is_error(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = self.bad_argument(1)
        result = await relational_adapter.update("bookings", {"service_id": "does-not-exist"}, {"id": "b-1"})
        assert isinstance(result.error, BackendError)

    @pytest.mark.asyncio
    async def test_server_rejected_enum_label_matches_nothing(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = asyncpg.InvalidTextRepresentationError(
            'invalid input value for enum booking_status: "bogus"'
        )
        result = await relational_adapter.delete("bookings", {"status": "bogus"})
        assert result.error is None
        assert result.count == 0

    def test_other_errors_are_not_mismatches(self):
        assert not unmatchable_filter(asyncpg.UniqueViolationError("dup"))
        assert not unmatchable_filter(asyncpg.InvalidTextRepresentationError("bad"), server_side=False)


class TestFiles:
    @pytest.mark.asyncio
    async def test_upload_writes_metadata_row(self, relational_adapter, pg_connection):
        pg_connection.fetch.return_value = [{"id": "m-1"}]
        result = await relational_adapter.upload_file(
            "media", "services/cover.jpg", b"12345", {"content_type": "image/jpeg", "uploaded_by": "u-1"}
        )
        assert result.url == "/uploads/media/services/cover.jpg"
        sql, *params = pg_connection.fetch.await_args.args
        assert sql.startswith('INSERT INTO "media_assets"')
        assert "media/services/cover.jpg" in params
        assert 5 in params
        assert "u-1" in params

    @pytest.mark.asyncio
    async def test_upload_failure_is_storage_error(self, relational_adapter, pg_connection):
        pg_connection.fetch.side_effect = asyncpg.UndefinedTableError('relation "media_assets" does not exist')
        result = await relational_adapter.upload_file("media", "a.png", b"x")
        assert isinstance(result.error, StorageError)

    @pytest.mark.asyncio
    async def test_delete_file_by_storage_path(self, relational_adapter, pg_connection):
        result = await relational_adapter.delete_file("media", "a.png")
        assert result.ok
        pg_connection.fetch.assert_awaited_once_with(
            'DELETE FROM "media_assets" WHERE "storage_path" = $1 RETURNING *', "media/a.png"
        )

    def test_capabilities(self, relational_adapter):
        assert relational_adapter.kind is BackendKind.RELATIONAL
        assert relational_adapter.capabilities.atomic_transactions is True
        assert relational_adapter.capabilities.join_hints is False


class TestPing:
    @pytest.mark.asyncio
    async def test_ping(self, relational_adapter, pg_connection):
        assert await relational_adapter.ping()
        pg_connection.fetchval.side_effect = OSError("gone")
        assert not await relational_adapter.ping()


class TestClassification:
    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (asyncpg.UniqueViolationError("dup"), ConstraintViolationError),
            (asyncpg.ForeignKeyViolationError("fk"), ConstraintViolationError),
            (asyncpg.InsufficientPrivilegeError("denied"), PermissionDeniedError),
            (asyncpg.QueryCanceledError("cancel"), BackendTimeoutError),
            (asyncpg.ConnectionDoesNotExistError("closed"), DatabaseConnectionError),
            (TimeoutError(), BackendTimeoutError),
            (ConnectionRefusedError(), DatabaseConnectionError),
            (ValueError("bad"), BackendError),
        ],
    )
    def test_classify(self, exc, expected):
        assert type(classify_relational_error(exc)) is expected

    def test_sqlstate_kept_as_code(self):
        error = classify_relational_error(asyncpg.UniqueViolationError("dup"))
        assert error.code == "23505"
