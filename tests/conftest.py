"""
Shared pytest fixtures and configuration for coastline tests.

This module provides:
- Environment isolation (no ``COASTLINE_*`` leaks, no stray ``.env``)
- An in-memory fake of the Supabase async client (PostgREST + storage)
- A fake asyncpg pool/connection pair for the relational adapter
- Ready-made configs and connected adapters for both backends

Usage:
    async def test_select(platform_adapter, platform_client):
        platform_client.respond("users", data=[{"id": "u-1"}])
        result = await platform_adapter.select("users")
"""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from coastline.core import service as service_module
from coastline.core.adapters.platform import PlatformAdapter
from coastline.core.adapters.relational import RelationalAdapter
from coastline.core.adapters.types import PlatformConfig, RelationalConfig
from coastline.core.config import clear_settings_cache


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """
    Strip ``COASTLINE_*`` variables, run from an empty directory and reset
    the cached settings and facade singleton around every test.
    """
    for key in list(os.environ):
        if key.startswith("COASTLINE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(service_module, "_backend_service", None)
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Fake platform client
# =============================================================================


class FakeResponse:
    """Shape of a PostgREST ``APIResponse``."""

    def __init__(self, data: Any = None, count: int | None = None):
        self.data = data
        self.count = count


_CHAIN_METHODS = {
    "select",
    "insert",
    "update",
    "delete",
    "eq",
    "in_",
    "gt",
    "gte",
    "lt",
    "lte",
    "is_",
    "order",
    "range",
    "limit",
}


class FakeQuery:
    """Chainable request builder that records every call."""

    def __init__(self, target: str, outcome: FakeResponse | BaseException | None):
        self.target = target
        self.outcome = outcome
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def __getattr__(self, name: str) -> Any:
        if name not in _CHAIN_METHODS:
            raise AttributeError(name)

        def method(*args: Any, **kwargs: Any) -> FakeQuery:
            self.calls.append((name, args, kwargs))
            return self

        return method

    def called(self, name: str) -> list[tuple[Any, ...]]:
        """Positional args of every call to ``name``, in order."""
        return [args for call, args, _ in self.calls if call == name]

    def kwargs_of(self, name: str) -> dict[str, Any]:
        return next(kwargs for call, _, kwargs in self.calls if call == name)

    async def execute(self) -> FakeResponse:
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome or FakeResponse(data=[])


class FakeBucket:
    def __init__(self, storage: FakeStorage, name: str):
        self._storage = storage
        self.name = name

    async def upload(self, path: str, content: bytes, file_options: dict[str, str] | None = None) -> Any:
        if self._storage.error is not None:
            raise self._storage.error
        self._storage.uploads.append((self.name, path, content, file_options))
        return {"Key": f"{self.name}/{path}"}

    async def remove(self, paths: list[str]) -> Any:
        if self._storage.error is not None:
            raise self._storage.error
        self._storage.removed.append((self.name, list(paths)))
        return [{"name": p} for p in paths]


class FakeStorage:
    def __init__(self):
        self.uploads: list[tuple[str, str, bytes, dict[str, str] | None]] = []
        self.removed: list[tuple[str, list[str]]] = []
        self.error: BaseException | None = None

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakePlatformClient:
    """In-memory stand-in for ``supabase.AsyncClient``.

    Responses are keyed by table name, or ``rpc:<function>`` for procedure
    calls.  Every builder handed out is kept in ``queries``.
    """

    def __init__(self):
        self.queries: list[FakeQuery] = []
        self.outcomes: dict[str, FakeResponse | BaseException] = {}
        self.storage = FakeStorage()

    def respond(
        self,
        target: str,
        data: Any = None,
        count: int | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.outcomes[target] = error if error is not None else FakeResponse(data=data, count=count)

    def table(self, name: str) -> FakeQuery:
        query = FakeQuery(name, self.outcomes.get(name))
        self.queries.append(query)
        return query

    def rpc(self, fn: str, params: dict[str, Any]) -> FakeQuery:
        query = FakeQuery(f"rpc:{fn}", self.outcomes.get(f"rpc:{fn}"))
        query.calls.append(("rpc", (fn, params), {}))
        self.queries.append(query)
        return query

    @property
    def last(self) -> FakeQuery:
        return self.queries[-1]


# =============================================================================
# Fake asyncpg pool
# =============================================================================


class FakeTransaction:
    def __init__(self):
        self.start = AsyncMock()
        self.commit = AsyncMock()
        self.rollback = AsyncMock()


class FakeConnection:
    """Connection whose ``fetch`` results are scripted with an ``AsyncMock``."""

    def __init__(self):
        self.fetch = AsyncMock(return_value=[])
        self.fetchval = AsyncMock(return_value=1)
        self.tx = FakeTransaction()

    def transaction(self) -> FakeTransaction:
        return self.tx

    def statements(self) -> list[str]:
        return [call.args[0] for call in self.fetch.await_args_list]


class _Acquire:
    """Mimics ``PoolAcquireContext``: awaitable and an async context manager."""

    def __init__(self, pool: FakePool):
        self._pool = pool

    async def _get(self) -> FakeConnection:
        self._pool.acquired += 1
        return self._pool.connection

    def __await__(self):
        return self._get().__await__()

    async def __aenter__(self) -> FakeConnection:
        return await self._get()

    async def __aexit__(self, *args: Any) -> None:
        self._pool.released.append(self._pool.connection)


class FakePool:
    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self.acquired = 0
        self.released: list[FakeConnection] = []
        self.close = AsyncMock()

    def acquire(self) -> _Acquire:
        return _Acquire(self)

    async def release(self, connection: FakeConnection) -> None:
        self.released.append(connection)


# =============================================================================
# Config and adapter fixtures
# =============================================================================


@pytest.fixture
def platform_config() -> PlatformConfig:
    return PlatformConfig(url="https://demo.supabase.co", anon_key="anon-key")


@pytest.fixture
def relational_config() -> RelationalConfig:
    return RelationalConfig(host="db.local", database="marketplace", user="app", password="s3cret")


@pytest.fixture
def platform_client() -> FakePlatformClient:
    return FakePlatformClient()


@pytest.fixture
def platform_adapter(platform_config: PlatformConfig, platform_client: FakePlatformClient) -> PlatformAdapter:
    """A platform adapter already holding the fake client."""
    adapter = PlatformAdapter(platform_config)
    adapter._client = platform_client
    return adapter


@pytest.fixture
def pg_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def pg_pool(pg_connection: FakeConnection) -> FakePool:
    return FakePool(pg_connection)


@pytest.fixture
def relational_adapter(relational_config: RelationalConfig, pg_pool: FakePool) -> RelationalAdapter:
    """A relational adapter already holding the fake pool."""
    adapter = RelationalAdapter(relational_config)
    adapter._pool = pg_pool
    return adapter
