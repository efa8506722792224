"""
Backend service facade: one entry point over whichever adapter is active.

Manifesto:
    Application code talks to ``BackendService`` and never to an adapter
    class.  The facade is built once from configuration, picks the adapter
    through the registry and delegates every operation unchanged, so
    switching backends is a configuration change, not a code change.

Architecture:
    ::

        DataService ──► BackendService ──► AdapterRegistry
                              │                 │
                              │         ┌───────┴────────┐
                              ▼         ▼                ▼
                        health()   PlatformAdapter  RelationalAdapter

Features:
    - ``initialize()`` / ``shutdown()`` lifecycle and ``async with`` support
    - Full operation set delegated to the selected adapter
    - ``health()`` report: backend kind, connection state, live ping
    - Lazily-created process singleton (``get_backend_service()``)

Examples:
    >>> async with BackendService(settings.to_database_config()) as backend:
    ...     result = await backend.select("services", SelectOptions(limit=10))

Tags:
    coastline, facade, singleton, lifecycle

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from coastline.core.adapters.base import BackendAdapter, Capabilities
from coastline.core.adapters.registry import get_adapter
from coastline.core.adapters.types import BackendKind, PlatformConfig, RelationalConfig
from coastline.core.config.settings import CoastlineSettings, get_settings
from coastline.core.filters import SelectOptions
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

logger = get_logger(__name__)

R = TypeVar("R")


class BackendService:
    """Facade over the adapter selected by configuration."""

    def __init__(self, config: PlatformConfig | RelationalConfig, *, adapter: BackendAdapter | None = None):
        self._config = config
        self._adapter = adapter if adapter is not None else get_adapter(config)

    @property
    def adapter(self) -> BackendAdapter:
        return self._adapter

    @property
    def kind(self) -> BackendKind:
        return self._adapter.kind

    @property
    def capabilities(self) -> Capabilities:
        return self._adapter.capabilities

    @property
    def is_connected(self) -> bool:
        return self._adapter.is_connected

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Connect the adapter.  Raises ``DatabaseConnectionError``."""
        await self._adapter.connect()
        logger.info("backend_service_initialized", backend=self.kind.value)

    async def shutdown(self) -> None:
        await self._adapter.disconnect()
        logger.info("backend_service_shutdown", backend=self.kind.value)

    async def __aenter__(self) -> BackendService:
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.shutdown()

    # ── Operations ────────────────────────────────────────────────────

    async def select(self, table: str, options: SelectOptions | None = None) -> QueryResult[Row]:
        return await self._adapter.select(table, options)

    async def insert(self, table: str, data: Mapping[str, Any]) -> InsertResult[Row]:
        return await self._adapter.insert(table, data)

    async def update(
        self,
        table: str,
        data: Mapping[str, Any],
        where: Mapping[str, Any] | None,
        *,
        allow_all: bool = False,
    ) -> UpdateResult[Row]:
        return await self._adapter.update(table, data, where, allow_all=allow_all)

    async def delete(self, table: str, where: Mapping[str, Any] | None, *, allow_all: bool = False) -> DeleteResult:
        return await self._adapter.delete(table, where, allow_all=allow_all)

    async def query(self, sql: str, params: list[Any] | tuple[Any, ...] | None = None) -> QueryResult[Row]:
        return await self._adapter.query(sql, params)

    async def transaction(self, fn: Callable[[BackendAdapter], Awaitable[R]]) -> R:
        return await self._adapter.transaction(fn)

    async def upload_file(
        self,
        bucket: str,
        path: str,
        content: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> FileResult:
        return await self._adapter.upload_file(bucket, path, content, metadata)

    async def delete_file(self, bucket: str, path: str) -> FileDeleteResult:
        return await self._adapter.delete_file(bucket, path)

    def get_file_url(self, bucket: str, path: str) -> str:
        return self._adapter.get_file_url(bucket, path)

    async def ping(self) -> bool:
        return await self._adapter.ping()

    async def health(self) -> dict[str, Any]:
        """Backend kind, connection state and a live round trip."""
        connected = self.is_connected
        live = await self.ping() if connected else False
        return {
            "backend": self.kind.value,
            "connected": connected,
            "live": live,
            "status": "healthy" if live else "unhealthy",
            "capabilities": self.capabilities.to_dict(),
        }

    def __repr__(self) -> str:
        return f"BackendService(kind={self.kind.value}, connected={self.is_connected})"


# ── Process singleton ─────────────────────────────────────────────────────

_backend_service: BackendService | None = None


async def get_backend_service(settings: CoastlineSettings | None = None) -> BackendService:
    """Return the process-wide facade, creating and connecting it on first use."""
    global _backend_service
    if _backend_service is not None:
        return _backend_service

    settings = settings or get_settings()
    service = BackendService(settings.to_database_config())
    await service.initialize()

    if _backend_service is not None:
        # Another task finished initializing while this one was connecting
        await service.shutdown()
        return _backend_service
    _backend_service = service
    return service


async def reset_backend_service() -> None:
    """Shut down and forget the singleton (primarily for testing)."""
    global _backend_service
    service, _backend_service = _backend_service, None
    if service is not None and service.is_connected:
        await service.shutdown()


__all__ = [
    "BackendService",
    "get_backend_service",
    "reset_backend_service",
]
