"""Backend adapters for the managed data platform and the relational server.

Usage:
    from coastline.core.adapters import get_adapter, RelationalConfig

    adapter = get_adapter(RelationalConfig(host="db", database="app",
                                           user="app", password="secret"))
    await adapter.connect()
"""

from .base import BackendAdapter, Capabilities
from .platform import PlatformAdapter
from .registry import AdapterRegistry, adapter_registry, get_adapter, resolve_backend_kind
from .relational import RelationalAdapter
from .transaction import TransactionContext
from .types import BackendKind, DatabaseConfig, PlatformConfig, RelationalConfig

__all__ = [
    "BackendAdapter",
    "Capabilities",
    "PlatformAdapter",
    "RelationalAdapter",
    "TransactionContext",
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter",
    "resolve_backend_kind",
    "BackendKind",
    "DatabaseConfig",
    "PlatformConfig",
    "RelationalConfig",
]
