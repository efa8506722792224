"""Backend adapter registry and factory.

Manifesto:
    Consumers should never hard-code adapter class names.  The registry
    maps backend names to adapter classes and ``get_adapter()`` builds a
    configured instance from a ``DatabaseConfig``.

Features:
    - ``AdapterRegistry`` singleton with pre-registered defaults
    - Aliases matching the ``COASTLINE_DB_TYPE`` selector values
    - ``register()`` for custom adapters (test doubles, other backends)

Tags:
    coastline, database, registry, factory, singleton

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from coastline.core.errors import ConfigError

from .base import BackendAdapter
from .platform import PlatformAdapter
from .relational import RelationalAdapter
from .types import BackendKind, PlatformConfig, RelationalConfig

# Selector spellings accepted in configuration
BACKEND_ALIASES: dict[str, BackendKind] = {
    "platform": BackendKind.PLATFORM,
    "supabase": BackendKind.PLATFORM,
    "relational": BackendKind.RELATIONAL,
    "postgres": BackendKind.RELATIONAL,
    "postgresql": BackendKind.RELATIONAL,
}


def resolve_backend_kind(name: BackendKind | str) -> BackendKind:
    """Normalize a selector value (``supabase``, ``postgres``, ...) to a kind."""
    if isinstance(name, BackendKind):
        return name
    try:
        return BACKEND_ALIASES[name.strip().lower()]
    except KeyError:
        raise ConfigError(f"Unknown database adapter: {name}") from None


class AdapterRegistry:
    """
    Registry for backend adapter factories.

    Pre-registered adapters:
    - ``platform`` — :class:`PlatformAdapter`
    - ``relational`` — :class:`RelationalAdapter`
    """

    def __init__(self):
        self._factories: dict[str, type[BackendAdapter]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        """Register default adapters."""
        self._factories[BackendKind.PLATFORM.value] = PlatformAdapter
        self._factories[BackendKind.RELATIONAL.value] = RelationalAdapter

    def register(self, name: str, adapter_class: type[BackendAdapter]) -> None:
        """Register an adapter factory."""
        self._factories[name.lower()] = adapter_class

    def create(self, name: str, **kwargs: Any) -> BackendAdapter:
        """Create an adapter by name."""
        name = name.lower()
        if name not in self._factories:
            raise ConfigError(f"Unknown database adapter: {name}")
        return self._factories[name](**kwargs)

    def list_adapters(self) -> list[str]:
        """List registered adapter names."""
        return sorted(self._factories.keys())


# Global registry
adapter_registry = AdapterRegistry()


def get_adapter(config: PlatformConfig | RelationalConfig) -> BackendAdapter:
    """
    Build the adapter for a validated configuration.

    Usage:
        adapter = get_adapter(settings.to_database_config())
        await adapter.connect()
    """
    return adapter_registry.create(config.kind.value, config=config)


__all__ = [
    "BACKEND_ALIASES",
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter",
    "resolve_backend_kind",
]
