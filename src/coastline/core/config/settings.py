"""
Centralized settings for coastline.

Manifesto:
    Backend selection happens once, at process start, from configuration.
    ``CoastlineSettings`` reads every ``COASTLINE_*`` variable (or a
    ``.env`` file) into one validated, cached object, and
    ``to_database_config()`` turns it into the immutable connection
    snapshot the adapters are built from.

Selector:
    ``COASTLINE_DB_TYPE`` chooses the backend: ``platform`` (alias
    ``supabase``) or ``relational`` (aliases ``postgres``,
    ``postgresql``).  A missing selector, or a missing parameter of the
    selected branch, raises ``MissingConfigError``.

Tags:
    coastline, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from coastline.core.adapters.registry import resolve_backend_kind
from coastline.core.adapters.types import BackendKind, PlatformConfig, RelationalConfig
from coastline.core.errors import ConfigError, InvalidConfigError, MissingConfigError

ENV_PREFIX = "COASTLINE_"


class CoastlineSettings(BaseSettings):
    """coastline configuration.

    All fields can be set via ``COASTLINE_*`` environment variables (e.g.
    ``COASTLINE_DB_TYPE=relational``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backend selector ─────────────────────────────────────────
    db_type: str | None = Field(default=None, description="platform | relational (or an alias)")

    # ── Platform ─────────────────────────────────────────────────
    platform_url: str | None = Field(default=None)
    platform_anon_key: SecretStr | None = Field(default=None)
    platform_service_role_key: SecretStr | None = Field(default=None)
    platform_sql_function: str = Field(default="execute_sql")
    platform_request_timeout: float = Field(default=30.0)

    # ── Relational ───────────────────────────────────────────────
    relational_host: str | None = Field(default=None)
    relational_database: str | None = Field(default=None)
    relational_user: str | None = Field(default=None)
    relational_password: SecretStr | None = Field(default=None)
    relational_port: int = Field(default=5432)
    relational_encrypt: bool = Field(default=False)
    relational_trust_server_certificate: bool = Field(default=False)
    relational_pool_min_size: int = Field(default=1)
    relational_pool_max_size: int = Field(default=10)
    relational_command_timeout: float = Field(default=30.0)
    relational_connect_timeout: float = Field(default=15.0)
    relational_media_table: str = Field(default="media_assets")
    relational_media_url_prefix: str = Field(default="/uploads")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json | console | auto")
    service_name: str = Field(default="coastline")

    # ── Derived properties ───────────────────────────────────────

    @property
    def backend_kind(self) -> BackendKind:
        """The selected backend.  Raises ``ConfigError`` when unset/unknown."""
        if not self.db_type:
            raise MissingConfigError(f"{ENV_PREFIX}DB_TYPE")
        try:
            return resolve_backend_kind(self.db_type)
        except ConfigError:
            raise InvalidConfigError(f"{ENV_PREFIX}DB_TYPE", self.db_type) from None

    @property
    def log_json(self) -> bool | None:
        """``json_format`` argument for ``configure_logging``."""
        match self.log_format.lower():
            case "json":
                return True
            case "console":
                return False
            case _:
                return None

    def _require(self, *names: str) -> None:
        for name in names:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if value is None or value == "":
                raise MissingConfigError(f"{ENV_PREFIX}{name.upper()}")

    def to_database_config(self) -> PlatformConfig | RelationalConfig:
        """Build the immutable connection snapshot for the selected backend."""
        kind = self.backend_kind
        try:
            if kind is BackendKind.PLATFORM:
                self._require("platform_url", "platform_anon_key")
                return PlatformConfig(
                    url=self.platform_url,
                    anon_key=self.platform_anon_key,
                    service_role_key=self.platform_service_role_key,
                    sql_function=self.platform_sql_function,
                    request_timeout=self.platform_request_timeout,
                )

            self._require("relational_host", "relational_database", "relational_user", "relational_password")
            return RelationalConfig(
                host=self.relational_host,
                database=self.relational_database,
                user=self.relational_user,
                password=self.relational_password,
                port=self.relational_port,
                encrypt=self.relational_encrypt,
                trust_server_certificate=self.relational_trust_server_certificate,
                pool_min_size=self.relational_pool_min_size,
                pool_max_size=self.relational_pool_max_size,
                command_timeout=self.relational_command_timeout,
                connect_timeout=self.relational_connect_timeout,
                media_table=self.relational_media_table,
                media_url_prefix=self.relational_media_url_prefix,
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise InvalidConfigError(field, first.get("input"), f"Invalid {kind.value} configuration: {e}") from e


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, CoastlineSettings] = {}


def get_settings(*, env_file: Path | str | None = None, _force_reload: bool = False) -> CoastlineSettings:
    """Load, validate, and cache a :class:`CoastlineSettings` instance.

    Parameters
    ----------
    env_file:
        Alternative ``.env`` file.  Defaults to ``.env`` in the working
        directory.
    _force_reload:
        Bypass cache and reload from the environment.
    """
    cache_key = str(env_file or "")
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    if env_file is not None:
        settings = CoastlineSettings(_env_file=env_file)  # type: ignore[call-arg]
    else:
        settings = CoastlineSettings()

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "ENV_PREFIX",
    "CoastlineSettings",
    "get_settings",
    "clear_settings_cache",
]
