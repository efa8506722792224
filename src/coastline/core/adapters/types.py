"""Backend kinds and connection configuration."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, TypeAdapter


class BackendKind(str, Enum):
    """Supported backend kinds."""

    PLATFORM = "platform"
    RELATIONAL = "relational"


class PlatformConfig(BaseModel):
    """Managed data platform (Supabase/PostgREST) connection settings."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[BackendKind.PLATFORM] = BackendKind.PLATFORM
    url: str
    anon_key: SecretStr
    # Used for server-side access when present; falls back to anon_key
    service_role_key: SecretStr | None = None
    sql_function: str = "execute_sql"
    request_timeout: float = Field(default=30.0, gt=0)

    @property
    def api_key(self) -> str:
        key = self.service_role_key or self.anon_key
        return key.get_secret_value()

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.url.rstrip('/')}/storage/v1/object/public/{bucket}/{path.lstrip('/')}"


class RelationalConfig(BaseModel):
    """PostgreSQL server connection settings."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[BackendKind.RELATIONAL] = BackendKind.RELATIONAL
    host: str
    database: str
    user: str
    password: SecretStr
    port: int = Field(default=5432, gt=0, lt=65536)

    # SSL
    encrypt: bool = False
    trust_server_certificate: bool = False

    # Connection pool
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, gt=0)
    command_timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=15.0, gt=0)

    # File metadata
    media_table: str = "media_assets"
    media_url_prefix: str = "/uploads"

    @property
    def ssl_mode(self) -> str:
        """asyncpg ``ssl`` value for the encryption flags."""
        if not self.encrypt:
            return "disable"
        return "require" if self.trust_server_certificate else "verify-full"

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.media_url_prefix.rstrip('/')}/{bucket}/{path.lstrip('/')}"


DatabaseConfig = Annotated[PlatformConfig | RelationalConfig, Field(discriminator="kind")]

database_config_adapter: TypeAdapter[PlatformConfig | RelationalConfig] = TypeAdapter(DatabaseConfig)


__all__ = [
    "BackendKind",
    "PlatformConfig",
    "RelationalConfig",
    "DatabaseConfig",
    "database_config_adapter",
]
