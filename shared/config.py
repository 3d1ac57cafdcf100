"""
Shared configuration management for the 254Carbon API Key Service.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # API key protocol
    base_issuer_url: str = Field(default="http://localhost:8020/jwks")
    audience: str = Field(default="api-key")
    api_keys_route_prefix: str = Field(default="/api-keys")
    jwks_route_prefix: str = Field(default="/jwks")
    jwks_max_age_seconds: int = Field(default=0)

    # Where /auth/verify and bearer auth look up key sets: the local store,
    # or the issuer's published JWKS over HTTP
    jwks_resolver: Literal["store", "remote"] = Field(default="store")
    jwks_cache_ttl: int = Field(default=300)
    http_timeout: float = Field(default=5.0)

    # Key storage
    store_backend: Literal["memory", "postgres"] = Field(default="memory")
    postgres_dsn: str = Field(default="postgres://localhost:5432/access")
    api_keys_table: str = Field(default="api_keys")

    # Header set by the gateway once the caller's session is authenticated
    user_id_header: str = Field(default="X-User-ID")

    @property
    def is_production(self) -> bool:
        return self.env == "production"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
