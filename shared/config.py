"""
Shared configuration management for the Reports Cache Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_COLLECTION_ID = "68a1d701da54a513636c4391"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    service_env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8020)


class ReportsConfig(BaseConfig):
    """Configuration for the reports cache service."""

    # Upstream content API
    upstream_api_token: str = Field(default="")
    upstream_collection_id: str = Field(default=DEFAULT_COLLECTION_ID)
    upstream_api_base_url: str = Field(default="https://api.webflow.com/v2")
    upstream_timeout_seconds: float = Field(default=10.0)

    # Webhook secrets, comma-separated so old and new keys overlap during rotation
    webhook_secrets: str = Field(default="")

    # Durable store; unset means in-process fallback
    redis_url: Optional[str] = Field(default=None)

    # Internal snapshot TTL and public edge directives are independent horizons
    cache_ttl_seconds: int = Field(default=60 * 60 * 24)
    edge_max_age_seconds: int = Field(default=60)
    edge_stale_while_revalidate_seconds: int = Field(default=300)

    @property
    def cache_ttl_ms(self) -> int:
        return self.cache_ttl_seconds * 1000


def get_config(**overrides) -> ReportsConfig:
    """Get configuration for the reports service."""
    return ReportsConfig(**overrides)
