"""
Shared configuration management for the cache layer.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Cache layer settings, read from CACHE_* environment variables or .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CACHE_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    service_name: str = Field(default="cache")

    # Store connection
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("CACHE_REDIS_URL", "REDIS_URL"),
    )
    socket_timeout: float = Field(default=5.0, gt=0)
    socket_connect_timeout: float = Field(default=5.0, gt=0)
    health_check_interval: int = Field(default=30, ge=0)
    max_connections: int = Field(default=50, ge=1)

    # Cache behaviour
    default_ttl: int = Field(default=3600)
    cache_warm_concurrency: int = Field(default=5, ge=1)

    # Locking
    lock_lease_seconds: int = Field(default=30, gt=0)
    single_flight_wait_attempts: int = Field(default=10, ge=1)
    single_flight_base_delay: float = Field(default=0.05, gt=0)


def get_settings(**overrides) -> CacheSettings:
    """Get cache layer settings, applying explicit overrides on top of the environment."""
    return CacheSettings(**overrides)
