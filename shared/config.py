"""
Shared configuration management for the SpaceTraders proxy.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_API_URL = "https://api.spacetraders.io/v2"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream game API
    spacetraders_api_url: str = Field(default=DEFAULT_API_URL)
    spacetraders_token: str = Field(default="")
    request_timeout_seconds: float = Field(default=30.0)

    # Rate limiting
    rate_limit_default_wait_ms: int = Field(default=5000)

    # Response cache
    cache_backend: str = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_read_through: bool = Field(default=False)

    # HTTP surface
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 5000
    host: str = "0.0.0.0"


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
