"""
Shared configuration management for the integration auth gateway.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="INTEGRATION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class IntegrationSettings(BaseConfig):
    """Settings for talking to the platform on behalf of one integration."""

    # Platform
    app_domain: str = Field(default="app.example.com")
    https: bool = Field(default=True)

    # Client credentials
    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    jwt_audience: str = Field(default="")
    jwt_token_url: str = Field(default="")

    # Access keys handed to the integration
    jwt_issuer: Optional[str] = Field(default=None)
    integration_name: Optional[str] = Field(default=None)

    # Caches (seconds / entry counts)
    jwks_refresh_seconds: float = Field(default=24 * 60 * 60)
    jwks_cache_size: int = Field(default=8)
    access_token_refresh_seconds: float = Field(default=6 * 60 * 60)
    integration_cache_size: int = Field(default=16)
    integration_cache_ttl_seconds: float = Field(default=60)

    # Outbound HTTP timeouts (seconds)
    connect_timeout: float = Field(default=2.5)
    read_timeout: float = Field(default=5.0)
    token_connect_timeout: float = Field(default=3.0)

    @property
    def scheme(self) -> str:
        return "https" if self.https else "http"


def get_settings(**overrides) -> IntegrationSettings:
    """Get gateway settings, letting explicit overrides win over the environment."""
    return IntegrationSettings(**overrides)
