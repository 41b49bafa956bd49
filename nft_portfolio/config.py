"""NFTGo proxy settings (pydantic-settings v2).

Configuration priority (highest to lowest):
1. Environment variables (NFTGO_API_KEY, MORALIS_API_KEY, APP_ENV, ...)
2. .env file
3. Default values

Example .env:
    NFTGO_API_KEY=your_api_key_here
    MORALIS_API_KEY=your_moralis_key_here
    APP_ENV=production
    LOG_JSON=true
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nft_portfolio.core.errors import ConfigurationError


class Environment(StrEnum):
    """Deployment environments."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class NFTGoSettings(BaseSettings):
    """Typed configuration for the proxy service and portfolio layer.

    A missing API key does not fail loading; vendor-bound operations raise
    ConfigurationError through ``require_api_key()`` instead.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        validate_default=True,
    )

    # Vendor connection
    api_key: Annotated[
        SecretStr | None,
        Field(
            validation_alias=AliasChoices("NFTGO_API_KEY", "api_key"),
            description="NFTGo API key (sent as X-API-KEY)",
        ),
    ] = None

    base_url: Annotated[
        str,
        Field(
            validation_alias=AliasChoices("NFTGO_BASE_URL", "base_url"),
            description="NFTGo data API base URL",
        ),
    ] = "https://data-api.nftgo.io"

    chain: Annotated[
        str,
        Field(validation_alias=AliasChoices("NFTGO_CHAIN", "chain")),
    ] = "ethereum"

    moralis_api_key: Annotated[
        SecretStr | None,
        Field(
            validation_alias=AliasChoices("MORALIS_API_KEY", "moralis_api_key"),
            description="Moralis API key (sent as X-API-Key)",
        ),
    ] = None

    moralis_base_url: Annotated[
        str,
        Field(validation_alias=AliasChoices("MORALIS_BASE_URL", "moralis_base_url")),
    ] = "https://deep-index.moralis.io/api/v2.2"

    request_timeout: Annotated[
        float,
        Field(
            ge=1.0,
            le=300.0,
            validation_alias=AliasChoices("NFTGO_REQUEST_TIMEOUT", "request_timeout"),
        ),
    ] = 30.0

    environment: Annotated[
        Environment,
        Field(validation_alias=AliasChoices("APP_ENV", "environment")),
    ] = Environment.DEVELOPMENT

    # Bulk pricing proxy
    bulk_pricing_max_batch: Annotated[int, Field(ge=1, le=500)] = 50
    bulk_pricing_cache_ttl: Annotated[float, Field(ge=0.0)] = 300.0
    bulk_pricing_rate_max: Annotated[int, Field(ge=1)] = 2
    bulk_pricing_rate_window: Annotated[float, Field(gt=0.0)] = 10.0
    response_cache_max_entries: Annotated[int, Field(ge=1)] = 20
    response_cache_keep_entries: Annotated[int, Field(ge=1)] = 10
    upstream_max_retries: Annotated[int, Field(ge=0, le=10)] = 2
    upstream_retry_delay: Annotated[float, Field(ge=0.0)] = 1.0

    # Orders-by-maker proxy
    maker_orders_cache_ttl: Annotated[float, Field(ge=0.0)] = 300.0
    maker_orders_rate_max: Annotated[int, Field(ge=1)] = 5
    maker_orders_rate_window: Annotated[float, Field(gt=0.0)] = 60.0

    # Outbound NFTGo calls, shared by every route
    nftgo_rate_max: Annotated[int, Field(ge=1)] = 10
    nftgo_rate_window: Annotated[float, Field(gt=0.0)] = 1.0

    # Server
    host: str = "0.0.0.0"
    port: Annotated[int, Field(ge=1, le=65535)] = 8080
    cors_origins: list[str] = ["*"]
    log_level: Annotated[
        str,
        Field(validation_alias=AliasChoices("LOG_LEVEL", "log_level")),
    ] = "INFO"
    log_json: Annotated[
        bool,
        Field(validation_alias=AliasChoices("LOG_JSON", "log_json")),
    ] = False

    @field_validator("base_url", "moralis_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("response_cache_keep_entries")
    @classmethod
    def validate_keep_entries(cls, v: int, info) -> int:
        """Ensure keep_entries <= max_entries."""
        max_entries = info.data.get("response_cache_max_entries")
        if max_entries is not None and v > max_entries:
            msg = f"response_cache_keep_entries ({v}) must be <= response_cache_max_entries ({max_entries})"
            raise ValueError(msg)
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    def require_api_key(self) -> str:
        """Return the API key or raise ConfigurationError."""
        if self.api_key is None or not self.api_key.get_secret_value():
            raise ConfigurationError("API key configuration error")
        return self.api_key.get_secret_value()

    def require_moralis_api_key(self) -> str:
        if self.moralis_api_key is None or not self.moralis_api_key.get_secret_value():
            raise ConfigurationError("API key configuration error")
        return self.moralis_api_key.get_secret_value()


@lru_cache
def get_settings() -> NFTGoSettings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once from environment.
    """
    return NFTGoSettings()
