"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Polymarket Signal Tracker application, loading and validating
environment variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string (sqlite+aiosqlite:// for local runs)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class PolygonSettings(BaseSettings):
    """Polygon RPC settings used for wallet transaction counts."""

    model_config = SettingsConfigDict(env_prefix="POLYGON_", extra="ignore")

    rpc_url: str = Field(
        default="https://polygon-rpc.com",
        alias="POLYGON_RPC_URL",
        description="Primary Polygon RPC endpoint",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="POLYGON_FALLBACK_RPC_URL",
        description="Fallback Polygon RPC endpoint",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v


class PolymarketSettings(BaseSettings):
    """Polymarket endpoints."""

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    trade_ws_url: str = Field(
        default="wss://ws-live-data.polymarket.com",
        alias="POLYMARKET_TRADE_WS_URL",
        description="WebSocket URL for the trade activity feed",
    )
    gamma_api_url: str = Field(
        default="https://gamma-api.polymarket.com",
        alias="POLYMARKET_GAMMA_API_URL",
        description="Market metadata (Gamma) API base URL",
    )
    data_api_url: str = Field(
        default="https://data-api.polymarket.com",
        alias="POLYMARKET_DATA_API_URL",
        description="Positions and leaderboard API base URL",
    )
    clob_host: str = Field(
        default="https://clob.polymarket.com",
        alias="POLYMARKET_CLOB_HOST",
        description="CLOB HTTP API host (order books)",
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        alias="POLYMARKET_HTTP_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
        description="Timeout applied to every outbound HTTP request",
    )

    @field_validator("trade_ws_url")
    @classmethod
    def validate_ws_url(cls, v: str) -> str:
        """Validate WebSocket URL format."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("WebSocket URL must start with ws:// or wss://")
        return v

    @field_validator("gamma_api_url", "data_api_url", "clob_host")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Polymarket API URLs must be HTTP(S) endpoints")
        return v.rstrip("/")


class WorkerSettings(BaseSettings):
    """Trade filtering and event publishing settings."""

    model_config = SettingsConfigDict(env_prefix="WORKER_", extra="ignore")

    min_trade_value: float = Field(
        default=1000.0,
        alias="WORKER_MIN_TRADE_VALUE",
        ge=0.0,
        description="Trades with a smaller notional value (USDC) are dropped",
    )
    resolved_price_threshold: float = Field(
        default=0.97,
        alias="WORKER_RESOLVED_PRICE_THRESHOLD",
        gt=0.0,
        le=1.0,
        description="Trades priced above this are treated as already-resolved outcomes",
    )
    event_channel: str = Field(
        default="polymarket:trades",
        alias="WORKER_EVENT_CHANNEL",
        min_length=1,
        description="Redis pub/sub channel for emitted trade events",
    )


class WhaleTierSettings(BaseSettings):
    """Notional value thresholds for whale tiers."""

    model_config = SettingsConfigDict(env_prefix="WHALE_", extra="ignore")

    whale: float = Field(default=8000.0, alias="WHALE_THRESHOLD", gt=0.0)
    mega: float = Field(default=15000.0, alias="WHALE_MEGA_THRESHOLD", gt=0.0)
    super_: float = Field(default=50000.0, alias="WHALE_SUPER_THRESHOLD", gt=0.0)
    god: float = Field(default=100000.0, alias="WHALE_GOD_THRESHOLD", gt=0.0)

    @model_validator(mode="after")
    def validate_ascending(self) -> WhaleTierSettings:
        """Thresholds must be strictly ascending."""
        if not (self.whale < self.mega < self.super_ < self.god):
            raise ValueError("Whale thresholds must be strictly ascending")
        return self


class CacheSettings(BaseSettings):
    """In-memory metadata cache and profile cache settings."""

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")

    metadata_refresh_seconds: int = Field(
        default=300,
        alias="CACHE_METADATA_REFRESH_SECONDS",
        ge=10,
        le=86_400,
        description="How often the market metadata snapshot is rebuilt",
    )
    max_markets: int = Field(
        default=5000,
        alias="CACHE_MAX_MARKETS",
        ge=10,
        le=1_000_000,
        description="Capacity of the condition -> market map",
    )
    max_assets: int = Field(
        default=10000,
        alias="CACHE_MAX_ASSETS",
        ge=10,
        le=1_000_000,
        description="Capacity of the asset -> outcome map",
    )
    profile_ttl_seconds: int = Field(
        default=24 * 3600,
        alias="CACHE_PROFILE_TTL_SECONDS",
        ge=60,
        le=30 * 24 * 3600,
        description="Redis TTL for cached trader profiles",
    )


class LeaderboardSettings(BaseSettings):
    """Leaderboard refresh settings."""

    model_config = SettingsConfigDict(env_prefix="LEADERBOARD_", extra="ignore")

    refresh_seconds: int = Field(
        default=3600,
        alias="LEADERBOARD_REFRESH_SECONDS",
        ge=60,
        le=86_400,
        description="How often leaderboard ranks are refreshed",
    )
    limit: int = Field(
        default=200,
        alias="LEADERBOARD_LIMIT",
        ge=1,
        le=500,
        description="Ranked wallets fetched per leaderboard period",
    )


class RateLimitSettings(BaseSettings):
    """Adaptive rate limiting toward external APIs."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_", extra="ignore")

    base_delay_seconds: float = Field(
        default=0.2,
        alias="RATE_LIMIT_BASE_DELAY_SECONDS",
        ge=0.0,
        le=10.0,
        description="Minimum spacing between outbound calls",
    )
    error_step_seconds: float = Field(
        default=0.1,
        alias="RATE_LIMIT_ERROR_STEP_SECONDS",
        ge=0.0,
        le=10.0,
        description="Extra delay added per recent consecutive failure",
    )
    max_error_count: int = Field(
        default=5,
        alias="RATE_LIMIT_MAX_ERROR_COUNT",
        ge=1,
        le=100,
        description="Cap on the tracked failure count",
    )


class SignalSettings(BaseSettings):
    """Composite signal aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="SIGNAL_", extra="ignore")

    window_hours: int = Field(
        default=24,
        alias="SIGNAL_WINDOW_HOURS",
        ge=1,
        le=168,
        description="Trade window aggregated per scoring pass",
    )
    max_trades: int = Field(
        default=4000,
        alias="SIGNAL_MAX_TRADES",
        ge=1,
        le=100_000,
        description="Maximum trades loaded per scoring pass",
    )
    top_trader_max_rank: int = Field(
        default=200,
        alias="SIGNAL_TOP_TRADER_MAX_RANK",
        ge=1,
        le=200,
        description="Wallets ranked at or above this count as top traders",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polymarket_signal_tracker.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.worker.min_trade_value)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polygon: PolygonSettings = Field(
        default_factory=lambda: PolygonSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polymarket: PolymarketSettings = Field(
        default_factory=lambda: PolymarketSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    worker: WorkerSettings = Field(
        default_factory=lambda: WorkerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    whale_tiers: WhaleTierSettings = Field(
        default_factory=lambda: WhaleTierSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    cache: CacheSettings = Field(
        default_factory=lambda: CacheSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    leaderboard: LeaderboardSettings = Field(
        default_factory=lambda: LeaderboardSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    rate_limit: RateLimitSettings = Field(
        default_factory=lambda: RateLimitSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    signal: SignalSettings = Field(
        default_factory=lambda: SignalSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Process trades without publishing events",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url),
            "polygon": {
                "rpc_url": self._redact_url(self.polygon.rpc_url),
                "fallback_rpc_url": (
                    self._redact_url(self.polygon.fallback_rpc_url)
                    if self.polygon.fallback_rpc_url
                    else "(not set)"
                ),
            },
            "polymarket": {
                "trade_ws_url": self.polymarket.trade_ws_url,
                "gamma_api_url": self.polymarket.gamma_api_url,
                "data_api_url": self.polymarket.data_api_url,
                "clob_host": self.polymarket.clob_host,
            },
            "worker": {
                "min_trade_value": str(self.worker.min_trade_value),
                "resolved_price_threshold": str(self.worker.resolved_price_threshold),
                "event_channel": self.worker.event_channel,
            },
            "cache": {
                "metadata_refresh_seconds": str(self.cache.metadata_refresh_seconds),
                "max_markets": str(self.cache.max_markets),
                "max_assets": str(self.cache.max_assets),
            },
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
