"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
payout tracker, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from payout_tracker.errors import MissingCredentialError

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

Command = Literal[
    "sync-firms",
    "sync-traders",
    "sync-firm",
    "sync-wallet",
    "backfill",
    "backfill-firm",
    "sweep",
    "run",
    "worker",
    "enqueue-backfill",
    "validate-overlap",
    "add-firm",
    "link-wallet",
    "init-db",
]

# Commands that call the explorer API.
_EXPLORER_COMMANDS = frozenset(
    {"sync-firms", "sync-traders", "sync-firm", "sync-wallet", "backfill", "backfill-firm", "run", "worker"}
)


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
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


class ExplorerSettings(BaseSettings):
    """Block explorer (Etherscan V2 compatible) API settings."""

    model_config = SettingsConfigDict(env_prefix="EXPLORER_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="EXPLORER_API_KEY",
        description="Explorer API key (required for any command that fetches transfers)",
    )
    base_url: str = Field(
        default="https://api.etherscan.io/v2/api",
        alias="EXPLORER_BASE_URL",
        description="Explorer API endpoint",
    )
    chain_id: int = Field(
        default=42161,
        alias="EXPLORER_CHAIN_ID",
        ge=1,
        description="Chain ID passed as `chainid` (Arbitrum One=42161)",
    )
    timeout_seconds: float = Field(
        default=10.0,
        alias="EXPLORER_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="Per-attempt request timeout",
    )
    max_retries: int = Field(
        default=3,
        alias="EXPLORER_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries after the first attempt",
    )
    backoff_schedule_seconds: Annotated[tuple[float, ...], NoDecode] = Field(
        default=(1.0, 2.0, 4.0),
        alias="EXPLORER_BACKOFF_SCHEDULE_SECONDS",
        description="Delay before each retry; the last value repeats",
    )
    backoff_max_seconds: float = Field(
        default=30.0,
        alias="EXPLORER_BACKOFF_MAX_SECONDS",
        gt=0.0,
        description="Upper bound for a single backoff delay",
    )
    page_size: int = Field(
        default=1000,
        alias="EXPLORER_PAGE_SIZE",
        ge=1,
        le=10_000,
        description="Records per page when walking full history",
    )
    page_delay_seconds: float = Field(
        default=0.5,
        alias="EXPLORER_PAGE_DELAY_SECONDS",
        ge=0.0,
        description="Pause between history pages",
    )
    daily_limit: int = Field(
        default=100_000,
        alias="EXPLORER_DAILY_LIMIT",
        ge=1,
        description="Daily call budget used for usage warnings",
    )
    circuit_failure_threshold: int = Field(
        default=5,
        alias="EXPLORER_CIRCUIT_FAILURE_THRESHOLD",
        ge=1,
        le=100,
        description="Consecutive failed fetches before the circuit opens",
    )
    circuit_reset_seconds: float = Field(
        default=60.0,
        alias="EXPLORER_CIRCUIT_RESET_SECONDS",
        gt=0.0,
        description="How long the circuit stays open before a trial call",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("EXPLORER_BASE_URL must be an HTTP(S) endpoint")
        return v

    @field_validator("backoff_schedule_seconds", mode="before")
    @classmethod
    def _parse_backoff_schedule(cls, v: object) -> tuple[float, ...]:
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            v = parts
        if isinstance(v, (list, tuple)):
            if not v:
                raise ValueError("EXPLORER_BACKOFF_SCHEDULE_SECONDS must not be empty")
            return tuple(float(x) for x in v)
        raise TypeError("Invalid EXPLORER_BACKOFF_SCHEDULE_SECONDS type")


class SyncSettings(BaseSettings):
    """Live sync sweep settings."""

    model_config = SettingsConfigDict(env_prefix="SYNC_", extra="ignore")

    interval_seconds: int = Field(
        default=300,
        alias="SYNC_INTERVAL_SECONDS",
        ge=10,
        le=86_400,
        description="How often the scheduler runs a live sweep",
    )
    inter_wallet_delay_seconds: float = Field(
        default=1.0,
        alias="SYNC_INTER_WALLET_DELAY_SECONDS",
        ge=0.0,
        description="Pause between tracked subjects within one sweep",
    )
    inter_address_delay_seconds: float = Field(
        default=0.5,
        alias="SYNC_INTER_ADDRESS_DELAY_SECONDS",
        ge=0.0,
        description="Pause between the wallets of one firm",
    )
    live_window_hours: int = Field(
        default=24,
        alias="SYNC_LIVE_WINDOW_HOURS",
        ge=1,
        le=24 * 30,
        description="Only transfers newer than this are kept in the live tables",
    )
    retention_hours: int = Field(
        default=24,
        alias="SYNC_RETENTION_HOURS",
        ge=1,
        le=24 * 30,
        description="Live rows older than this are swept",
    )
    min_payout_usd: Decimal = Field(
        default=Decimal("10"),
        alias="SYNC_MIN_PAYOUT_USD",
        description="Transfers below this USD value are not payouts",
    )

    @field_validator("min_payout_usd")
    @classmethod
    def validate_min_payout_usd(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("SYNC_MIN_PAYOUT_USD must be >= 0")
        return v


class PricingSettings(BaseSettings):
    """Static USD price table."""

    model_config = SettingsConfigDict(env_prefix="PRICE_", extra="ignore")

    eth_usd: Decimal = Field(
        default=Decimal("2500"),
        alias="PRICE_ETH_USD",
        description="USD price applied to native ETH transfers",
    )
    stable_usd: Decimal = Field(
        default=Decimal("1"),
        alias="PRICE_STABLE_USD",
        description="USD price applied to supported stablecoin tokens",
    )
    supported_tokens: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("USDC", "USDT", "RISEPAY"),
        alias="PRICE_SUPPORTED_TOKENS",
        description="Token symbols recognized as payouts",
    )

    @field_validator("eth_usd", "stable_usd")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Prices must be > 0")
        return v

    @field_validator("supported_tokens", mode="before")
    @classmethod
    def _parse_supported_tokens(cls, v: object) -> tuple[str, ...]:
        if isinstance(v, str):
            return tuple(p.strip().upper() for p in v.split(",") if p.strip())
        if isinstance(v, (list, tuple)):
            return tuple(str(x).upper() for x in v)
        raise TypeError("Invalid PRICE_SUPPORTED_TOKENS type")


class BackfillSettings(BaseSettings):
    """Backfill job queue settings."""

    model_config = SettingsConfigDict(env_prefix="BACKFILL_", extra="ignore")

    queue_key: str = Field(
        default="payout_tracker:backfill_jobs",
        alias="BACKFILL_QUEUE_KEY",
        description="Redis list holding pending backfill jobs",
    )
    max_attempts: int = Field(
        default=3,
        alias="BACKFILL_MAX_ATTEMPTS",
        ge=1,
        le=20,
        description="Attempts per job before it is dropped",
    )
    dequeue_timeout_seconds: int = Field(
        default=5,
        alias="BACKFILL_DEQUEUE_TIMEOUT_SECONDS",
        ge=1,
        le=300,
        description="Blocking pop timeout for the worker",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from payout_tracker.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.explorer.chain_id)
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
    explorer: ExplorerSettings = Field(
        default_factory=lambda: ExplorerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    sync: SyncSettings = Field(
        default_factory=lambda: SyncSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    pricing: PricingSettings = Field(
        default_factory=lambda: PricingSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    backfill: BackfillSettings = Field(
        default_factory=lambda: BackfillSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
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
            "explorer": {
                "base_url": self.explorer.base_url,
                "chain_id": str(self.explorer.chain_id),
                "api_key": "(set)" if self.explorer.api_key else "(not set)",
                "max_retries": str(self.explorer.max_retries),
                "page_size": str(self.explorer.page_size),
            },
            "sync": {
                "interval_seconds": str(self.sync.interval_seconds),
                "live_window_hours": str(self.sync.live_window_hours),
                "retention_hours": str(self.sync.retention_hours),
                "min_payout_usd": str(self.sync.min_payout_usd),
            },
            "pricing": {
                "eth_usd": str(self.pricing.eth_usd),
                "supported_tokens": ",".join(self.pricing.supported_tokens),
            },
            "log_level": self.log_level,
        }

    def validate_requirements(self, *, command: Command) -> None:
        """Validate command-specific requirements.

        Commands that talk to the explorer refuse to start without an API
        key, before any wallet is touched.
        """
        if command in _EXPLORER_COMMANDS:
            key = self.explorer.api_key.get_secret_value() if self.explorer.api_key else ""
            if not key.strip():
                raise MissingCredentialError("EXPLORER_API_KEY is required to fetch wallet transfers")

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
