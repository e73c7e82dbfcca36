"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; if a required setting is missing, the app fails fast with a
clear error message.

Two layers:
    - Settings: process-level configuration (database, secrets, providers).
    - PlatformConfig: the versioned business configuration (platform fee,
      feature toggles, negotiation minimums, poller limits). It is frozen and
      injected into every service at construction time instead of being
      read as ambient global state.

Usage:
    from charter_coordinator.config import get_platform_config, get_settings
    settings = get_settings()
    platform = get_platform_config()
    print(platform.version, platform.platform_fee_percent)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Charter Coordinator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_public_url: str = "http://localhost:3000"

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://charter:charter_dev"
        "@localhost:5432/charter_coordinator"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"

    # --- Scheduler trigger ---
    cron_secret: str = ""

    # --- MCP read models (bearer token for /mcp) ---
    mcp_secret: str = ""

    # --- Payment providers ---
    paystack_secret_key: str = ""
    flutterwave_secret_hash: str = ""

    # --- AIS providers ---
    marinetraffic_api_key: str = ""
    marinetraffic_base_url: str = "https://services.marinetraffic.com/api"
    exactearth_api_key: str = ""
    exactearth_base_url: str = "https://api.exactearth.com/v1"

    # --- Document storage ---
    document_store_path: str = "./var/documents"
    document_store_public_url: str = "file://./var/documents"

    # --- Platform configuration (see PlatformConfig) ---
    platform_config_version: str = "2024-01"
    platform_fee_percent: Decimal = Decimal("7")
    platform_default_currency: str = "NGN"
    paystack_enabled: bool = True
    flutterwave_enabled: bool = True
    booking_enabled: bool = True
    min_purpose_length: int = 10
    min_counter_note_length: int = 10
    min_release_reason_length: int = 10
    ais_request_timeout_seconds: float = 10.0
    poller_concurrency: int = 8
    poller_tick_deadline_seconds: float = 120.0
    tracking_stale_after_minutes: int = 15

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def sync_database_url(self) -> str:
        """Synchronous database URL for Alembic migrations."""
        return self.database_url.replace("+asyncpg", "+psycopg2")


class PlatformConfig(BaseModel):
    """Versioned business configuration shared by every component.

    Escrow transactions record the ``version`` they were priced with so that
    fee changes never silently re-price an open escrow.
    """

    model_config = ConfigDict(frozen=True)

    version: str
    platform_fee_percent: Decimal = Field(default=Decimal("7"), ge=0, le=100)
    default_currency: str = "NGN"
    paystack_enabled: bool = True
    flutterwave_enabled: bool = True
    booking_enabled: bool = True
    min_purpose_length: int = Field(default=10, ge=0)
    min_counter_note_length: int = Field(default=10, ge=0)
    min_release_reason_length: int = Field(default=10, ge=0)
    ais_request_timeout_seconds: float = Field(default=10.0, gt=0)
    poller_concurrency: int = Field(default=8, ge=1)
    poller_tick_deadline_seconds: float = Field(default=120.0, gt=0)
    tracking_stale_after_minutes: int = Field(default=15, ge=1)


def load_platform_config(settings: Settings) -> PlatformConfig:
    """Build the frozen platform configuration from process settings."""
    return PlatformConfig(
        version=settings.platform_config_version,
        platform_fee_percent=settings.platform_fee_percent,
        default_currency=settings.platform_default_currency,
        paystack_enabled=settings.paystack_enabled,
        flutterwave_enabled=settings.flutterwave_enabled,
        booking_enabled=settings.booking_enabled,
        min_purpose_length=settings.min_purpose_length,
        min_counter_note_length=settings.min_counter_note_length,
        min_release_reason_length=settings.min_release_reason_length,
        ais_request_timeout_seconds=settings.ais_request_timeout_seconds,
        poller_concurrency=settings.poller_concurrency,
        poller_tick_deadline_seconds=settings.poller_tick_deadline_seconds,
        tracking_stale_after_minutes=settings.tracking_stale_after_minutes,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()


@lru_cache(maxsize=1)
def get_platform_config() -> PlatformConfig:
    """Return the platform configuration loaded once at startup."""
    return load_platform_config(get_settings())
