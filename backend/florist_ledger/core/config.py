"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. This ensures:
1. Type validation at startup
2. Centralized configuration
3. Documentation of available settings
4. Proper defaults
"""

from functools import lru_cache
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - defaults to relative path for Docker, override via env for local dev
    database_url: str = "sqlite:///./data/florist_ledger.db"

    # Calendar days for order windows and daily stats are taken in this zone
    timezone: str = "Asia/Seoul"

    # ==========================================================================
    # Stock transactions
    # ==========================================================================
    stock_max_retries: int = 5  # optimistic write attempts per item
    order_compensate_on_failure: bool = True
    order_missing_item_policy: Literal["skip", "fail"] = "skip"
    validate_branch_names: bool = False

    # ==========================================================================
    # Collaborator notifications
    # ==========================================================================
    order_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 5.0

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_writes: str = "30/minute"
    rate_limit_reads: str = "60/minute"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone '{v}'")
        return v

    @field_validator("stock_max_retries")
    @classmethod
    def validate_stock_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("stock_max_retries must be at least 1")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        """Local zone used for calendar-day boundaries."""
        return ZoneInfo(self.timezone)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
