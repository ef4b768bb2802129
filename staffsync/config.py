"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables (prefix `STAFFSYNC_`)."""

    model_config = SettingsConfigDict(
        env_prefix="STAFFSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider API
    provider_base_url: str = Field(default="https://api.laboredge.com")
    provider_timeout_seconds: float = Field(default=10.0)
    provider_username: str = Field(default="")
    provider_password: str = Field(default="")
    provider_org_code: str = Field(default="")

    # Token cache
    redis_url: str | None = Field(default=None)
    token_encryption_key: str | None = Field(default=None)
    token_cache_prefix: str = Field(default="staffsync:provider")

    # Resilience
    circuit_breaker_threshold: int = Field(default=5)
    circuit_breaker_reset_seconds: float = Field(default=30.0)
    retry_max_retries: int = Field(default=3)
    retry_initial_delay_seconds: float = Field(default=1.0)
    retry_max_delay_seconds: float = Field(default=10.0)
    retry_backoff_factor: float = Field(default=2.0)
    retry_jitter: bool = Field(default=False)

    # Sync
    sync_page_size: int = Field(default=100)
    migration_page_pause_seconds: float = Field(default=1.0)
    seo_brand: str = Field(default="Excel Medical Staffing")

    # Webhooks
    webhook_shared_secret: str | None = Field(default=None)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    # Metrics
    metrics_pushgateway_url: str | None = Field(default=None)
    metrics_job_name: str = Field(default="staffsync")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
