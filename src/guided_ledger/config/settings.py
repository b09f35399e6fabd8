"""Configuration settings for the guided ledger engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Document store
    store_url: str = Field(
        default="http://localhost:8080", validation_alias="LEDGER_STORE_URL"
    )
    store_token: SecretStr | None = Field(
        default=None, validation_alias="LEDGER_STORE_TOKEN"
    )
    store_timeout: float = Field(default=10.0, validation_alias="LEDGER_STORE_TIMEOUT")
    store_max_retries: int = Field(default=3, validation_alias="LEDGER_STORE_MAX_RETRIES")

    # Company registry lookup
    registry_lookup_url: str = Field(
        default="http://localhost:8081", validation_alias="REGISTRY_LOOKUP_URL"
    )

    # Guardrails
    low_confidence_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, validation_alias="LOW_CONFIDENCE_THRESHOLD"
    )
    period_lock_fail_open: bool = Field(
        default=False, validation_alias="PERIOD_LOCK_FAIL_OPEN"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
