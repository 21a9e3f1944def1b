"""Application configuration models and helpers."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr
from pydantic.functional_validators import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Supported logging levels."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class Settings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # API
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8080, alias="API_PORT")
    max_body_bytes: int = Field(100 * 1024, alias="MAX_BODY_BYTES")
    enable_test_endpoints: bool = Field(True, alias="ENABLE_TEST_ENDPOINTS")

    # Tenants
    tenants_file: Path = Field(Path("data/tenants.json"), alias="TENANTS_FILE")
    master_key: Optional[SecretStr] = Field(None, alias="MASTER_KEY")
    default_max_queue_size: int = Field(10, alias="DEFAULT_MAX_QUEUE_SIZE")

    # Queue / janitor
    active_timeout_sec: float = Field(60.0, alias="ACTIVE_TIMEOUT_SEC")
    janitor_interval_sec: float = Field(10.0, alias="JANITOR_INTERVAL_SEC")
    duplicate_window_sec: float = Field(3.0, alias="DUPLICATE_WINDOW_SEC")
    history_retention_sec: float = Field(5.0, alias="HISTORY_RETENTION_SEC")
    history_max_entries: int = Field(50, alias="HISTORY_MAX_ENTRIES")

    # Webhook rate limiting (token bucket per tenant)
    webhook_rate_capacity: int = Field(30, alias="WEBHOOK_RATE_CAPACITY")
    webhook_rate_refill_per_sec: float = Field(5.0, alias="WEBHOOK_RATE_REFILL_PER_SEC")

    # Misc
    log_level: LogLevel = Field(LogLevel.INFO, alias="LOG_LEVEL")

    @field_validator(
        "api_port",
        "max_body_bytes",
        "default_max_queue_size",
        "history_max_entries",
        "webhook_rate_capacity",
    )
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator(
        "active_timeout_sec",
        "janitor_interval_sec",
        "duplicate_window_sec",
        "history_retention_sec",
        "webhook_rate_refill_per_sec",
    )
    @classmethod
    def _ensure_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Duration must be positive")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
