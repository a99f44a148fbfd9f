"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="AUTOMATION_",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Application settings
    app_name: str = "CRM Automation Engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # CORS settings
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./automations.db"
    max_run_list: int = 100

    # Execution settings
    scheduler_poll_interval: float = 5.0
    executor_timeout: float = 30.0
    webhook_timeout: float = 15.0

    # Business hours used by the outside_business_hours condition
    business_hours_start: str = "09:00"
    business_hours_end: str = "18:00"
    business_days: list[int] = [0, 1, 2, 3, 4]
    business_timezone: str = "UTC"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
