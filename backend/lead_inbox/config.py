"""Application configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://salon:salon123@db:5432/salon"

    # Redis (counts cache + SLA alert cooldowns). Unset -> in-process store.
    REDIS_URL: Optional[str] = None

    # Lead inbox
    COUNTS_CACHE_TTL_SECONDS: int = 30  # Same as the dashboard polling interval
    LEAD_SLA_HOURS: int = 4
    SLA_ALERT_COOLDOWN_HOURS: int = 24

    # Scheduler
    ENABLE_SLA_SCHEDULER: bool = False
    SLA_CHECK_SCHEDULE: str = "0 * * * *"  # Hourly


settings = Settings()
