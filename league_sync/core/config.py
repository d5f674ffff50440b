"""
Application configuration.

Values are read from the environment and from a `.env` file at the project
root. Field names are upper case and match the environment variable names.
"""
import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Project root is two levels up from this file
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment-specific configuration."""

    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "League Sync API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = f"sqlite:///{PROJECT_ROOT / 'league_sync.db'}"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Sleeper API
    SLEEPER_BASE_URL: str = "https://api.sleeper.app/v1"
    SLEEPER_TIMEOUT: float = 30.0

    # Sync engine
    SYNC_BATCH_SIZE: int = 50
    SYNC_BATCH_DELAY_MS: int = 100
    SYNC_RETRY_ATTEMPTS: int = 3
    SYNC_RETRY_DELAY_MS: int = 1000
    SYNC_RETRY_MAX_DELAY_MS: int = 30000
    SYNC_INTERVAL_MINUTES: int = 30
    AUTO_SYNC_ENABLED: bool = False
    CURRENT_SEASON_ID: Optional[int] = None
    CURRENT_WEEK: int = 1

    # Roster status cache
    ROSTER_CACHE_STALE_SECONDS: int = 120
    ROSTER_CACHE_EXPIRE_SECONDS: int = 300
    ROSTER_REFRESH_ATTEMPTS: int = 3
    ROSTER_REFRESH_DELAY_MS: int = 1000
    ROSTER_REFRESH_MAX_DELAY_MS: int = 5000
    ROSTER_CACHE_VERSION: str = "1.2"
    ROSTER_CACHE_MIRROR_PATH: Optional[str] = None

    # Availability
    AVAILABILITY_CACHE_TTL_SECONDS: int = 60
    MAX_ROSTER_SIZE: int = 22
    FLAG_CROSS_CONFERENCE_OWNERSHIP: bool = True

    # Scheduler
    SCHEDULER_TIMEZONE: str = "America/New_York"
    INTEGRITY_AUDIT_HOUR: int = 4

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    def is_test(self) -> bool:
        """Check if running under the test suite."""
        return self.ENVIRONMENT == "test"


settings = Settings()
