import logging
import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Configuration for the database session and its connection pool."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="DATABASE_", extra="ignore"
    )

    path: str = Field("softdal.db", description="Path to the SQLite database file or ':memory:'")
    pool_size: int = Field(5, ge=1, description="Number of pooled connections")
    pool_timeout: float = Field(30.0, gt=0, description="Seconds to wait for a free pooled connection")
    busy_timeout: int = Field(5000, ge=0, description="SQLite busy timeout in milliseconds")
    soft_delete: bool = Field(False, description="Session-wide soft delete default")


class AppSettings(BaseSettings):
    """General application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = Field(False, description="Enable debug mode for development")
    log_level: str = Field("INFO", description="Logging level")

    db: DatabaseSettings = DatabaseSettings()

    @property
    def log_level_value(self) -> int:
        """Return the numeric value of the log level."""
        return logging.getLevelName(self.log_level.upper())


@lru_cache
def get_settings() -> AppSettings:
    """
    Get application settings.
    If the TEST_MODE environment variable is set, it returns an in-memory
    configuration suitable for testing, otherwise loads the configuration
    from the environment and the .env file.
    """
    if os.getenv("TEST_MODE"):
        return AppSettings(
            debug=True,
            log_level="DEBUG",
            db=DatabaseSettings(path=":memory:", pool_size=1, pool_timeout=5.0),
        )
    return AppSettings()
