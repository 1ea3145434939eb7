"""
Configuration management using pydantic-settings.

Loads cache configuration from SQLCACHE_-prefixed environment variables and
.env files. Validates connection fallbacks, the sweep interval floor and the
default sliding expiration.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MINIMUM_EXPIRED_ITEMS_DELETION_INTERVAL = timedelta(minutes=5)
DEFAULT_EXPIRED_ITEMS_DELETION_INTERVAL = timedelta(minutes=30)
DEFAULT_SLIDING_EXPIRATION = timedelta(minutes=20)
DEFAULT_TABLE_NAME = "CacheItems"


class CacheSettings(BaseSettings):
    """Cache settings loaded from environment variables.

    Required:
        SQLCACHE_CONNECTION, or both SQLCACHE_READ_CONNECTION and
        SQLCACHE_WRITE_CONNECTION: SQLite database paths

    Optional:
        SQLCACHE_SCHEMA_NAME: Schema (attached database) holding the table
        SQLCACHE_TABLE_NAME: Cache table name
        SQLCACHE_EXPIRED_ITEMS_DELETION_INTERVAL: Minimum time between sweeps
        SQLCACHE_DEFAULT_SLIDING_EXPIRATION: Window used when callers opt into defaults
        SQLCACHE_BUSY_TIMEOUT_SECONDS: How long a statement waits on a locked database
        SQLCACHE_LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_prefix="SQLCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connections - CONNECTION fills in whichever side is unset
    CONNECTION: str | None = Field(
        default=None,
        description="Database path used for both reads and writes",
    )
    READ_CONNECTION: str | None = Field(
        default=None, description="Database path used for non-mutating reads"
    )
    WRITE_CONNECTION: str | None = Field(
        default=None, description="Database path used for every mutating statement"
    )

    # Table
    SCHEMA_NAME: str | None = Field(
        default=None, description="Schema (attached database) holding the cache table"
    )
    TABLE_NAME: str = Field(
        default=DEFAULT_TABLE_NAME, min_length=1, description="Cache table name"
    )

    # Expiration
    EXPIRED_ITEMS_DELETION_INTERVAL: timedelta = Field(
        default=DEFAULT_EXPIRED_ITEMS_DELETION_INTERVAL,
        description="Minimum time between two sweeps of expired rows",
    )
    DEFAULT_SLIDING_EXPIRATION: timedelta = Field(
        default=DEFAULT_SLIDING_EXPIRATION,
        description="Sliding window applied when a caller opts into defaults",
    )

    # Driver
    BUSY_TIMEOUT_SECONDS: float = Field(
        default=5.0, gt=0.0, description="Seconds a statement waits on a locked database"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @field_validator("EXPIRED_ITEMS_DELETION_INTERVAL")
    @classmethod
    def validate_deletion_interval(cls, v: timedelta) -> timedelta:
        """Reject sweep intervals shorter than the minimum."""
        if v < MINIMUM_EXPIRED_ITEMS_DELETION_INTERVAL:
            minutes = MINIMUM_EXPIRED_ITEMS_DELETION_INTERVAL.total_seconds() / 60
            raise ValueError(
                f"EXPIRED_ITEMS_DELETION_INTERVAL cannot be less than the minimum "
                f"value of {minutes:g} minutes"
            )
        return v

    @field_validator("DEFAULT_SLIDING_EXPIRATION")
    @classmethod
    def validate_default_sliding(cls, v: timedelta) -> timedelta:
        """The default sliding window must be positive."""
        if v <= timedelta(0):
            raise ValueError("DEFAULT_SLIDING_EXPIRATION must be positive")
        return v

    @model_validator(mode="after")
    def resolve_connections(self) -> CacheSettings:
        """Fill read/write connections from CONNECTION and require both."""
        if self.WRITE_CONNECTION is None:
            self.WRITE_CONNECTION = self.CONNECTION
        if self.READ_CONNECTION is None:
            self.READ_CONNECTION = self.CONNECTION or self.WRITE_CONNECTION
        if not self.READ_CONNECTION or not self.WRITE_CONNECTION:
            raise ValueError(
                "A database connection must be configured: "
                "CONNECTION, or READ_CONNECTION and WRITE_CONNECTION"
            )
        return self

    @property
    def read_connection(self) -> str:
        """Get the read connection (lowercase alias)."""
        assert self.READ_CONNECTION is not None
        return self.READ_CONNECTION

    @property
    def write_connection(self) -> str:
        """Get the write connection (lowercase alias)."""
        assert self.WRITE_CONNECTION is not None
        return self.WRITE_CONNECTION

    def ensure_directories(self) -> None:
        """Create parent directories for file-backed databases."""
        for connection in {self.read_connection, self.write_connection}:
            if connection != ":memory:":
                Path(connection).parent.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | float | None]:
        """Return settings as display strings."""
        return {
            "READ_CONNECTION": self.READ_CONNECTION,
            "WRITE_CONNECTION": self.WRITE_CONNECTION,
            "SCHEMA_NAME": self.SCHEMA_NAME,
            "TABLE_NAME": self.TABLE_NAME,
            "EXPIRED_ITEMS_DELETION_INTERVAL": str(self.EXPIRED_ITEMS_DELETION_INTERVAL),
            "DEFAULT_SLIDING_EXPIRATION": str(self.DEFAULT_SLIDING_EXPIRATION),
            "BUSY_TIMEOUT_SECONDS": self.BUSY_TIMEOUT_SECONDS,
            "LOG_LEVEL": self.LOG_LEVEL,
        }


@lru_cache
def get_settings() -> CacheSettings:
    """Get cached settings singleton.

    Returns:
        CacheSettings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return CacheSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
