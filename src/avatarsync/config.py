"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        CACHE_DIR: Directory holding one blob file per avatar ID
        KV_STORE_PATH: SQLite file backing the host key-value store
        KV_STORE_MAX_BYTES: Size quota of the key-value store (unset = unlimited)
        CACHE_EXPIRY_DAYS: Age after which cached avatars are evicted
        AVATAR_CACHE_SIZE: Maximum number of cached avatars kept after eviction
        SERVER_URL: Base URL of the game server
        REQUEST_TIMEOUT: Network timeout in seconds
        REQUEST_RETRIES: Attempts per request on connection errors
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON Lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    CACHE_DIR: Path = Field(
        default=Path(".cache/avatars"), description="Avatar blob directory"
    )
    KV_STORE_PATH: Path = Field(
        default=Path(".cache/storage.db"), description="Host key-value store file"
    )
    KV_STORE_MAX_BYTES: int | None = Field(
        default=6 * 1024 * 1024,
        ge=4096,
        description="Key-value store quota in bytes (unset for unlimited)",
    )

    # Cache policy
    CACHE_EXPIRY_DAYS: float = Field(
        default=7.0, ge=0.0, description="Days before a cached avatar expires"
    )
    AVATAR_CACHE_SIZE: int | None = Field(
        default=50, ge=0, description="Maximum number of cached avatars"
    )

    # Network
    SERVER_URL: str = Field(
        default="http://localhost:4000", description="Game server base URL"
    )
    REQUEST_TIMEOUT: float = Field(
        default=10.0, gt=0.0, description="Network timeout in seconds"
    )
    REQUEST_RETRIES: int = Field(
        default=3, ge=1, description="Attempts per avatar request on transport errors"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(
        default=None, description="JSON Lines log file (unset for console only)"
    )

    @property
    def cache_max_age(self) -> timedelta:
        """Get the eviction TTL as a timedelta."""
        return timedelta(days=self.CACHE_EXPIRY_DAYS)

    @property
    def server_url(self) -> str:
        """Get server URL without a trailing slash."""
        return self.SERVER_URL.rstrip("/")

    @field_validator("SERVER_URL")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Validate that SERVER_URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("SERVER_URL must start with http:// or https://")
        return v

    def ensure_directories(self) -> None:
        """Create cache and key-value store directories if they don't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)
        self.KV_STORE_PATH.parent.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | int | float | None]:
        """Return settings as plain values for display."""
        return {
            "CACHE_DIR": str(self.CACHE_DIR),
            "KV_STORE_PATH": str(self.KV_STORE_PATH),
            "KV_STORE_MAX_BYTES": self.KV_STORE_MAX_BYTES,
            "CACHE_EXPIRY_DAYS": self.CACHE_EXPIRY_DAYS,
            "AVATAR_CACHE_SIZE": self.AVATAR_CACHE_SIZE,
            "SERVER_URL": self.SERVER_URL,
            "REQUEST_TIMEOUT": self.REQUEST_TIMEOUT,
            "REQUEST_RETRIES": self.REQUEST_RETRIES,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
