"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates backend and naming fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcache import __version__

DEFAULT_SOURCE_URL = (
    "https://videos.pexels.com/video-files/6251392/6251392-uhd_2732_1440_24fps.mp4"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Storage:
        CACHE_DIR: Root directory for persistent stores
        STORE_NAME: Name of the process-wide store (database file / directory)
        CONTAINER_NAME: Logical container that holds the entries
        BLOB_BACKEND: "sqlite" (transactional) or "file" (one file per key)

    Loading:
        DEFAULT_CACHE_KEY: Key used when the caller supplies none
        DEFAULT_SOURCE_URL: Remote source used when the caller supplies none
        REQUEST_TIMEOUT: Transport timeout in seconds
        CONNECT_RETRIES: Retries for establishing the connection only
        CHUNK_SIZE: Preferred stream chunk size in bytes
        USER_AGENT: User-Agent header for remote requests

    Playback:
        HANDLE_SPOOL_DIR: Spool handles to files here instead of memory

    Logging:
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON-lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    CACHE_DIR: Path = Field(default=Path(".cache"), description="Cache directory")
    STORE_NAME: str = Field(default="VideoDB", min_length=1, description="Store name")
    CONTAINER_NAME: str = Field(default="videos", description="Entry container name")
    BLOB_BACKEND: Literal["sqlite", "file"] = Field(
        default="sqlite", description="Blob store backend"
    )

    # Loading
    DEFAULT_CACHE_KEY: str = Field(
        default="mainVideo", min_length=1, description="Default cache key"
    )
    DEFAULT_SOURCE_URL: str = Field(
        default=DEFAULT_SOURCE_URL, description="Default remote video URL"
    )
    REQUEST_TIMEOUT: float = Field(
        default=30.0, gt=0.0, description="Transport timeout in seconds"
    )
    CONNECT_RETRIES: int = Field(
        default=0, ge=0, le=5, description="Retries for connection establishment"
    )
    CHUNK_SIZE: int = Field(
        default=64 * 1024, ge=1024, description="Preferred stream chunk size in bytes"
    )
    USER_AGENT: str = Field(
        default=f"mcache/{__version__}", description="User-Agent header"
    )

    # Playback
    HANDLE_SPOOL_DIR: Path | None = Field(
        default=None, description="Directory for file-backed playback handles"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON log file")

    @field_validator("CONTAINER_NAME")
    @classmethod
    def validate_container_name(cls, v: str) -> str:
        """Container names double as SQLite table names."""
        if not v.isidentifier():
            raise ValueError(
                f"CONTAINER_NAME must be a valid identifier, got {v!r}"
            )
        return v

    @field_validator("STORE_NAME")
    @classmethod
    def validate_store_name(cls, v: str) -> str:
        """Store names become a single path component."""
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"STORE_NAME must be a plain name, got {v!r}")
        return v

    @field_validator("DEFAULT_SOURCE_URL")
    @classmethod
    def validate_source_url(cls, v: str) -> str:
        """Validate that the default source is an http(s) URL."""
        if urlparse(v).scheme not in ("http", "https"):
            raise ValueError("DEFAULT_SOURCE_URL must be an http or https URL")
        return v

    @property
    def store_path(self) -> Path:
        """Path of the SQLite database for the sqlite backend."""
        return self.CACHE_DIR / f"{self.STORE_NAME}.db"

    @property
    def container_dir(self) -> Path:
        """Directory holding entry files for the file backend."""
        return self.CACHE_DIR / self.STORE_NAME / self.CONTAINER_NAME

    def ensure_directories(self) -> None:
        """Create cache and spool directories if they don't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)
        if self.HANDLE_SPOOL_DIR is not None:
            self.HANDLE_SPOOL_DIR.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | int | float | None]:
        """Return settings as plain values for display."""
        return {
            "CACHE_DIR": str(self.CACHE_DIR),
            "STORE_NAME": self.STORE_NAME,
            "CONTAINER_NAME": self.CONTAINER_NAME,
            "BLOB_BACKEND": self.BLOB_BACKEND,
            "DEFAULT_CACHE_KEY": self.DEFAULT_CACHE_KEY,
            "DEFAULT_SOURCE_URL": self.DEFAULT_SOURCE_URL,
            "REQUEST_TIMEOUT": self.REQUEST_TIMEOUT,
            "CONNECT_RETRIES": self.CONNECT_RETRIES,
            "CHUNK_SIZE": self.CHUNK_SIZE,
            "USER_AGENT": self.USER_AGENT,
            "HANDLE_SPOOL_DIR": (
                str(self.HANDLE_SPOOL_DIR) if self.HANDLE_SPOOL_DIR else None
            ),
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
