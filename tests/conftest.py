"""
Pytest configuration and fixtures for media cache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncIterator, Generator
from unittest.mock import patch

import pytest

from mcache.cache.memory_store import MemoryBlobStore
from mcache.config import Settings, clear_settings_cache
from mcache.exceptions import FetchError, StorageError
from mcache.retrieval.base import ChunkStream, StreamingFetcher
from mcache.types import CachedObject, CacheKey

MB = 1024 * 1024


class ScriptedFetcher(StreamingFetcher):
    """StreamingFetcher that replays a fixed list of chunks.

    Args:
        chunks: Chunks to yield, in order.
        total_bytes: Size hint reported by the stream.
        open_error: Raised from open() instead of returning a stream.
        fail_after: Raise a FetchError after this many chunks.
    """

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        total_bytes: int | None = None,
        open_error: Exception | None = None,
        fail_after: int | None = None,
    ) -> None:
        self.chunks = chunks or []
        self.total_bytes = total_bytes
        self.open_error = open_error
        self.fail_after = fail_after
        self.opened_urls: list[str] = []
        self.closed = False

    @property
    def open_calls(self) -> int:
        return len(self.opened_urls)

    async def _replay(self) -> AsyncIterator[bytes]:
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise FetchError("Stream interrupted: connection reset")
            yield chunk

    async def open(self, url: str) -> ChunkStream:
        self.opened_urls.append(url)
        if self.open_error is not None:
            raise self.open_error
        return ChunkStream(url, self._replay(), total_bytes=self.total_bytes)

    async def close(self) -> None:
        self.closed = True


class FailingPutStore(MemoryBlobStore):
    """Memory store whose writes always fail."""

    async def put(self, key: CacheKey, obj: CachedObject) -> None:
        raise StorageError("Failed to write entry: disk full", context={"key": key})


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def video_chunks() -> list[bytes]:
    """Ten distinct 1 MB chunks (10 MB in total)."""
    return [bytes([i]) * MB for i in range(10)]


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    """Provide an empty in-memory blob store."""
    return MemoryBlobStore()


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "CACHE_DIR": str(temp_dir / "cache"),
        "STORE_NAME": "TestVideoDB",
        "CONTAINER_NAME": "videos",
        "BLOB_BACKEND": "sqlite",
        "DEFAULT_CACHE_KEY": "mainVideo",
        "DEFAULT_SOURCE_URL": "https://media.example.com/sample.mp4",
        "REQUEST_TIMEOUT": "5.0",
        "CONNECT_RETRIES": "1",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from mcache.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
