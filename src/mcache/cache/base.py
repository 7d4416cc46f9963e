"""
Base class for blob stores.

A BlobStore maps a cache key to exactly one complete binary object.
Implementations must guarantee:
- get() on a missing key returns None, never raises
- put() either stores the whole object or leaves the key untouched
- initialization is idempotent and happens lazily on first access
- backend failures surface as StorageError
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from types import TracebackType

from mcache.types import CachedObject, CacheKey


class BlobStore(ABC):
    """Abstract durable key-to-blob store."""

    backend_name: str = "abstract"

    def __init__(self) -> None:
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def init(self) -> None:
        """Open or create the store and its container. Safe to call repeatedly."""
        if self._initialized:
            return
        async with self._init_lock:
            if not self._initialized:
                await self._open()
                self._initialized = True

    @abstractmethod
    async def _open(self) -> None:
        """Backend-specific open; called at most once until close()."""
        ...

    @abstractmethod
    async def get(self, key: CacheKey) -> CachedObject | None:
        """Get the object stored under key, or None if absent."""
        ...

    @abstractmethod
    async def put(self, key: CacheKey, obj: CachedObject) -> None:
        """Store obj under key, replacing any previous entry wholesale."""
        ...

    async def exists(self, key: CacheKey) -> bool:
        """Check if an entry exists for key."""
        return await self.get(key) is not None

    async def close(self) -> None:
        """Release backend resources. The store reopens lazily on next use."""
        self._initialized = False

    async def __aenter__(self) -> BlobStore:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
