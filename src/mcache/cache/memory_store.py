"""
In-memory blob store.

Dict-backed, not durable. Useful for tests and for embedding the
orchestrator where persistence is handled elsewhere.
"""

from __future__ import annotations

from mcache.cache.base import BlobStore
from mcache.types import CachedObject, CacheKey


class MemoryBlobStore(BlobStore):
    """Blob store that keeps entries in a dict for the life of the process."""

    backend_name = "memory"

    def __init__(self, entries: dict[CacheKey, bytes] | None = None) -> None:
        super().__init__()
        self._entries: dict[CacheKey, bytes] = dict(entries or {})

    async def _open(self) -> None:
        return None

    async def get(self, key: CacheKey) -> CachedObject | None:
        await self.init()
        data = self._entries.get(key)
        if data is None:
            return None
        return CachedObject(key=key, data=data)

    async def exists(self, key: CacheKey) -> bool:
        await self.init()
        return key in self._entries

    async def put(self, key: CacheKey, obj: CachedObject) -> None:
        await self.init()
        self._entries[key] = obj.data

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
