"""
File-based blob store.

The file-handle backend: each key maps to one file inside the container
directory. Content is written to a temporary sibling, flushed, and renamed
over the final path with os.replace(), so a reader never opens a half-written
entry and a failed write leaves the previous state in place.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import time
from pathlib import Path

from mcache.cache.base import BlobStore
from mcache.exceptions import StorageError
from mcache.logging import get_logger
from mcache.types import CachedObject, CacheKey, generate_id

logger = get_logger(__name__)

PART_SUFFIX = ".part"

# Temp files younger than this may belong to a writer in another process
STALE_PART_AGE = 3600.0


def _write_atomic(target: Path, data: bytes) -> None:
    tmp = target.with_name(f".{target.name}.{generate_id()}{PART_SUFFIX}")
    try:
        with open(tmp, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


class FileBlobStore(BlobStore):
    """Blob store with one file per key.

    File names are the SHA-256 of the key so arbitrary keys are safe on disk.
    Leftover ``.part`` files from interrupted writes are removed on open once
    they are older than ``stale_after`` seconds; younger ones may still be in
    use by another store on the same directory.
    """

    backend_name = "file"

    def __init__(
        self, container_dir: str | Path, stale_after: float = STALE_PART_AGE
    ) -> None:
        """Initialize the store without touching disk.

        Args:
            container_dir: Directory holding the entry files.
            stale_after: Age in seconds after which a temp file is abandoned.
        """
        super().__init__()
        self.container_dir = Path(container_dir)
        self.stale_after = stale_after

    def _entry_path(self, key: CacheKey) -> Path:
        return self.container_dir / hashlib.sha256(key.encode("utf-8")).hexdigest()

    def _sweep_stale_parts(self) -> int:
        cutoff = time.time() - self.stale_after
        removed = 0
        for path in self.container_dir.glob(f".*{PART_SUFFIX}"):
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            removed += 1
        return removed

    async def _open(self) -> None:
        try:
            self.container_dir.mkdir(parents=True, exist_ok=True)
            stale = self._sweep_stale_parts()
        except OSError as e:
            raise StorageError(
                f"Failed to open blob store: {e}",
                context={
                    "backend": self.backend_name,
                    "operation": "open",
                    "path": str(self.container_dir),
                },
            ) from e

        if stale:
            logger.info("Removed interrupted writes", count=stale)
        logger.debug("File blob store opened", path=str(self.container_dir))

    async def get(self, key: CacheKey) -> CachedObject | None:
        """Get the object stored under key, or None if absent."""
        await self.init()
        path = self._entry_path(key)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(
                f"Failed to read entry: {e}",
                context={"key": key, "backend": self.backend_name, "operation": "get"},
            ) from e
        return CachedObject(key=key, data=data)

    async def exists(self, key: CacheKey) -> bool:
        """Check for an entry without reading it."""
        await self.init()
        return self._entry_path(key).is_file()

    async def put(self, key: CacheKey, obj: CachedObject) -> None:
        """Replace the entry for key via write-then-rename.

        Raises:
            StorageError: If the write fails. No partial file is left behind.
        """
        await self.init()
        path = self._entry_path(key)
        try:
            await asyncio.to_thread(_write_atomic, path, obj.data)
        except OSError as e:
            raise StorageError(
                f"Failed to write entry: {e}",
                context={"key": key, "backend": self.backend_name, "operation": "put"},
            ) from e

        logger.debug("Stored blob", key=key, size=obj.size_bytes, path=path.name)
