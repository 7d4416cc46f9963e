"""
SQLite-backed blob store.

The transactional backend: one database file per store name, one table per
container, one row per key. Writes go through a single INSERT OR REPLACE
inside a transaction, so readers see either the previous entry or the whole
new one.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from mcache.cache.base import BlobStore
from mcache.exceptions import StorageError
from mcache.logging import get_logger
from mcache.types import CachedObject, CacheKey

logger = get_logger(__name__)


class SQLiteBlobStore(BlobStore):
    """Blob store persisted in an SQLite database via aiosqlite.

    Layout: ``<db_path>`` holds table ``<container>`` with columns
    ``key TEXT PRIMARY KEY, data BLOB NOT NULL``. Nothing else is stored.
    """

    backend_name = "sqlite"

    def __init__(self, db_path: str | Path, container: str = "videos") -> None:
        """Initialize the store without touching disk.

        Args:
            db_path: Path to the SQLite database file.
            container: Table name holding the entries.
        """
        super().__init__()
        if not container.isidentifier():
            raise StorageError(
                "Container name must be an identifier",
                context={"container": container, "backend": self.backend_name},
            )
        self.db_path = Path(db_path)
        self.container = container
        self._db: aiosqlite.Connection | None = None

    async def _open(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.execute(
                f'CREATE TABLE IF NOT EXISTS "{self.container}" ('
                "key TEXT PRIMARY KEY, "
                "data BLOB NOT NULL"
                ")"
            )
            await self._db.commit()
        except (OSError, aiosqlite.Error) as e:
            await self._discard_connection()
            raise StorageError(
                f"Failed to open blob store: {e}",
                context={
                    "backend": self.backend_name,
                    "operation": "open",
                    "path": str(self.db_path),
                },
            ) from e

        logger.debug(
            "SQLite blob store opened",
            path=str(self.db_path),
            container=self.container,
        )

    async def _connection(self) -> aiosqlite.Connection:
        await self.init()
        if self._db is None:
            raise StorageError(
                "Blob store connection is closed",
                context={"backend": self.backend_name, "path": str(self.db_path)},
            )
        return self._db

    async def get(self, key: CacheKey) -> CachedObject | None:
        """Get the object stored under key, or None if absent."""
        db = await self._connection()
        try:
            async with db.execute(
                f'SELECT data FROM "{self.container}" WHERE key = ?', (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to read entry: {e}",
                context={"key": key, "backend": self.backend_name, "operation": "get"},
            ) from e

        if row is None:
            return None
        return CachedObject(key=key, data=bytes(row[0]))

    async def exists(self, key: CacheKey) -> bool:
        """Check for an entry without loading its content."""
        db = await self._connection()
        try:
            async with db.execute(
                f'SELECT 1 FROM "{self.container}" WHERE key = ? LIMIT 1', (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to check entry: {e}",
                context={"key": key, "backend": self.backend_name, "operation": "exists"},
            ) from e
        return row is not None

    async def put(self, key: CacheKey, obj: CachedObject) -> None:
        """Replace the entry for key in one transaction.

        Raises:
            StorageError: If the write fails. The transaction is rolled back.
        """
        db = await self._connection()
        try:
            await db.execute(
                f'INSERT OR REPLACE INTO "{self.container}" (key, data) VALUES (?, ?)',
                (key, obj.data),
            )
            await db.commit()
        except aiosqlite.Error as e:
            try:
                await db.rollback()
            except aiosqlite.Error:
                logger.warning("Rollback after failed put also failed", key=key)
            raise StorageError(
                f"Failed to write entry: {e}",
                context={"key": key, "backend": self.backend_name, "operation": "put"},
            ) from e

        logger.debug("Stored blob", key=key, size=obj.size_bytes)

    async def _discard_connection(self) -> None:
        if self._db is not None:
            try:
                await self._db.close()
            finally:
                self._db = None

    async def close(self) -> None:
        """Close the database connection."""
        await self._discard_connection()
        await super().close()
