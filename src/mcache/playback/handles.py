"""
Playback handles for cached content.

A PlaybackHandle is a process-local reference to a CachedObject's bytes,
addressed by a URL a player can be pointed at:
- ``blob:mcache/<id>`` URLs resolve through the factory's in-memory registry
- with a spool directory, ``file://`` URLs point at a temporary copy on disk

Handles stay valid until released. Release is idempotent.
"""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from types import TracebackType
from typing import BinaryIO

from mcache.exceptions import HandleReleasedError, StorageError
from mcache.logging import get_logger
from mcache.types import CachedObject, CacheKey, generate_id, utc_now

logger = get_logger(__name__)

BLOB_URL_PREFIX = "blob:mcache/"


def _spool(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        path.write_bytes(data)
    except BaseException:
        path.unlink(missing_ok=True)
        raise


class PlaybackHandle:
    """Reference to cached bytes, owned by the caller until released."""

    def __init__(
        self,
        handle_id: str,
        key: CacheKey,
        url: str,
        size_bytes: int,
        factory: PlaybackHandleFactory,
        path: Path | None = None,
    ) -> None:
        self.handle_id = handle_id
        self.key = key
        self.url = url
        self.size_bytes = size_bytes
        self.path = path
        self.created_at = utc_now()
        self._factory = factory

    @property
    def released(self) -> bool:
        return not self._factory.is_live(self.url)

    def read(self) -> bytes:
        """Return the referenced bytes.

        Raises:
            HandleReleasedError: If the handle was released.
        """
        data = self._factory.resolve(self.url)
        if data is None:
            raise HandleReleasedError(
                "Playback handle was released", context={"url": self.url}
            )
        return data

    def open(self) -> BinaryIO:
        """Open the referenced content as a binary file object."""
        if self.released:
            raise HandleReleasedError(
                "Playback handle was released", context={"url": self.url}
            )
        if self.path is not None:
            return self.path.open("rb")
        return io.BytesIO(self.read())

    def release(self) -> None:
        """Release the handle. Calling this more than once is a no-op."""
        self._factory.release(self)

    def __enter__(self) -> PlaybackHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"PlaybackHandle({self.url!r}, key={self.key!r}, size={self.size_bytes}, {state})"


class PlaybackHandleFactory:
    """Creates and releases playback handles.

    Without a spool directory content is kept in memory and handed out under
    ``blob:`` URLs. With one, each handle gets its own file which is deleted
    on release.
    """

    def __init__(self, spool_dir: Path | None = None, suffix: str = ".mp4") -> None:
        """Initialize the factory.

        Args:
            spool_dir: Directory for file-backed handles, or None for memory.
            suffix: File suffix for spooled handles.
        """
        self.spool_dir = Path(spool_dir) if spool_dir is not None else None
        self.suffix = suffix
        self._live: dict[str, bytes | Path] = {}

    @property
    def active_count(self) -> int:
        return len(self._live)

    def is_live(self, url: str) -> bool:
        return url in self._live

    async def create(self, obj: CachedObject) -> PlaybackHandle:
        """Create a handle for obj.

        Spooled files are written off the event loop.

        Args:
            obj: Complete cached content.

        Returns:
            A live PlaybackHandle.

        Raises:
            StorageError: If the spool file cannot be written. No partial
                file is left behind.
        """
        handle_id = generate_id("h")
        path: Path | None = None

        if self.spool_dir is not None:
            path = self.spool_dir / f"{handle_id}{self.suffix}"
            try:
                await asyncio.to_thread(_spool, path, obj.data)
            except OSError as e:
                raise StorageError(
                    f"Failed to write playback file: {e}",
                    context={"key": obj.key, "operation": "spool", "path": str(path)},
                ) from e
            url = path.resolve().as_uri()
            self._live[url] = path
        else:
            url = f"{BLOB_URL_PREFIX}{handle_id}"
            self._live[url] = obj.data

        logger.debug("Created playback handle", url=url, size=obj.size_bytes)
        return PlaybackHandle(
            handle_id=handle_id,
            key=obj.key,
            url=url,
            size_bytes=obj.size_bytes,
            factory=self,
            path=path,
        )

    def resolve(self, url: str) -> bytes | None:
        """Get the bytes behind a live handle URL, or None."""
        target = self._live.get(url)
        if target is None:
            return None
        if isinstance(target, Path):
            return target.read_bytes()
        return target

    def release(self, handle: PlaybackHandle) -> None:
        """Release a handle's resources. Unknown or released handles are ignored."""
        target = self._live.pop(handle.url, None)
        if target is None:
            return
        if isinstance(target, Path):
            target.unlink(missing_ok=True)
        logger.debug("Released playback handle", url=handle.url)

    def release_all(self) -> None:
        """Release every live handle created by this factory."""
        for url, target in list(self._live.items()):
            if isinstance(target, Path):
                target.unlink(missing_ok=True)
            del self._live[url]


class LoadScope:
    """Lifetime of one consumer (a view, a session).

    Handles delivered into the scope are released when it closes. Loads that
    finish after close() deliver no handle.
    """

    def __init__(self) -> None:
        self.closed = False
        self._handles: list[PlaybackHandle] = []

    @property
    def handles(self) -> list[PlaybackHandle]:
        return list(self._handles)

    def adopt(self, handle: PlaybackHandle) -> None:
        """Track handle so close() releases it."""
        if self.closed:
            handle.release()
            return
        self._handles.append(handle)

    def detach(self, handle: PlaybackHandle) -> None:
        """Stop tracking handle; the caller takes over releasing it."""
        if handle in self._handles:
            self._handles.remove(handle)

    def close(self) -> None:
        """Tear down the scope and release its handles."""
        self.closed = True
        while self._handles:
            self._handles.pop().release()

    def __enter__(self) -> LoadScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
