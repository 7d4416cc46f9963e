"""
Cache orchestrator.

Decides per load whether to serve from the blob store or stream from the
network. On a miss it reads the stream chunk by chunk, reports progress,
assembles the complete object and writes it with a single put() so the
store never holds partial content. Every failure is returned as a
LoadFailure instead of being raised.

State machine per load():
    IDLE -> CHECKING_CACHE -> CACHE_HIT -> READY
    IDLE -> CHECKING_CACHE -> CACHE_MISS -> FETCHING -> ASSEMBLING -> PERSISTING -> READY
    any non-terminal state -> FAILED
"""

from __future__ import annotations

import inspect
from types import TracebackType
from typing import Awaitable, Callable, TypeVar

from mcache.cache.base import BlobStore
from mcache.cache.file_store import FileBlobStore
from mcache.cache.sqlite_store import SQLiteBlobStore
from mcache.config import Settings, get_settings
from mcache.coordinator.progress import ProgressTracker
from mcache.exceptions import ConfigurationError
from mcache.logging import get_logger, log_context, set_state
from mcache.playback.handles import LoadScope, PlaybackHandle, PlaybackHandleFactory
from mcache.retrieval.base import StreamingFetcher
from mcache.retrieval.http_fetcher import HttpStreamingFetcher
from mcache.types import (
    CachedObject,
    CacheKey,
    DownloadProgress,
    FailureKind,
    FailureReason,
    LoadFailure,
    LoadResult,
    LoadState,
    LoadSuccess,
    can_transition,
    generate_id,
)

logger = get_logger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[DownloadProgress], "Awaitable[None] | None"]
StateCallback = Callable[[LoadState], "Awaitable[None] | None"]


async def _notify(callback: Callable[[T], Awaitable[None] | None], value: T) -> None:
    """Invoke a sync or async observer."""
    result = callback(value)
    if inspect.isawaitable(result):
        await result


def build_blob_store(settings: Settings) -> BlobStore:
    """Create the blob store selected by BLOB_BACKEND.

    Raises:
        ConfigurationError: If the backend name is unknown.
    """
    if settings.BLOB_BACKEND == "sqlite":
        return SQLiteBlobStore(settings.store_path, container=settings.CONTAINER_NAME)
    if settings.BLOB_BACKEND == "file":
        return FileBlobStore(settings.container_dir)
    raise ConfigurationError(
        f"Unknown blob backend: {settings.BLOB_BACKEND}",
        context={"backend": settings.BLOB_BACKEND},
    )


class _LoadAttempt:
    """Tracks the state machine of a single load() call."""

    def __init__(self, key: CacheKey, on_state: StateCallback | None) -> None:
        self.key = key
        self.state = LoadState.IDLE
        self.history: list[LoadState] = [LoadState.IDLE]
        self._on_state = on_state

    async def advance(self, target: LoadState) -> None:
        if not can_transition(self.state, target):
            raise RuntimeError(
                f"Invalid load transition {self.state.value} -> {target.value}"
            )
        logger.debug("Load state", previous=self.state.value, next=target.value)
        self.state = target
        self.history.append(target)
        set_state(target.value)
        if self._on_state is not None:
            await _notify(self._on_state, target)

    async def fail(self) -> None:
        """Move to FAILED. Observer errors are logged, not raised."""
        if self.state.is_terminal:
            return
        self.state = LoadState.FAILED
        self.history.append(LoadState.FAILED)
        set_state(LoadState.FAILED.value)
        if self._on_state is not None:
            try:
                await _notify(self._on_state, LoadState.FAILED)
            except Exception:
                logger.exception("State observer raised while reporting failure")


class CacheOrchestrator:
    """Serves media from the blob store, fetching and persisting on a miss.

    Concurrent loads for different keys are independent. Loads for the same
    key are not coordinated: each may fetch, and the last put() wins.
    """

    def __init__(
        self,
        store: BlobStore,
        fetcher: StreamingFetcher,
        handles: PlaybackHandleFactory | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Durable blob store.
            fetcher: Streaming network fetcher.
            handles: Factory for playback handles (in-memory if omitted).
        """
        self.store = store
        self.fetcher = fetcher
        self.handles = handles or PlaybackHandleFactory()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CacheOrchestrator:
        """Build an orchestrator from configuration.

        Args:
            settings: Settings to use; defaults to get_settings().
        """
        settings = settings or get_settings()
        fetcher = HttpStreamingFetcher(
            timeout=settings.REQUEST_TIMEOUT,
            connect_retries=settings.CONNECT_RETRIES,
            chunk_size=settings.CHUNK_SIZE,
            user_agent=settings.USER_AGENT,
        )
        return cls(
            store=build_blob_store(settings),
            fetcher=fetcher,
            handles=PlaybackHandleFactory(settings.HANDLE_SPOOL_DIR),
        )

    async def load(
        self,
        key: CacheKey,
        source_url: str,
        on_progress: ProgressCallback | None = None,
        on_state: StateCallback | None = None,
        scope: LoadScope | None = None,
    ) -> LoadResult:
        """Load content for key, from the store or from source_url.

        Args:
            key: Cache slot name.
            source_url: Remote source used on a cache miss.
            on_progress: Called with a DownloadProgress after every chunk.
                Never called on a cache hit.
            on_state: Called with each LoadState the load enters.
            scope: Consumer lifetime. If it is closed when the load finishes,
                the content is still cached but no handle is created.

        Returns:
            LoadSuccess with a PlaybackHandle, or LoadFailure with the reason.
        """
        attempt = _LoadAttempt(key, on_state)
        handle: PlaybackHandle | None = None

        with log_context(load_id=generate_id("load"), cache_key=key):
            try:
                await attempt.advance(LoadState.CHECKING_CACHE)
                obj = await self.store.get(key)

                if obj is not None:
                    await attempt.advance(LoadState.CACHE_HIT)
                    logger.info("Cache hit", size=obj.size_bytes)
                    from_cache = True
                else:
                    await attempt.advance(LoadState.CACHE_MISS)
                    logger.info("Cache miss, fetching", url=source_url)
                    obj = await self._fetch_and_persist(
                        key, source_url, attempt, on_progress, scope
                    )
                    from_cache = False

                handle = await self._deliver(obj, scope)
                await attempt.advance(LoadState.READY)

            except Exception as e:
                if handle is not None:
                    handle.release()
                reason = FailureReason.from_exception(e)
                logger.error(
                    "Load failed",
                    kind=reason.kind.value,
                    error=reason.message,
                    exc_info=reason.kind == FailureKind.UNKNOWN,
                )
                await attempt.fail()
                return LoadFailure(key=key, reason=reason)

            return LoadSuccess(
                key=key,
                handle=handle,
                size_bytes=obj.size_bytes,
                from_cache=from_cache,
            )

    async def _fetch_and_persist(
        self,
        key: CacheKey,
        source_url: str,
        attempt: _LoadAttempt,
        on_progress: ProgressCallback | None,
        scope: LoadScope | None,
    ) -> CachedObject:
        await attempt.advance(LoadState.FETCHING)
        chunks: list[bytes] = []

        stream = await self.fetcher.open(source_url)
        async with stream:
            tracker = ProgressTracker(stream.total_bytes)
            async for chunk in stream:
                chunks.append(chunk)
                progress = tracker.advance(len(chunk))
                if on_progress is not None and not (scope and scope.closed):
                    await _notify(on_progress, progress)

        logger.debug(
            "Stream complete",
            chunks=tracker.chunks,
            received_bytes=tracker.received_bytes,
        )

        await attempt.advance(LoadState.ASSEMBLING)
        obj = CachedObject.from_chunks(key, chunks)
        chunks.clear()

        await attempt.advance(LoadState.PERSISTING)
        await self.store.put(key, obj)
        logger.info("Persisted to cache", size=obj.size_bytes)
        return obj

    async def _deliver(
        self, obj: CachedObject, scope: LoadScope | None
    ) -> PlaybackHandle | None:
        if scope is not None and scope.closed:
            logger.info("Consumer scope closed, no handle delivered")
            return None
        handle = await self.handles.create(obj)
        if scope is not None:
            scope.adopt(handle)
            if scope.closed:
                logger.info("Consumer scope closed during delivery, handle released")
                return None
        return handle

    async def is_cached(self, key: CacheKey) -> bool:
        """Check whether key has a stored entry."""
        return await self.store.exists(key)

    async def close(self) -> None:
        """Close the fetcher's connections and the blob store."""
        await self.fetcher.close()
        await self.store.close()

    async def __aenter__(self) -> CacheOrchestrator:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
