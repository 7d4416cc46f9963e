"""
Base classes for streaming fetches.

A StreamingFetcher opens a FetchStream for a URL. A FetchStream carries an
optional size hint and yields bytes chunks exactly once, in order, until
end-of-stream. Transport problems are raised as FetchError; a stream never
ends early without raising.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import AsyncIterable, AsyncIterator, Iterable

from mcache.exceptions import StreamConsumedError


class FetchStream(ABC):
    """Lazy, finite, non-restartable sequence of bytes chunks."""

    def __init__(self, url: str, total_bytes: int | None = None) -> None:
        self.url = url
        self.total_bytes = total_bytes
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise StreamConsumedError(
                "Stream has already been consumed", context={"url": self.url}
            )
        self._consumed = True
        return self._iter_chunks()

    @abstractmethod
    def _iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield chunks until end-of-stream."""
        ...

    async def aclose(self) -> None:
        """Release the underlying connection."""
        return None

    async def __aenter__(self) -> FetchStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


class ChunkStream(FetchStream):
    """FetchStream over an existing (async) iterable of chunks."""

    def __init__(
        self,
        url: str,
        chunks: Iterable[bytes] | AsyncIterable[bytes],
        total_bytes: int | None = None,
    ) -> None:
        super().__init__(url, total_bytes)
        self._chunks = chunks

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        if isinstance(self._chunks, AsyncIterable):
            async for chunk in self._chunks:
                yield chunk
        else:
            for chunk in self._chunks:
                yield chunk


class StreamingFetcher(ABC):
    """Abstract capability that opens network streams."""

    @abstractmethod
    async def open(self, url: str) -> FetchStream:
        """Open a stream for url.

        Raises:
            FetchError: On connection failure, non-success status or no body.
        """
        ...

    async def close(self) -> None:
        """Close any open connections."""
        return None
