"""
Core types for the media cache.

This module defines the data structures shared by every layer:
- Enums for load states and failure kinds
- Frozen dataclasses for cached content, progress and failures
- The LoadResult sum type (LoadSuccess | LoadFailure)
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Union

from uuid6 import uuid7

from mcache.exceptions import FetchError, MCError, StorageError

if TYPE_CHECKING:
    from mcache.playback.handles import PlaybackHandle

# Opaque identifier naming a logical video slot, e.g. "mainVideo"
CacheKey = str


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "load", "h")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class LoadState(str, Enum):
    """States a single load() call moves through."""

    IDLE = "idle"
    CHECKING_CACHE = "checking_cache"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    FETCHING = "fetching"
    ASSEMBLING = "assembling"
    PERSISTING = "persisting"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LoadState.READY, LoadState.FAILED)


# Forward edges of the load state machine. Any non-terminal state may also fail.
LOAD_TRANSITIONS: dict[LoadState, frozenset[LoadState]] = {
    LoadState.IDLE: frozenset({LoadState.CHECKING_CACHE}),
    LoadState.CHECKING_CACHE: frozenset({LoadState.CACHE_HIT, LoadState.CACHE_MISS}),
    LoadState.CACHE_HIT: frozenset({LoadState.READY}),
    LoadState.CACHE_MISS: frozenset({LoadState.FETCHING}),
    LoadState.FETCHING: frozenset({LoadState.ASSEMBLING}),
    LoadState.ASSEMBLING: frozenset({LoadState.PERSISTING}),
    LoadState.PERSISTING: frozenset({LoadState.READY}),
    LoadState.READY: frozenset(),
    LoadState.FAILED: frozenset(),
}


def can_transition(current: LoadState, target: LoadState) -> bool:
    """Check whether the load state machine allows current -> target."""
    if target == LoadState.FAILED:
        return not current.is_terminal
    return target in LOAD_TRANSITIONS[current]


class FailureKind(str, Enum):
    """Coarse classification of why a load produced no content."""

    NETWORK = "NetworkError"
    STORAGE = "StorageError"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class CachedObject:
    """The complete binary content of one video under its cache key.

    Only ever constructed from a fully received body; partial content
    never becomes a CachedObject.
    """

    key: CacheKey
    data: bytes = field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @classmethod
    def from_chunks(cls, key: CacheKey, chunks: Iterable[bytes]) -> CachedObject:
        """Assemble chunks, in receipt order, into one object."""
        return cls(key=key, data=b"".join(chunks))


@dataclass(frozen=True)
class DownloadProgress:
    """Progress of one fetch.

    ``percent`` is None (indeterminate) when the server gave no usable size.
    """

    received_bytes: int
    total_bytes: int | None = None

    @property
    def indeterminate(self) -> bool:
        return not self.total_bytes

    @property
    def percent(self) -> float | None:
        """Bytes received over bytes expected, scaled to [0, 100]."""
        if not self.total_bytes:
            return None
        return min(100.0, self.received_bytes / self.total_bytes * 100)

    def __str__(self) -> str:
        if self.percent is None:
            return f"{self.received_bytes} bytes (size unknown)"
        return f"{self.percent:.0f}% ({self.received_bytes}/{self.total_bytes} bytes)"


@dataclass(frozen=True)
class FailureReason:
    """Structured error value returned instead of raising."""

    kind: FailureKind
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: BaseException) -> FailureReason:
        """Classify an exception into a failure kind.

        Args:
            exc: The exception caught at the load boundary.

        Returns:
            FailureReason with the exception's message and context.
        """
        if isinstance(exc, FetchError):
            kind = FailureKind.NETWORK
        elif isinstance(exc, StorageError):
            kind = FailureKind.STORAGE
        else:
            kind = FailureKind.UNKNOWN

        if isinstance(exc, MCError):
            return cls(kind=kind, message=exc.message, context=dict(exc.context))
        return cls(
            kind=kind,
            message=str(exc) or exc.__class__.__name__,
            context={"exception": exc.__class__.__name__},
        )

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class LoadSuccess:
    """Playable content is available.

    ``handle`` is None only when the requesting scope was closed before the
    load finished; the content was still cached.
    """

    key: CacheKey
    handle: PlaybackHandle | None
    size_bytes: int
    from_cache: bool
    completed: bool = True

    @property
    def ok(self) -> bool:
        return True

    @property
    def delivered(self) -> bool:
        return self.handle is not None


@dataclass(frozen=True)
class LoadFailure:
    """No content is available for the key."""

    key: CacheKey
    reason: FailureReason

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return self.reason.message

    @property
    def kind(self) -> FailureKind:
        return self.reason.kind


LoadResult = Union[LoadSuccess, LoadFailure]
