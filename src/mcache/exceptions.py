"""
Custom exception hierarchy for the media cache.

All exceptions inherit from MCError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class MCError(Exception):
    """Base exception for all media cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(MCError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Unknown blob backend name
        - Container name that is not a valid identifier
    """

    pass


class FetchError(MCError):
    """Raised when opening or reading a network stream fails.

    Context should include:
        - url: The URL that was being fetched
        - status_code: HTTP status code if applicable
        - received_bytes: Bytes read before the failure, if any
    """

    pass


class StreamConsumedError(FetchError):
    """Raised when a non-restartable stream is iterated a second time."""

    pass


class StorageError(MCError):
    """Raised when the blob store cannot be opened, read or written.

    Context should include:
        - key: The cache key involved
        - backend: The backend name (sqlite, file, memory)
        - operation: open, get, put, exists
    """

    pass


class HandleReleasedError(MCError):
    """Raised when reading from a playback handle that was already released."""

    pass
