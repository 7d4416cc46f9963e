"""Download progress tracking."""

from __future__ import annotations

from mcache.types import DownloadProgress


class ProgressTracker:
    """Accumulates received bytes for one fetch.

    Received bytes only grow, so successive snapshots never decrease. When the
    total is unknown (or zero) every snapshot is indeterminate.
    """

    def __init__(self, total_bytes: int | None = None) -> None:
        self.total_bytes = total_bytes if total_bytes else None
        self.received_bytes = 0
        self.chunks = 0

    @property
    def current(self) -> DownloadProgress:
        return DownloadProgress(
            received_bytes=self.received_bytes, total_bytes=self.total_bytes
        )

    def advance(self, size: int) -> DownloadProgress:
        """Record one chunk of ``size`` bytes and return the new snapshot."""
        if size < 0:
            raise ValueError(f"Chunk size cannot be negative: {size}")
        self.received_bytes += size
        self.chunks += 1
        return self.current
