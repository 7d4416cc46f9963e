"""Rich progress display for media loads."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)

from mcache.types import DownloadProgress, LoadState


class DownloadProgressDisplay:
    """Live progress bar fed by orchestrator callbacks.

    Shows a spinner while checking the cache, a determinate bar when the
    size is known and a pulsing bar when it is not.
    """

    STATE_LABELS = {
        LoadState.CHECKING_CACHE: "Checking cache",
        LoadState.CACHE_HIT: "Found in cache",
        LoadState.CACHE_MISS: "Not cached",
        LoadState.FETCHING: "Downloading",
        LoadState.ASSEMBLING: "Assembling",
        LoadState.PERSISTING: "Saving to cache",
        LoadState.READY: "[green]Ready[/green]",
        LoadState.FAILED: "[red]Failed[/red]",
    }

    def __init__(self, console: Console, key: str) -> None:
        """Initialize progress display.

        Args:
            console: Rich console to write to.
            key: Cache key being loaded.
        """
        self.console = console
        self.key = key
        self.last_progress: DownloadProgress | None = None
        self.states: list[LoadState] = []
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )
        self._task: TaskID | None = None

    def _describe(self, state: LoadState) -> str:
        return f"{self.key}: {self.STATE_LABELS.get(state, state.value)}"

    def on_state(self, state: LoadState) -> None:
        """Update the description from a load state."""
        self.states.append(state)
        if self._task is None:
            return
        update: dict[str, Any] = {"description": self._describe(state)}
        if state == LoadState.READY and self.last_progress is None:
            # Served from cache, no bytes flowed
            update.update(total=1, completed=1)
        self._progress.update(self._task, **update)

    def on_progress(self, progress: DownloadProgress) -> None:
        """Advance the bar from a progress snapshot."""
        self.last_progress = progress
        if self._task is None:
            return
        self._progress.update(
            self._task,
            total=progress.total_bytes,
            completed=progress.received_bytes,
        )

    def __enter__(self) -> "DownloadProgressDisplay":
        """Start the live display."""
        self._progress.__enter__()
        self._task = self._progress.add_task(
            self._describe(LoadState.IDLE), total=None
        )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop the live display."""
        self._progress.__exit__(exc_type, exc_val, exc_tb)
        self._task = None
