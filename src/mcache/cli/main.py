"""
CLI for the media cache.

Commands:
    mcache load [KEY] - Load a video, downloading it on a cache miss
    mcache status [KEY] - Show whether a key is cached
    mcache config - Show current configuration
    mcache version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mcache import __version__
from mcache.config import Settings, clear_settings_cache, get_settings
from mcache.cli.progress import DownloadProgressDisplay
from mcache.coordinator.orchestrator import CacheOrchestrator, build_blob_store
from mcache.logging import setup_logging
from mcache.playback.handles import LoadScope
from mcache.types import LoadFailure, LoadResult

app = typer.Typer(
    name="mcache",
    help="Media cache - stream a video once, play it from disk afterwards",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _load_settings(**overrides: object) -> Settings:
    """Load settings with CLI overrides, exiting on invalid configuration."""
    try:
        clear_settings_cache()
        settings = get_settings()
        if overrides:
            settings = Settings.model_validate(
                {**settings.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
            )
    except Exception as e:
        error_console.print(f"[red]Error:[/red] Configuration is invalid: {e}")
        raise typer.Exit(1)

    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    settings.ensure_directories()
    return settings


async def _run_load(
    settings: Settings, key: str, url: str, display: DownloadProgressDisplay
) -> LoadResult:
    async with CacheOrchestrator.from_settings(settings) as orchestrator:
        with LoadScope() as scope:
            result = await orchestrator.load(
                key,
                url,
                on_progress=display.on_progress,
                on_state=display.on_state,
                scope=scope,
            )
            if result.ok and result.handle is not None and result.handle.path is not None:
                # Spooled files must outlive the process so a player can open them
                scope.detach(result.handle)
    return result


@app.command()
def load(
    key: Annotated[
        Optional[str],
        typer.Argument(help="Cache key (defaults to DEFAULT_CACHE_KEY)"),
    ] = None,
    url: Annotated[
        Optional[str],
        typer.Option("--url", "-u", help="Remote video URL used on a cache miss"),
    ] = None,
    backend: Annotated[
        Optional[str],
        typer.Option("--backend", "-b", help="Blob store backend: sqlite or file"),
    ] = None,
    spool_dir: Annotated[
        Optional[Path],
        typer.Option("--spool-dir", "-s", help="Write a playable copy into this directory"),
    ] = None,
) -> None:
    """Load a video from the cache, downloading and caching it on a miss."""
    settings = _load_settings(BLOB_BACKEND=backend, HANDLE_SPOOL_DIR=spool_dir)
    effective_key = key or settings.DEFAULT_CACHE_KEY
    effective_url = url or settings.DEFAULT_SOURCE_URL

    with DownloadProgressDisplay(console, effective_key) as display:
        result = asyncio.run(_run_load(settings, effective_key, effective_url, display))

    if isinstance(result, LoadFailure):
        error_console.print(
            Panel(
                f"[bold]Kind:[/bold] {result.kind.value}\n"
                f"[bold]Error:[/bold] {result.message}",
                title=f"[bold red]{effective_key} failed[/bold red]",
                border_style="red",
            )
        )
        raise typer.Exit(1)

    lines = [
        f"[bold]Key:[/bold] {result.key}",
        f"[bold]Size:[/bold] {result.size_bytes:,} bytes",
        f"[bold]Source:[/bold] {'cache' if result.from_cache else effective_url}",
    ]
    if result.handle is not None and result.handle.path is not None:
        lines.append(f"[bold]Playable file:[/bold] {result.handle.path}")
    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold green]{effective_key} ready[/bold green]",
            border_style="green",
        )
    )


async def _status(settings: Settings, key: str) -> int | None:
    store = build_blob_store(settings)
    try:
        obj = await store.get(key)
        return obj.size_bytes if obj is not None else None
    finally:
        await store.close()


@app.command()
def status(
    key: Annotated[
        Optional[str],
        typer.Argument(help="Cache key (defaults to DEFAULT_CACHE_KEY)"),
    ] = None,
    backend: Annotated[
        Optional[str],
        typer.Option("--backend", "-b", help="Blob store backend: sqlite or file"),
    ] = None,
) -> None:
    """Show whether a key is cached and how large the entry is."""
    settings = _load_settings(BLOB_BACKEND=backend)
    effective_key = key or settings.DEFAULT_CACHE_KEY

    try:
        size = asyncio.run(_status(settings, effective_key))
    except Exception as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if size is None:
        console.print(f"[yellow]{effective_key}[/yellow] is not cached")
    else:
        console.print(f"[green]{effective_key}[/green] is cached ({size:,} bytes)")


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = _load_settings()

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(name, display_value)

    console.print()
    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"mcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
