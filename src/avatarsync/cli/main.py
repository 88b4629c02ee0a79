"""
CLI for the avatar cache.

Commands:
    avatarsync status - Show cache directory and index contents
    avatarsync evict - Evict expired / excess avatars
    avatarsync purge-legacy - Remove the deprecated in-store avatar cache
    avatarsync housekeeping - Purge, evict and report in one go
    avatarsync config - Show current configuration
    avatarsync version - Print version
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from avatarsync import __version__
from avatarsync.cache.legacy import purge_legacy_avatar_cache
from avatarsync.config import Settings, clear_settings_cache, get_settings
from avatarsync.logging import setup_logging
from avatarsync.maintenance import run_housekeeping
from avatarsync.runtime import AvatarCacheRuntime
from avatarsync.types import CacheStatus

app = typer.Typer(
    name="avatarsync",
    help="Avatar cache maintenance for the family games client",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'avatarsync config' to see what's wrong."
        )
        raise typer.Exit(1)
    setup_logging(log_level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)
    return settings


def _print_status(status: CacheStatus) -> None:
    table = Table(title="Cached avatars", show_header=True)
    table.add_column("Avatar ID", style="cyan")
    table.add_column("Size", style="green", justify="right")
    table.add_column("Written at", style="dim")

    for entry in status.entries:
        size = f"{entry.size_bytes / 1024:.1f} KB" if entry.size_bytes is not None else "[red]missing[/red]"
        table.add_row(entry.avatar_id, size, entry.written_at.isoformat(timespec="seconds"))

    console.print(table)
    console.print(f"[bold]Directory:[/bold] {status.cache_dir}")
    console.print(
        f"[bold]Files:[/bold] {status.file_count}  "
        f"[bold]Index entries:[/bold] {status.index_count}  "
        f"[bold]Total:[/bold] {status.total_bytes / 1024:.1f} KB"
    )


@app.command()
def status() -> None:
    """Show the avatar cache directory and index."""
    settings = _require_settings()

    async def _run() -> CacheStatus:
        async with AvatarCacheRuntime(settings) as runtime:
            return await runtime.blob_store.status()

    console.print()
    _print_status(asyncio.run(_run()))
    console.print()


@app.command()
def evict(
    days: Annotated[
        Optional[float],
        typer.Option("--days", "-d", help="Maximum age in days (0 clears everything)"),
    ] = None,
    max_entries: Annotated[
        Optional[int],
        typer.Option("--max-entries", "-m", help="Keep at most this many avatars"),
    ] = None,
) -> None:
    """Evict avatars older than the TTL, then the oldest beyond the cap."""
    settings = _require_settings()
    if days is not None and days < 0:
        error_console.print("[red]Error:[/red] --days must be >= 0")
        raise typer.Exit(1)
    max_age = timedelta(days=days) if days is not None else None

    async def _run():
        async with AvatarCacheRuntime(settings) as runtime:
            return await runtime.blob_store.evict(max_age, max_entries=max_entries)

    report = asyncio.run(_run())
    console.print(
        f"[bold green]Evicted {len(report.evicted)} avatar(s)[/bold green] "
        f"([dim]{len(report.expired)} expired, {len(report.over_capacity)} over capacity, "
        f"{report.remaining} remaining[/dim])"
    )


@app.command("purge-legacy")
def purge_legacy() -> None:
    """Remove avatars left in the key-value store by the old cache."""
    settings = _require_settings()

    async def _run() -> int:
        async with AvatarCacheRuntime(settings) as runtime:
            return await purge_legacy_avatar_cache(runtime.kv_store)

    removed = asyncio.run(_run())
    console.print(f"[bold green]Removed {removed} legacy key(s)[/bold green]")


@app.command()
def housekeeping(
    days: Annotated[
        Optional[float],
        typer.Option("--days", "-d", help="Maximum age in days (0 clears everything)"),
    ] = None,
) -> None:
    """Purge the legacy cache, evict, and show the resulting status."""
    settings = _require_settings()
    max_age = timedelta(days=days) if days is not None else None

    async def _run():
        async with AvatarCacheRuntime(settings) as runtime:
            return await run_housekeeping(runtime.blob_store, runtime.kv_store, max_age=max_age)

    report = asyncio.run(_run())
    console.print()
    console.print(
        Panel(
            f"[bold]Legacy keys removed:[/bold] {report.legacy_keys_removed}\n"
            f"[bold]Expired:[/bold] {len(report.eviction.expired)}\n"
            f"[bold]Over capacity:[/bold] {len(report.eviction.over_capacity)}\n"
            f"[bold]Remaining:[/bold] {report.eviction.remaining}",
            title="[bold cyan]Avatar Cache Housekeeping[/bold cyan]",
            border_style="cyan",
        )
    )
    if report.status is not None:
        _print_status(report.status)
    console.print()


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print("Check SERVER_URL (http/https), CACHE_EXPIRY_DAYS (>= 0)")
        error_console.print("and AVATAR_CACHE_SIZE (>= 0) in your environment or .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"avatarsync version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
