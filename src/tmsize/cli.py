"""CLI interface for tmsize."""

import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from tmsize import __version__
from tmsize.backups import discover_backups, list_backups
from tmsize.cache import SizeCache
from tmsize.commands import CommandRunner
from tmsize.config import Settings, load_settings
from tmsize.coordinator import SizeCoordinator
from tmsize.display import (
    console,
    show_backup_status,
    show_backups,
    show_cache,
    show_sizing_progress,
    show_storage,
)
from tmsize.engine import SizeEngine
from tmsize.errors import BackupListingError, BackupStatusError, DiskUsageError
from tmsize.filesystem import FileSystemReader, expand_path
from tmsize.models import SizeUpdate, backup_id_for_path, format_size
from tmsize.status import (
    cached_backup_bytes,
    find_destination_mount,
    get_backup_status,
    get_disk_usage,
)
from tmsize.store import JsonFileStore, MemoryStore

app = typer.Typer(
    name="tmsize",
    help="Time Machine backup sizes, computed once and cached",
    add_completion=False,
)
cache_app = typer.Typer(help="Inspect or reset the size cache.")
app.add_typer(cache_app, name="cache")


def setup_logging(verbose: bool) -> None:
    """Route library logging through Rich on stderr."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger("tmsize")
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root_logger.propagate = False


def build_cache(settings: Settings, use_cache: bool = True) -> SizeCache:
    store = JsonFileStore(settings.cache_file) if use_cache else MemoryStore()
    return SizeCache(store, ttl_seconds=settings.cache_ttl_seconds)


def build_coordinator(settings: Settings, use_cache: bool = True) -> SizeCoordinator:
    """Wire the cache, engine and coordinator for one run."""
    engine = SizeEngine(
        cache=build_cache(settings, use_cache),
        runner=CommandRunner(timeout=settings.command_timeout),
        filesystem=FileSystemReader(),
        du_command=settings.du_command,
    )
    return SizeCoordinator(engine, max_workers=settings.max_workers)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"tmsize version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config.json."),
) -> None:
    """tmsize - Time Machine backup sizes."""
    setup_logging(verbose)
    ctx.obj = load_settings(config)


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    root: Optional[Path] = typer.Option(
        None, "--root", help="Walk this backup destination instead of asking tmutil"
    ),
    no_sizes: bool = typer.Option(False, "--no-sizes", help="Skip size computation"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not read or write the size cache"),
) -> None:
    """List backups and their sizes."""
    settings: Settings = ctx.obj

    if root is not None:
        root = expand_path(str(root))
        if not root.is_dir():
            console.print(f"[red]Not a directory: {root}[/red]")
            raise typer.Exit(1)
        backups = discover_backups(root)
    else:
        try:
            backups = list_backups(
                runner=CommandRunner(timeout=settings.command_timeout),
                tmutil_command=settings.tmutil_command,
            )
        except BackupListingError as e:
            console.print(f"[red]{e}[/red]")
            console.print("[dim]Use --root to point at a backup destination directly[/dim]")
            raise typer.Exit(1)

    if backups and not no_sizes:
        with build_coordinator(settings, use_cache=not no_cache) as coordinator:
            with show_sizing_progress() as progress:
                task = progress.add_task("Computing sizes...", total=len(backups))

                def on_size(update: SizeUpdate) -> None:
                    progress.update(task, description=f"Sized {Path(update.path).name}")

                token = coordinator.subscribe(on_size)
                try:
                    streams = [coordinator.request_size(b.path, b.id) for b in backups]
                    for stream in streams:
                        stream.result()
                        progress.advance(task)
                finally:
                    coordinator.unsubscribe(token)

            sizes = coordinator.current_sizes()
        for backup in backups:
            backup.size = sizes.get(backup.id)

    show_backups(backups)


@app.command()
def size(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Backup directory"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not read or write the size cache"),
) -> None:
    """Show the size of a single backup."""
    settings: Settings = ctx.obj
    backup_path = str(expand_path(str(path)))

    if not Path(backup_path).exists():
        console.print(f"[red]No such backup: {backup_path}[/red]")
        raise typer.Exit(1)

    with build_coordinator(settings, use_cache=not no_cache) as coordinator:
        with console.status(f"Computing size of {backup_path}..."):
            result = coordinator.request_size(backup_path, backup_id_for_path(backup_path)).result()

    if result is None:
        console.print(f"[red]Could not determine the size of {backup_path}[/red]")
        raise typer.Exit(1)

    console.print(f"{format_size(result)} ({result:,} bytes)  {backup_path}")


@app.command()
def status(
    ctx: typer.Context,
    mount: Optional[Path] = typer.Option(
        None, "--mount", help="Destination mount point instead of asking tmutil"
    ),
) -> None:
    """Show backup status and destination disk usage."""
    settings: Settings = ctx.obj
    runner = CommandRunner(timeout=settings.command_timeout)
    failed = False

    try:
        backup_status = get_backup_status(
            runner=runner,
            tmutil_command=settings.tmutil_command,
            interval_hours=settings.backup_interval_hours,
        )
        show_backup_status(backup_status)
    except BackupStatusError as e:
        console.print(f"[red]{e}[/red]")
        failed = True

    if mount is not None:
        mount_point: Optional[str] = str(expand_path(str(mount)))
    else:
        mount_point = find_destination_mount(runner, settings.tmutil_command)

    if mount_point is None:
        console.print("[yellow]No backup destination is mounted[/yellow]")
    else:
        try:
            storage = get_disk_usage(mount_point, runner)
        except DiskUsageError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        entries = build_cache(settings).entries()
        storage.backup_bytes = cached_backup_bytes(entries, mount_point)
        show_storage(storage)

    if failed:
        raise typer.Exit(1)


@cache_app.command("show")
def cache_show(ctx: typer.Context) -> None:
    """Show cached sizes."""
    settings: Settings = ctx.obj
    cache = build_cache(settings)
    show_cache(cache.entries(), cache.ttl_seconds, time.time())


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    expired: bool = typer.Option(False, "--expired", help="Only remove expired entries"),
) -> None:
    """Remove cached sizes."""
    settings: Settings = ctx.obj
    cache = build_cache(settings)

    if expired:
        removed = cache.prune_expired()
        console.print(f"Removed {removed} expired entries")
    else:
        count = len(cache)
        cache.clear()
        console.print(f"Removed {count} entries")


@cache_app.command("remove")
def cache_remove(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Backup directory to forget"),
) -> None:
    """Forget the cached size of one backup."""
    settings: Settings = ctx.obj
    cache = build_cache(settings)
    backup_path = str(expand_path(str(path)))

    if cache.remove(backup_path):
        console.print(f"Removed {backup_path}")
    else:
        console.print(f"[yellow]Not cached: {backup_path}[/yellow]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
