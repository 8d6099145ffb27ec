"""Rich terminal display for tmsize."""

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from tmsize.models import BackupItem, BackupStatus, CacheEntry, StorageInfo, format_size

console = Console()


def show_backups(backups: list[BackupItem]) -> None:
    """Display backups with their sizes."""
    if not backups:
        console.print("[yellow]No backups found[/yellow]")
        return

    table = Table(title="Time Machine Backups", show_header=True, header_style="bold")
    table.add_column("Date")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Path", style="dim")

    for backup in backups:
        size = backup.size_human
        if backup.is_calculating:
            size = f"[dim]{size}[/dim]"
        table.add_row(
            backup.date.strftime("%Y-%m-%d %H:%M"),
            backup.name,
            size,
            backup.path,
        )

    console.print(table)

    known = [b.size for b in backups if b.size is not None]
    if known:
        console.print(f"[bold]Total: {format_size(sum(known))}[/bold] across {len(known)} backups")
    pending = len(backups) - len(known)
    if pending:
        console.print(f"[dim]{pending} size(s) could not be determined[/dim]")


def show_cache(entries: dict[str, CacheEntry], ttl_seconds: float, now: float) -> None:
    """Display cached sizes and their age."""
    if not entries:
        console.print("[dim]Size cache is empty[/dim]")
        return

    table = Table(title="Size Cache", show_header=True, header_style="bold")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    table.add_column("Cached", justify="right")
    table.add_column("Status")

    for path, entry in sorted(entries.items()):
        expired = now - entry.cached_at > ttl_seconds
        status = "[red]expired[/red]" if expired else "[green]fresh[/green]"
        table.add_row(
            path,
            format_size(entry.size),
            datetime.fromtimestamp(entry.cached_at).strftime("%Y-%m-%d %H:%M"),
            status,
        )

    console.print(table)


def show_sizing_progress() -> Progress:
    """Create progress bar for size computation."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
    )


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "[dim]unknown[/dim]"


def show_backup_status(status: BackupStatus) -> None:
    """Display the Time Machine session status."""
    if status.running:
        state = f"[bold green]Running[/bold green] ({status.phase or 'starting'})"
        if status.progress is not None:
            state += f" {status.progress * 100:.0f}%"
    else:
        state = "Idle"

    console.print(f"[bold]Backup:[/bold] {state}")
    console.print(f"[bold]Last backup:[/bold] {_format_date(status.last_backup)}")
    if not status.running:
        console.print(f"[bold]Next backup:[/bold] {_format_date(status.next_backup)} [dim](estimated)[/dim]")
    console.print()


def show_storage(storage: StorageInfo) -> None:
    """Display destination disk usage."""
    if storage.is_critical_space:
        color = "red"
    elif storage.is_low_space:
        color = "yellow"
    else:
        color = "green"

    table = Table(title=f"Destination {storage.mount_point}", show_header=True, header_style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Free", justify="right")
    table.add_column("Usage", justify="right")
    table.add_column("Backups", justify="right")

    backups = "[dim]unknown[/dim]"
    if storage.backup_bytes is not None and storage.backup_percent is not None:
        backups = f"{format_size(storage.backup_bytes)} ({storage.backup_percent:.0f}%)"

    table.add_row(
        format_size(storage.total_bytes),
        format_size(storage.used_bytes),
        f"[bold]{format_size(storage.free_bytes)}[/bold]",
        f"[{color}]{storage.used_percent:.0f}%[/{color}]",
        backups,
    )

    console.print(table)
    if storage.is_critical_space:
        console.print("[red]Destination is almost full; Time Machine will delete old backups[/red]")
    elif storage.is_low_space:
        console.print("[yellow]Destination is running low on space[/yellow]")
