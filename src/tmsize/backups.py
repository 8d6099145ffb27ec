"""Discovering Time Machine backups."""

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from tmsize.commands import CommandRunner
from tmsize.engine import FileSystem, Runner
from tmsize.errors import BackupListingError, CommandError
from tmsize.filesystem import FileSystemReader
from tmsize.models import BackupItem

logger = logging.getLogger(__name__)

# Snapshot directories are named 2024-01-31-235959, optionally with a
# ".backup" or ".inprogress" suffix on APFS destinations
BACKUP_NAME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}-\d{6})(?:\.(backup|inprogress))?$")


def parse_backup_date(name: str) -> Optional[datetime]:
    """Backup timestamp encoded in a snapshot directory name, if any."""
    match = BACKUP_NAME_RE.match(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y-%m-%d-%H%M%S")
    except ValueError:
        return None


def _backup_item(path: str, filesystem: FileSystem) -> Optional[BackupItem]:
    name = path.rstrip("/").rsplit("/", 1)[-1]
    date = parse_backup_date(name)
    if date is None:
        try:
            date = datetime.fromtimestamp(filesystem.modification_time(path))
        except OSError as e:
            logger.warning("Skipping backup %s: no date in name and cannot stat it (%s)", path, e)
            return None
    return BackupItem.from_path(path, date)


def list_backups(
    runner: Optional[Runner] = None,
    filesystem: Optional[FileSystem] = None,
    tmutil_command: str = "tmutil",
) -> list[BackupItem]:
    """
    List backups known to Time Machine via ``tmutil listbackups``.

    Args:
        runner: Command runner (defaults to a CommandRunner)
        filesystem: Filesystem reader used for undated backups
        tmutil_command: tmutil executable

    Returns:
        Backups sorted newest first

    Raises:
        BackupListingError: If tmutil fails
    """
    runner = runner or CommandRunner()
    filesystem = filesystem or FileSystemReader()

    try:
        output = runner.run(tmutil_command, ["listbackups"])
    except CommandError as e:
        raise BackupListingError(f"Could not list backups: {e}") from e

    paths = [line.strip() for line in output.splitlines() if line.strip()]
    logger.debug("tmutil reported %d backup paths", len(paths))

    backups = []
    for path in paths:
        item = _backup_item(path, filesystem)
        if item is not None:
            backups.append(item)

    backups.sort(key=lambda b: b.date, reverse=True)
    return backups


def find_backup_directories(root: Path, max_depth: int = 3) -> Generator[Path, None, None]:
    """
    Find snapshot directories below root.

    Does not descend into a snapshot once found.

    Args:
        root: A Backups.backupdb directory, a machine directory inside it,
            or any directory containing snapshots
        max_depth: Maximum depth to search

    Yields:
        Paths of snapshot directories
    """
    if max_depth <= 0:
        return

    try:
        with os.scandir(root) as entries:
            for entry in entries:
                try:
                    if not entry.is_dir(follow_symlinks=False):
                        continue
                    if BACKUP_NAME_RE.match(entry.name):
                        yield Path(entry.path)
                        continue
                    if entry.name.startswith("."):
                        continue
                    yield from find_backup_directories(Path(entry.path), max_depth - 1)
                except (PermissionError, OSError):
                    continue
    except (PermissionError, OSError) as e:
        logger.debug("Cannot scan %s: %s", root, e)


def discover_backups(root: Path, filesystem: Optional[FileSystem] = None) -> list[BackupItem]:
    """List backups by walking a backup destination directly, newest first."""
    filesystem = filesystem or FileSystemReader()
    backups = []
    seen: set[str] = set()
    for found in find_backup_directories(Path(root)):
        path = str(found)
        if path in seen:
            continue
        seen.add(path)
        item = _backup_item(path, filesystem)
        if item is not None:
            backups.append(item)

    backups.sort(key=lambda b: b.date, reverse=True)
    return backups
