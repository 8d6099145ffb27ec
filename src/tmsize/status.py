"""Time Machine session status and destination disk usage."""

import logging
import re
import shutil
from datetime import datetime, timedelta
from typing import Optional

from tmsize.backups import parse_backup_date
from tmsize.commands import CommandRunner
from tmsize.engine import Runner
from tmsize.errors import BackupStatusError, CommandError, DiskUsageError
from tmsize.models import BackupStatus, CacheEntry, StorageInfo

logger = logging.getLogger(__name__)

# Lines of the old-style plist printed by `tmutil status`, e.g. `Running = 1;`
STATUS_LINE_RE = re.compile(r'^\s*"?(\w+)"?\s*=\s*"?([^";{]*)"?\s*;\s*$')

# `diskutil info` lines, e.g. "Container Free Space:  1.2 TB (1200000000000 Bytes)"
DISKUTIL_SPACE_RE = re.compile(
    r"^\s*(Container|Volume) (Total|Free|Available) Space:.*\((\d+) Bytes\)"
)


def parse_status_output(output: str) -> dict[str, str]:
    """
    Parse `tmutil status` output into key/value pairs.

    Nested dictionaries are flattened; the first occurrence of a key wins, so
    top-level keys take precedence over the ones in the Progress block.
    """
    values: dict[str, str] = {}
    for line in output.splitlines():
        match = STATUS_LINE_RE.match(line)
        if match:
            values.setdefault(match.group(1), match.group(2).strip())
    return values


def _parse_progress(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        fraction = float(raw)
    except ValueError:
        return None
    # tmutil reports -1 before the copy phase starts
    if fraction < 0 or fraction > 1:
        return None
    return fraction


def latest_backup_date(runner: Runner, tmutil_command: str = "tmutil") -> Optional[datetime]:
    """Date of the latest completed backup, or None if there is none."""
    try:
        output = runner.run(tmutil_command, ["latestbackup"])
    except CommandError as e:
        logger.debug("No latest backup: %s", e)
        return None

    path = output.strip()
    if not path:
        return None
    return parse_backup_date(path.rstrip("/").rsplit("/", 1)[-1])


def get_backup_status(
    runner: Optional[Runner] = None,
    tmutil_command: str = "tmutil",
    interval_hours: float = 1,
) -> BackupStatus:
    """
    Read the backup session status from tmutil.

    The next backup is estimated as the latest backup plus the backup
    interval; tmutil does not report the schedule. It is left empty while a
    backup runs.

    Args:
        runner: Command runner (defaults to a CommandRunner)
        tmutil_command: tmutil executable
        interval_hours: Time between scheduled backups

    Returns:
        BackupStatus

    Raises:
        BackupStatusError: If `tmutil status` fails
    """
    runner = runner or CommandRunner()

    try:
        output = runner.run(tmutil_command, ["status"])
    except CommandError as e:
        raise BackupStatusError(f"Could not read backup status: {e}") from e

    values = parse_status_output(output)
    running = values.get("Running") == "1"
    last_backup = latest_backup_date(runner, tmutil_command)

    next_backup = None
    if last_backup is not None and not running:
        next_backup = last_backup + timedelta(hours=interval_hours)

    return BackupStatus(
        running=running,
        phase=values.get("BackupPhase") if running else None,
        progress=_parse_progress(values.get("Percent")) if running else None,
        last_backup=last_backup,
        next_backup=next_backup,
    )


def find_destination_mount(
    runner: Optional[Runner] = None, tmutil_command: str = "tmutil"
) -> Optional[str]:
    """Mount point of the first mounted backup destination, if any."""
    runner = runner or CommandRunner()
    try:
        output = runner.run(tmutil_command, ["destinationinfo"])
    except CommandError as e:
        logger.debug("No destination info: %s", e)
        return None

    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "Mount Point" and value.strip():
            return value.strip()
    return None


def parse_diskutil_info(output: str) -> Optional[tuple[int, int]]:
    """
    Total and free bytes from `diskutil info`.

    Container figures are preferred since they match what Finder shows for
    APFS volumes.
    """
    found: dict[tuple[str, str], int] = {}
    for line in output.splitlines():
        match = DISKUTIL_SPACE_RE.match(line)
        if match:
            found[(match.group(1), match.group(2))] = int(match.group(3))

    for scope in ("Container", "Volume"):
        total = found.get((scope, "Total"))
        free = found.get((scope, "Free"), found.get((scope, "Available")))
        if total and free is not None:
            return total, free
    return None


def get_disk_usage(mount_point: str, runner: Optional[Runner] = None) -> StorageInfo:
    """
    Get disk usage for a backup destination.

    Args:
        mount_point: Mount point of the destination
        runner: Command runner used for diskutil

    Returns:
        StorageInfo with total, used and free bytes

    Raises:
        DiskUsageError: If the mount point cannot be inspected
    """
    runner = runner or CommandRunner()

    try:
        parsed = parse_diskutil_info(runner.run("diskutil", ["info", mount_point]))
    except CommandError as e:
        logger.debug("diskutil unavailable for %s: %s", mount_point, e)
        parsed = None

    if parsed is not None:
        total_bytes, free_bytes = parsed
        return StorageInfo(
            total_bytes=total_bytes,
            used_bytes=max(total_bytes - free_bytes, 0),
            free_bytes=free_bytes,
            mount_point=mount_point,
        )

    # Fallback for volumes diskutil does not describe
    try:
        usage = shutil.disk_usage(mount_point)
    except OSError as e:
        raise DiskUsageError(f"Could not read disk usage of {mount_point}: {e}") from e
    return StorageInfo(
        total_bytes=usage.total,
        used_bytes=usage.used,
        free_bytes=usage.free,
        mount_point=mount_point,
    )


def cached_backup_bytes(entries: dict[str, CacheEntry], mount_point: str) -> Optional[int]:
    """Total of the cached sizes of backups stored under mount_point."""
    prefix = mount_point.rstrip("/") + "/"
    sizes = [entry.size for path, entry in entries.items() if path.startswith(prefix)]
    if not sizes:
        return None
    return sum(sizes)
