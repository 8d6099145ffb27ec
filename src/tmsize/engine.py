"""Computing the byte size of a single backup.

Time Machine records the bytes used by a completed backup in a results plist
inside the backup directory. Reading it is cheap, so it is tried first; only
when it is missing or unreadable is the directory measured with ``du -sk``,
which can take many seconds on large or networked backups.
"""

import logging
import os
import plistlib
from typing import Optional, Protocol
from xml.parsers.expat import ExpatError

from tmsize.cache import SizeCache
from tmsize.commands import CommandRunner
from tmsize.errors import CommandError, MetadataUnavailable, SizeComputationError
from tmsize.filesystem import FileSystemReader

logger = logging.getLogger(__name__)

RESULTS_PLIST = ".com.apple.TimeMachine.Results.plist"

# Checked in order; the first non-negative integer wins
RESULTS_SIZE_KEYS = ("BytesUsed", "TotalBytes", "BytesCopied")


class Runner(Protocol):
    def run(self, command: str, arguments: list[str] | None = None) -> str: ...


class FileSystem(Protocol):
    def exists(self, path: str) -> bool: ...

    def read_bytes(self, path: str) -> bytes: ...

    def modification_time(self, path: str) -> float: ...


def parse_results_plist(data: bytes) -> int:
    """
    Extract the recorded byte count from a Time Machine results plist.

    Args:
        data: Raw plist content (XML or binary)

    Returns:
        Size in bytes

    Raises:
        MetadataUnavailable: If the plist is malformed or has no usable size
    """
    try:
        plist = plistlib.loads(data)
    except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError) as e:
        raise MetadataUnavailable(f"Unparseable results plist: {e}") from e

    if not isinstance(plist, dict):
        raise MetadataUnavailable("Results plist is not a dictionary")

    for key in RESULTS_SIZE_KEYS:
        value = plist.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value

    raise MetadataUnavailable("Results plist records no byte count")


def parse_du_output(output: str) -> int:
    """
    Parse ``du -sk`` output into bytes.

    Only the leading whitespace-separated field is used; it is kilobytes.

    Raises:
        ValueError: If the output has no numeric leading field
    """
    fields = output.split()
    if not fields:
        raise ValueError("empty du output")
    kilobytes = int(fields[0])
    if kilobytes < 0:
        raise ValueError(f"negative du size: {kilobytes}")
    return kilobytes * 1024


class SizeEngine:
    """Computes backup sizes and records them in the size cache."""

    def __init__(
        self,
        cache: SizeCache,
        runner: Optional[Runner] = None,
        filesystem: Optional[FileSystem] = None,
        du_command: str = "du",
    ):
        self.cache = cache
        self.runner = runner or CommandRunner()
        self.filesystem = filesystem or FileSystemReader()
        self.du_command = du_command

    def read_metadata_size(self, path: str) -> int:
        """Size recorded by Time Machine in the backup's results plist."""
        plist_path = os.path.join(path, RESULTS_PLIST)
        if not self.filesystem.exists(plist_path):
            raise MetadataUnavailable(f"No results plist in {path}")
        try:
            data = self.filesystem.read_bytes(plist_path)
        except OSError as e:
            raise MetadataUnavailable(f"Could not read {plist_path}: {e}") from e
        return parse_results_plist(data)

    def measure_directory(self, path: str) -> int:
        """Slow path: measure the backup tree with du."""
        try:
            output = self.runner.run(self.du_command, ["-sk", path])
        except CommandError as e:
            raise SizeComputationError(path, str(e)) from e

        try:
            return parse_du_output(output)
        except ValueError as e:
            raise SizeComputationError(path, f"unexpected du output: {output!r}") from e

    def compute_size(self, path: str) -> int:
        """
        Compute the size of a backup, metadata first.

        On success the size is written to the cache together with the
        backup's current modification time.

        Args:
            path: Backup path

        Returns:
            Size in bytes

        Raises:
            SizeComputationError: If neither the metadata nor du yields a size
        """
        try:
            size = self.read_metadata_size(path)
            logger.debug("Results plist for %s reports %d bytes", path, size)
        except MetadataUnavailable as e:
            logger.debug("%s; measuring %s with %s", e, path, self.du_command)
            size = self.measure_directory(path)

        try:
            modification_time = self.filesystem.modification_time(path)
        except OSError as e:
            logger.warning("Not caching size of %s: cannot stat it (%s)", path, e)
        else:
            self.cache.put(path, size, modification_time)

        return size

    def cached_size(self, path: str) -> Optional[int]:
        """Valid cached size of path, or None."""
        try:
            modification_time = self.filesystem.modification_time(path)
        except OSError:
            return None
        return self.cache.get(path, modification_time)
