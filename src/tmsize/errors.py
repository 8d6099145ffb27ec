"""Exceptions raised by tmsize."""

from typing import Optional


class TmsizeError(Exception):
    """Base class for all tmsize errors."""


class CommandError(TmsizeError):
    """An external command could not be run or failed."""

    def __init__(self, command: str, message: str = "", output: str = ""):
        self.command = command
        self.output = output
        super().__init__(message or f"Command failed: {command}")


class CommandNotFoundError(CommandError):
    """The command executable does not exist."""


class CommandPermissionError(CommandError):
    """The command was refused for lack of permissions."""


class CommandExecutionError(CommandError):
    """The command ran but exited unsuccessfully or timed out."""


class MetadataUnavailable(TmsizeError):
    """The Time Machine results sidecar is missing or unparseable."""


class SizeComputationError(TmsizeError):
    """Neither the sidecar nor the fallback measurement produced a size."""

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        message = f"Could not compute size of {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PersistenceError(TmsizeError):
    """The durable cache store could not be read or written."""


class BackupListingError(TmsizeError):
    """Backups could not be enumerated."""


class BackupStatusError(TmsizeError):
    """The Time Machine session status could not be read."""


class DiskUsageError(TmsizeError):
    """Usage of a backup destination could not be determined."""
