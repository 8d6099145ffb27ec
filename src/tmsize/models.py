"""Data models for tmsize."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Fixed namespace for name-based backup identifiers. Changing it changes every
# identifier, so it must never change.
BACKUP_NAMESPACE = uuid.UUID("6f1c8a52-3b0e-5d4e-9a57-2c1f0b7d9e43")


def backup_id_for_path(path: str) -> uuid.UUID:
    """
    Derive the stable identifier of a backup from its path.

    Uses an RFC 4122 name-based UUID (version 5, SHA-1) in a fixed namespace,
    so the same path always yields the same identifier across runs.

    Args:
        path: Filesystem path of the backup

    Returns:
        UUID identifying the backup
    """
    return uuid.uuid5(BACKUP_NAMESPACE, path)


def format_size(size_bytes: int) -> str:
    """Format bytes to human-readable string (decimal units like macOS)."""
    if size_bytes >= 1000**4:
        return f"{size_bytes / (1000**4):.1f} TB"
    elif size_bytes >= 1000**3:
        return f"{size_bytes / (1000**3):.1f} GB"
    elif size_bytes >= 1000**2:
        return f"{size_bytes / (1000**2):.1f} MB"
    elif size_bytes >= 1000:
        return f"{size_bytes / 1000:.1f} KB"
    else:
        return f"{size_bytes} B"


class CacheEntry(BaseModel):
    """A cached backup size, qualified by the backup's modification time."""

    model_config = ConfigDict(frozen=True)

    size: int = Field(..., ge=0, description="Backup size in bytes")
    cached_at: float = Field(..., description="When the size was cached (epoch seconds)")
    source_modification_time: float = Field(
        ..., description="Backup modification time the size was computed against"
    )

    def is_valid(self, modification_time: float, now: float, ttl_seconds: float) -> bool:
        """Whether this entry may be served for the given modification time."""
        if self.source_modification_time != modification_time:
            return False
        return now - self.cached_at <= ttl_seconds


class BackupItem(BaseModel):
    """A single Time Machine backup."""

    id: uuid.UUID = Field(..., description="Stable identifier derived from the path")
    name: str = Field(..., description="Backup directory name")
    path: str = Field(..., description="Filesystem path of the backup")
    date: datetime = Field(..., description="When the backup was taken")
    size: Optional[int] = Field(None, ge=0, description="Size in bytes, once known")

    @classmethod
    def from_path(cls, path: str, date: datetime, size: Optional[int] = None) -> "BackupItem":
        """Build an item whose id and name are derived from its path."""
        name = path.rstrip("/").rsplit("/", 1)[-1]
        return cls(id=backup_id_for_path(path), name=name, path=path, date=date, size=size)

    @property
    def is_calculating(self) -> bool:
        """True while the size is not yet known."""
        return self.size is None

    @property
    def size_human(self) -> str:
        """Human-readable size, or a pending marker."""
        if self.size is None:
            return "Calculating..."
        return format_size(self.size)


class SizeUpdate(BaseModel):
    """A freshly settled size, delivered to subscribers."""

    model_config = ConfigDict(frozen=True)

    backup_id: uuid.UUID = Field(..., description="Backup the size belongs to")
    path: str = Field(..., description="Path the size was computed for")
    size: int = Field(..., ge=0, description="Size in bytes")


class BackupStatus(BaseModel):
    """State of the Time Machine backup session."""

    running: bool = Field(False, description="Whether a backup is in progress")
    phase: Optional[str] = Field(None, description="Current backup phase, e.g. Copying")
    progress: Optional[float] = Field(
        None, ge=0, le=1, description="Fraction of the running backup completed"
    )
    last_backup: Optional[datetime] = Field(None, description="Date of the latest completed backup")
    next_backup: Optional[datetime] = Field(
        None, description="Estimated date of the next scheduled backup"
    )


# Usage fractions at which a destination is reported as low or critical
LOW_SPACE_THRESHOLD = 0.80
CRITICAL_SPACE_THRESHOLD = 0.95


class StorageInfo(BaseModel):
    """Disk usage of a backup destination."""

    total_bytes: int = Field(..., ge=0, description="Total volume size in bytes")
    used_bytes: int = Field(..., ge=0, description="Used space in bytes")
    free_bytes: int = Field(..., ge=0, description="Free space in bytes")
    mount_point: str = Field(..., description="Mount point of the destination")
    backup_bytes: Optional[int] = Field(
        None, ge=0, description="Space taken by backups whose size is known"
    )

    @property
    def used_percent(self) -> float:
        """Percentage of the volume used."""
        return (self.used_bytes / self.total_bytes) * 100 if self.total_bytes > 0 else 0

    @property
    def backup_percent(self) -> Optional[float]:
        """Percentage of the volume taken by known backups."""
        if self.backup_bytes is None or self.total_bytes == 0:
            return None
        return (self.backup_bytes / self.total_bytes) * 100

    @property
    def is_low_space(self) -> bool:
        return self.used_percent >= LOW_SPACE_THRESHOLD * 100

    @property
    def is_critical_space(self) -> bool:
        return self.used_percent >= CRITICAL_SPACE_THRESHOLD * 100
