"""Filesystem access used by the size engine."""

import os
from pathlib import Path


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


class FileSystemReader:
    """Thin wrapper over the local filesystem. Errors propagate as OSError."""

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def read_bytes(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def modification_time(self, path: str) -> float:
        return os.stat(path).st_mtime
