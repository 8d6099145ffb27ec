"""Durable key-value stores backing the size cache."""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from tmsize.errors import PersistenceError


class JsonFileStore:
    """Whole-snapshot JSON file store. A missing file reads as empty."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceError(f"Unexpected content in {self.path}")
        return data

    def write_all(self, mapping: dict[str, Any]) -> None:
        # Write to a sibling temp file, then swap it in
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(mapping, f, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (TypeError, ValueError, OSError) as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e


class MemoryStore:
    """In-process store, used for tests and cache-less runs."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data = dict(initial or {})
        self._lock = threading.Lock()
        self.write_count = 0

    def read_all(self) -> dict[str, Any]:
        with self._lock:
            return json.loads(json.dumps(self._data))

    def write_all(self, mapping: dict[str, Any]) -> None:
        with self._lock:
            self._data = json.loads(json.dumps(mapping))
            self.write_count += 1
