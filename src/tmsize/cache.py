"""Durable, thread-safe cache of computed backup sizes.

Entries are keyed by backup path and qualified by the backup's modification
time. An entry is served only while it is younger than the TTL and the
backup has not been modified since the size was computed. The whole cache is
written back to the store on every change; store failures are logged and the
in-memory copy stays authoritative for the rest of the process.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Protocol

from pydantic import ValidationError

from tmsize.errors import PersistenceError
from tmsize.models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class KeyValueStore(Protocol):
    def read_all(self) -> dict: ...

    def write_all(self, mapping: dict) -> None: ...


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SizeCache:
    """Mapping of backup path to its last known size."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = ReadWriteLock()
        self._entries: dict[str, CacheEntry] = self._load()

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = self._store.read_all()
        except PersistenceError as e:
            logger.warning("Size cache could not be loaded, starting empty: %s", e)
            return {}

        entries: dict[str, CacheEntry] = {}
        for path, value in raw.items():
            try:
                entries[path] = CacheEntry.model_validate(value)
            except ValidationError:
                logger.warning("Skipping corrupt size cache entry for %s", path)
        logger.debug("Loaded %d size cache entries", len(entries))
        return entries

    def _persist(self) -> None:
        # Caller holds the write lock
        snapshot = {path: entry.model_dump() for path, entry in self._entries.items()}
        try:
            self._store.write_all(snapshot)
        except PersistenceError as e:
            logger.warning("Size cache could not be saved: %s", e)

    def get(self, path: str, current_modification_time: float) -> Optional[int]:
        """
        Look up the cached size of a backup.

        Args:
            path: Backup path
            current_modification_time: The backup's modification time right now

        Returns:
            Cached size in bytes, or None when there is no valid entry
        """
        with self._lock.read():
            entry = self._entries.get(path)
        if entry is None:
            return None
        if not entry.is_valid(current_modification_time, self._clock(), self.ttl_seconds):
            logger.debug("Stale size cache entry for %s", path)
            return None
        return entry.size

    def put(self, path: str, size: int, modification_time: float) -> None:
        """Insert or replace the entry for path, stamped with the current time."""
        entry = CacheEntry(
            size=size,
            cached_at=self._clock(),
            source_modification_time=modification_time,
        )
        with self._lock.write():
            self._entries[path] = entry
            self._persist()

    def remove(self, path: str) -> bool:
        """Evict the entry for path. Returns whether one existed."""
        with self._lock.write():
            if self._entries.pop(path, None) is None:
                return False
            self._persist()
            return True

    def clear(self) -> None:
        """Evict all entries."""
        with self._lock.write():
            self._entries.clear()
            self._persist()

    def prune_expired(self) -> int:
        """Evict entries older than the TTL. Returns the number removed."""
        now = self._clock()
        with self._lock.write():
            expired = [
                path
                for path, entry in self._entries.items()
                if now - entry.cached_at > self.ttl_seconds
            ]
            for path in expired:
                del self._entries[path]
            if expired:
                self._persist()
        return len(expired)

    def entries(self) -> dict[str, CacheEntry]:
        """Snapshot of all entries, valid or not."""
        with self._lock.read():
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        with self._lock.read():
            return path in self._entries
