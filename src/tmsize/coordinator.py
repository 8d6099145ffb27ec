"""Deduplicated, incremental backup size resolution.

The coordinator is the entry point the presentation layer uses. At most one
computation runs per backup path; later requests for the same path attach to
it. Settled sizes are published into a map of backup id to size and pushed to
subscribers before the requesting streams yield them.
"""

import itertools
import logging
import threading
import uuid
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Protocol

from tmsize.errors import SizeComputationError
from tmsize.models import SizeUpdate

logger = logging.getLogger(__name__)

SizeCallback = Callable[[SizeUpdate], None]


class Engine(Protocol):
    def cached_size(self, path: str) -> Optional[int]: ...

    def compute_size(self, path: str) -> int: ...


@dataclass
class _InFlight:
    future: Future
    backup_ids: list[uuid.UUID] = field(default_factory=list)


def _settled(size: Optional[int]) -> Future:
    future: Future = Future()
    future.set_result(size)
    return future


class SizeStream:
    """
    Yields the size of one backup at most once, then stops.

    A failed or cancelled computation ends the stream without a value. Streams
    are not restartable; request the size again for a fresh attempt.
    """

    def __init__(self, path: str, future: Future):
        self.path = path
        self._future = future
        self._consumed = False

    def __iter__(self) -> Iterator[int]:
        return self

    def __next__(self) -> int:
        if self._consumed:
            raise StopIteration
        self._consumed = True
        size = self.result()
        if size is None:
            raise StopIteration
        return size

    def result(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until settled; the size, or None if it could not be computed."""
        try:
            return self._future.result(timeout=timeout)
        except CancelledError:
            return None

    def done(self) -> bool:
        return self._future.done()


class SizeCoordinator:
    """Resolves backup sizes on a worker pool and publishes the results."""

    def __init__(self, engine: Engine, max_workers: int = 4):
        self.engine = engine
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="tmsize-size"
        )
        self._in_flight: dict[str, _InFlight] = {}
        self._in_flight_lock = threading.Lock()
        self._sizes: dict[uuid.UUID, int] = {}
        self._sizes_lock = threading.Lock()
        self._subscribers: dict[int, SizeCallback] = {}
        self._subscribers_lock = threading.Lock()
        self._tokens = itertools.count(1)

    def request_size(self, path: str, backup_id: uuid.UUID) -> SizeStream:
        """
        Request the size of a backup.

        Returns immediately. Starts a computation for path unless one is
        already running, in which case the request attaches to it.

        Args:
            path: Backup path
            backup_id: Identifier the size is published under

        Returns:
            Stream yielding the size once it settles
        """
        with self._in_flight_lock:
            record = self._in_flight.get(path)
            if record is not None:
                if backup_id not in record.backup_ids:
                    record.backup_ids.append(backup_id)
                logger.debug("Attached to running size computation for %s", path)
                return SizeStream(path, record.future)

            try:
                future = self._executor.submit(self._resolve, path)
            except RuntimeError as e:
                logger.warning("Cannot size %s: %s", path, e)
                return SizeStream(path, _settled(None))
            self._in_flight[path] = _InFlight(future=future, backup_ids=[backup_id])
            logger.debug("Started size computation for %s", path)

        return SizeStream(path, future)

    def _resolve(self, path: str) -> Optional[int]:
        size: Optional[int] = None
        try:
            size = self.engine.cached_size(path)
            if size is None:
                size = self.engine.compute_size(path)
            else:
                logger.debug("Size cache hit for %s", path)
        except SizeComputationError as e:
            logger.warning("Size unavailable for %s: %s", path, e)
        except Exception:
            logger.exception("Unexpected error computing size of %s", path)

        with self._in_flight_lock:
            record = self._in_flight.pop(path)

        if size is not None:
            for backup_id in record.backup_ids:
                self._publish(SizeUpdate(backup_id=backup_id, path=path, size=size))
        return size

    def _publish(self, update: SizeUpdate) -> None:
        with self._sizes_lock:
            self._sizes[update.backup_id] = update.size

        with self._subscribers_lock:
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(update)
            except Exception:
                logger.exception("Size subscriber failed for %s", update.path)

    def current_sizes(self) -> dict[uuid.UUID, int]:
        """Point-in-time copy of every published size."""
        with self._sizes_lock:
            return dict(self._sizes)

    def subscribe(self, callback: SizeCallback) -> int:
        """Register callback for future size updates. Returns a token."""
        token = next(self._tokens)
        with self._subscribers_lock:
            self._subscribers[token] = callback
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a subscription. Returns whether the token was registered."""
        with self._subscribers_lock:
            return self._subscribers.pop(token, None) is not None

    def in_flight(self) -> list[str]:
        """Paths with a computation currently running."""
        with self._in_flight_lock:
            return list(self._in_flight)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting work.

        With wait=False, queued computations are cancelled and forgotten;
        their streams end without a value.
        """
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

        # Cancelled work never reaches _resolve, so its record is dropped here
        with self._in_flight_lock:
            cancelled = [p for p, r in self._in_flight.items() if r.future.cancelled()]
            for path in cancelled:
                del self._in_flight[path]
        if cancelled:
            logger.debug("Cancelled %d queued size computations", len(cancelled))

    def __enter__(self) -> "SizeCoordinator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
