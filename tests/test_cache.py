"""Tests for the size cache."""

import json
import threading

import pytest

from tmsize.cache import DEFAULT_TTL_SECONDS, ReadWriteLock, SizeCache
from tmsize.errors import PersistenceError
from tmsize.store import JsonFileStore, MemoryStore

PATH = "/Volumes/TM/Backups.backupdb/Mac/2024-01-01-000000"


class BrokenStore:
    def __init__(self):
        self.write_attempts = 0

    def read_all(self):
        raise PersistenceError("unreadable")

    def write_all(self, mapping):
        self.write_attempts += 1
        raise PersistenceError("read-only volume")


@pytest.fixture
def cache(clock):
    return SizeCache(MemoryStore(), clock=clock)


class TestGet:
    def test_hit_with_matching_modification_time(self, cache):
        cache.put(PATH, 1000, 500.0)
        assert cache.get(PATH, 500.0) == 1000

    def test_miss_when_modification_time_differs(self, cache):
        """A backup modified since caching must be recomputed."""
        cache.put(PATH, 1000, 500.0)
        assert cache.get(PATH, 501.0) is None

    def test_miss_for_unknown_path(self, cache):
        assert cache.get("/nope", 1.0) is None

    def test_fresh_until_ttl(self, cache, clock):
        cache.put(PATH, 1000, 500.0)
        clock.advance(DEFAULT_TTL_SECONDS - 1)
        assert cache.get(PATH, 500.0) == 1000

    def test_expired_after_ttl(self, cache, clock):
        cache.put(PATH, 1000, 500.0)
        clock.advance(DEFAULT_TTL_SECONDS + 1)
        assert cache.get(PATH, 500.0) is None

    def test_custom_ttl(self, clock):
        cache = SizeCache(MemoryStore(), ttl_seconds=60, clock=clock)
        cache.put(PATH, 1000, 500.0)
        clock.advance(61)
        assert cache.get(PATH, 500.0) is None


class TestPut:
    def test_replaces_existing_entry(self, cache):
        cache.put(PATH, 1000, 500.0)
        cache.put(PATH, 2000, 600.0)
        assert cache.get(PATH, 600.0) == 2000
        assert cache.get(PATH, 500.0) is None
        assert len(cache) == 1

    def test_restamps_cached_at(self, cache, clock):
        cache.put(PATH, 1000, 500.0)
        clock.advance(DEFAULT_TTL_SECONDS - 10)
        cache.put(PATH, 1000, 500.0)
        clock.advance(20)
        assert cache.get(PATH, 500.0) == 1000

    def test_rejects_negative_size(self, cache):
        with pytest.raises(ValueError):
            cache.put(PATH, -1, 500.0)
        assert PATH not in cache

    def test_persists_every_write(self, clock):
        store = MemoryStore()
        cache = SizeCache(store, clock=clock)
        cache.put(PATH, 1000, 500.0)
        cache.put("/other", 5, 1.0)
        assert store.write_count == 2
        assert store.read_all()[PATH]["size"] == 1000


class TestRemoveAndClear:
    def test_remove(self, cache):
        cache.put(PATH, 1000, 500.0)
        assert cache.remove(PATH) is True
        assert cache.get(PATH, 500.0) is None

    def test_remove_missing(self, cache):
        assert cache.remove(PATH) is False

    def test_clear(self, cache):
        cache.put(PATH, 1000, 500.0)
        cache.put("/other", 5, 1.0)
        cache.clear()
        assert len(cache) == 0

    def test_prune_expired(self, cache, clock):
        cache.put(PATH, 1000, 500.0)
        clock.advance(DEFAULT_TTL_SECONDS + 1)
        cache.put("/other", 5, 1.0)
        assert cache.prune_expired() == 1
        assert PATH not in cache
        assert "/other" in cache


class TestPersistence:
    def test_survives_restart(self, tmp_path, clock):
        store_path = tmp_path / "cache.json"
        SizeCache(JsonFileStore(store_path), clock=clock).put(PATH, 1234, 500.0)

        reloaded = SizeCache(JsonFileStore(store_path), clock=clock)
        assert reloaded.get(PATH, 500.0) == 1234

    def test_skips_corrupt_entries(self, tmp_path, clock):
        store_path = tmp_path / "cache.json"
        store_path.write_text(
            json.dumps(
                {
                    PATH: {"size": 10, "cached_at": clock(), "source_modification_time": 1.0},
                    "/bad": {"size": -5},
                }
            )
        )
        cache = SizeCache(JsonFileStore(store_path), clock=clock)
        assert cache.get(PATH, 1.0) == 10
        assert "/bad" not in cache

    def test_unreadable_store_starts_empty(self, clock):
        cache = SizeCache(BrokenStore(), clock=clock)
        assert len(cache) == 0

    def test_write_failure_keeps_memory_copy(self, clock):
        """Persistence is best effort: one attempt, no exception."""
        store = BrokenStore()
        cache = SizeCache(store, clock=clock)
        cache.put(PATH, 1000, 500.0)
        assert cache.get(PATH, 500.0) == 1000
        assert store.write_attempts == 1

    def test_write_failure_is_logged(self, clock, caplog):
        cache = SizeCache(BrokenStore(), clock=clock)
        with caplog.at_level("WARNING", logger="tmsize.cache"):
            cache.put(PATH, 1000, 500.0)
        assert "could not be saved" in caplog.text


class TestConcurrency:
    def test_concurrent_writers(self, cache):
        def writer(n):
            for i in range(50):
                cache.put(f"/backup/{n}/{i}", i, float(i))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 400
        assert cache.get("/backup/3/49", 49.0) == 49

    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=5)

        def reader():
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not inside.broken

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        writer_holding = threading.Event()
        release_writer = threading.Event()

        def writer():
            with lock.write():
                writer_holding.set()
                release_writer.wait(timeout=5)
                events.append("write")

        def reader():
            writer_holding.wait(timeout=5)
            with lock.read():
                events.append("read")

        w = threading.Thread(target=writer)
        r = threading.Thread(target=reader)
        w.start()
        r.start()
        writer_holding.wait(timeout=5)
        release_writer.set()
        w.join(timeout=5)
        r.join(timeout=5)
        assert events == ["write", "read"]
