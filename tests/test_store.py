"""Tests for durable stores."""

import json

import pytest

from tmsize.errors import PersistenceError
from tmsize.store import JsonFileStore, MemoryStore


class TestJsonFileStore:
    def test_missing_file_reads_empty(self, tmp_path):
        assert JsonFileStore(tmp_path / "none.json").read_all() == {}

    def test_write_then_read(self, tmp_path):
        store = JsonFileStore(tmp_path / "nested" / "cache.json")
        store.write_all({"/a": {"size": 1}})
        assert store.read_all() == {"/a": {"size": 1}}

    def test_write_leaves_no_temp_files(self, tmp_path):
        store = JsonFileStore(tmp_path / "cache.json")
        store.write_all({"/a": 1})
        store.write_all({"/b": 2})
        assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            JsonFileStore(path).read_all()

    def test_non_mapping_content(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps([1, 2]))
        with pytest.raises(PersistenceError):
            JsonFileStore(path).read_all()

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = JsonFileStore(blocker / "cache.json")
        with pytest.raises(PersistenceError):
            store.write_all({"/a": 1})

    def test_unserializable_value(self, tmp_path):
        store = JsonFileStore(tmp_path / "cache.json")
        with pytest.raises(PersistenceError):
            store.write_all({"/a": object()})
        assert not (tmp_path / "cache.json").exists()


class TestMemoryStore:
    def test_round_trip_is_a_copy(self):
        store = MemoryStore()
        data = {"/a": {"size": 1}}
        store.write_all(data)
        data["/a"]["size"] = 99
        assert store.read_all() == {"/a": {"size": 1}}

    def test_initial_content(self):
        assert MemoryStore({"/a": 1}).read_all() == {"/a": 1}

    def test_counts_writes(self):
        store = MemoryStore()
        store.write_all({})
        store.write_all({})
        assert store.write_count == 2
