"""Tests for stream namespace resolution."""

import tempfile
import threading
from pathlib import Path

import pytest

from eventtracker.store.errors import StorageUnavailableError
from eventtracker.store.substrate import MEMORY_PATH
from eventtracker.store.tracker_store import TrackerStore
from eventtracker.utils.config import Config


class TestTrackerStore:
    """Test TrackerStore."""

    @pytest.fixture
    def temp_dir(self):
        """Create a temporary directory for tests."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_get_entry_creates_namespace(self, temp_dir):
        """Test resolving a stream creates its bucket."""
        with TrackerStore.open(temp_dir / "tracker.db") as store:
            entry = store.get_entry("0xabc")

            assert entry.stream_id == "0xabc"
            assert entry.bucket == b"logs0xabc"
            with store.db.view() as tx:
                assert tx.bucket(b"logs0xabc") is not None

    def test_resolve_twice_shares_data(self, temp_dir):
        """Test two handles for one stream observe the same records."""
        with TrackerStore.open(temp_dir / "tracker.db") as store:
            first = store.get_entry("stream")
            first.apply_batch(appended=[b"a", b"b"], checkpoint=b"blk")

            second = store.get_entry("stream")

            assert second.next_free_index() == 2
            assert second.get_record(1) == b"b"
            assert second.get_checkpoint() == b"blk"

    def test_streams_are_isolated(self, temp_dir):
        """Test sibling namespaces never see each other's records."""
        with TrackerStore.open(temp_dir / "tracker.db") as store:
            default = store.get_entry("")
            other = store.get_entry("other")

            default.apply_batch(appended=[b"a", b"b", b"c"], checkpoint=b"blk#1")
            other.apply_batch(appended=[b"x"])
            default.apply_batch(truncate_from=1)

            assert default.next_free_index() == 1
            assert other.next_free_index() == 1
            assert other.get_record(0) == b"x"
            assert other.get_checkpoint() is None

    def test_data_survives_reopen(self, temp_dir):
        """Test committed batches are durable across store instances."""
        path = temp_dir / "tracker.db"

        with TrackerStore.open(path) as store:
            store.get_entry("").apply_batch(appended=[b"a", b"b"], checkpoint=b"blk")

        with TrackerStore.open(path) as store:
            entry = store.get_entry("")

            assert entry.next_free_index() == 2
            assert entry.get_record(0) == b"a"
            assert entry.get_checkpoint() == b"blk"

    def test_get_entry_after_close(self, temp_dir):
        store = TrackerStore.open(temp_dir / "tracker.db")
        store.close()

        with pytest.raises(StorageUnavailableError):
            store.get_entry("")

    def test_from_config(self, temp_dir, monkeypatch):
        """Test the store opens the configured path."""
        monkeypatch.setenv("EVENTTRACKER_STORAGE", str(temp_dir / "configured.db"))
        config = Config()

        with TrackerStore.from_config(config) as store:
            store.get_entry("").apply_batch(appended=[b"a"])

        assert (temp_dir / "configured.db").exists()

    def test_max_connections_from_config(self, temp_dir, monkeypatch):
        monkeypatch.setenv("EVENTTRACKER_STORAGE", str(temp_dir / "configured.db"))
        config = Config()
        config.set("storage.max_connections", 3)

        with TrackerStore.from_config(config) as store:
            assert store.db.max_connections == 3


class TestInMemoryStore:
    """Test stores that keep everything in memory."""

    def test_memory_path_creates_no_file(self, tmp_path, monkeypatch):
        """Test ":memory:" is not treated as a file name."""
        monkeypatch.chdir(tmp_path)

        with TrackerStore.open(MEMORY_PATH) as store:
            store.get_entry("").apply_batch(appended=[b"a"], checkpoint=b"blk")
            assert store.db.in_memory

        assert list(tmp_path.iterdir()) == []

    def test_shared_across_threads(self):
        """Test batches written on one thread are visible on another."""
        results = []
        errors = []

        with TrackerStore.in_memory() as store:
            store.get_entry("stream").apply_batch(appended=[b"a", b"b"], checkpoint=b"blk")

            def reader():
                try:
                    entry = store.get_entry("stream")
                    results.append((entry.next_free_index(), entry.get_checkpoint()))
                except Exception as e:
                    errors.append(e)

            threads = [threading.Thread(target=reader) for _ in range(10)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert store.db.open_connections == 1

        assert errors == []
        assert results == [(2, b"blk")] * 10

    def test_empty_path_in_config(self, tmp_path, monkeypatch):
        """Test an empty storage path selects the in-memory store."""
        monkeypatch.chdir(tmp_path)
        config = Config()
        config.set("storage.path", "")

        with TrackerStore.from_config(config) as store:
            assert store.db.in_memory
            store.get_entry("").apply_batch(appended=[b"a"])
            assert store.get_entry("").next_free_index() == 1

        assert list(tmp_path.iterdir()) == []

    def test_contents_discarded_on_close(self):
        with TrackerStore.in_memory() as store:
            store.get_entry("").apply_batch(appended=[b"a"])

        with TrackerStore.in_memory() as store:
            assert store.get_entry("").next_free_index() == 0
