"""Tests for the snapshot store behind incremental backups."""

from __future__ import annotations

import fcntl
from pathlib import Path

import pytest

from backupshield.errors import ArchiveError
from backupshield.snapshot import SnapshotStore


class TestSnapshotPersistence:
    """Loading, saving and locking the state file."""

    def test_missing_state_loads_as_none(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "snapshot.json")
        assert store.exists() is False
        assert store.load() is None

    def test_save_then_load(self, tmp_path: Path, source_tree: Path):
        store = SnapshotStore(tmp_path / "snapshot.json")
        entries = store.scan(source_tree)
        store.save(store.build_state(source_tree, entries))

        loaded = store.load()
        assert loaded is not None
        assert loaded.entries == entries
        assert loaded.source_path == str(source_tree.resolve())
        assert loaded.updated_at is not None

    def test_save_leaves_no_temp_files(self, tmp_path: Path, source_tree: Path):
        store = SnapshotStore(tmp_path / "state" / "snapshot.json")
        store.save(store.build_state(source_tree, store.scan(source_tree)))
        assert [p.name for p in (tmp_path / "state").iterdir()] == ["snapshot.json"]

    def test_corrupt_state_is_an_error(self, tmp_path: Path):
        """A garbled baseline must not silently become a full backup."""
        path = tmp_path / "snapshot.json"
        path.write_text("{not json")
        with pytest.raises(ArchiveError, match="unreadable"):
            SnapshotStore(path).load()

    def test_lock_creates_sidecar(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "snapshot.json")
        with store.lock():
            assert store.lock_path.exists()
        assert store.lock_path.name == "snapshot.json.lock"

    def test_lock_excludes_a_second_holder(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "snapshot.json")
        with store.lock():
            with store.lock_path.open("a+") as other:
                with pytest.raises(BlockingIOError):
                    fcntl.flock(other.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

        with store.lock_path.open("a+") as other:
            fcntl.flock(other.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            fcntl.flock(other.fileno(), fcntl.LOCK_UN)


class TestChangeDetection:
    """Scanning a tree and diffing against the baseline."""

    def test_scan_lists_files_not_directories(self, source_tree: Path):
        entries = SnapshotStore.scan(source_tree)
        assert set(entries) == {"notes.txt", "docs/readme.md", "data.bin"}

    def test_scan_records_symlinks_without_following(self, source_tree: Path):
        (source_tree / "link-to-docs").symlink_to(source_tree / "docs")
        entries = SnapshotStore.scan(source_tree)
        assert "link-to-docs" in entries
        assert "link-to-docs/readme.md" not in entries

    def test_scan_skips_excluded_directory(self, source_tree: Path):
        inner = source_tree / "backups"
        inner.mkdir()
        (inner / "old.tar.gz").write_bytes(b"x")
        entries = SnapshotStore.scan(source_tree, exclude=[inner])
        assert "backups/old.tar.gz" not in entries

    def test_scan_skips_file_that_vanishes(self, source_tree: Path, monkeypatch):
        real_lstat = Path.lstat

        def vanishing_lstat(self):
            if self.name == "notes.txt":
                raise FileNotFoundError(2, "No such file or directory", str(self))
            return real_lstat(self)

        monkeypatch.setattr(Path, "lstat", vanishing_lstat)
        entries = SnapshotStore.scan(source_tree)
        assert set(entries) == {"docs/readme.md", "data.bin"}

    def test_no_previous_state_means_everything_changed(self, source_tree: Path):
        current = SnapshotStore.scan(source_tree)
        assert SnapshotStore.changed(None, current) == set(current)
        assert SnapshotStore.removed(None, current) == set()

    def test_unchanged_tree_has_no_changes(self, source_tree: Path):
        baseline = SnapshotStore.build_state(source_tree, SnapshotStore.scan(source_tree))
        assert SnapshotStore.changed(baseline, SnapshotStore.scan(source_tree)) == set()

    def test_modified_added_and_removed(self, source_tree: Path):
        baseline = SnapshotStore.build_state(source_tree, SnapshotStore.scan(source_tree))

        (source_tree / "notes.txt").write_text("remember the milk and the eggs\n")
        (source_tree / "docs" / "new.md").write_text("fresh")
        (source_tree / "data.bin").unlink()

        current = SnapshotStore.scan(source_tree)
        assert SnapshotStore.changed(baseline, current) == {"notes.txt", "docs/new.md"}
        assert SnapshotStore.removed(baseline, current) == {"data.bin"}
