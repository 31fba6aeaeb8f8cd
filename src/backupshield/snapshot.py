"""
Snapshot store -- the persisted baseline behind incremental backups.

One JSON file per backup set records the stat metadata (mtime, ctime,
size, inode, device) of every file seen by the last incremental run.
The next incremental run archives only what differs from it.

Hardening guarantees:
    - State is replaced atomically (temp file + ``os.replace``)
    - An exclusive ``fcntl`` lock serializes runs sharing one state file
    - A missing state file means "no baseline" (full-equivalent run)
    - A corrupt state file is an error, never silently treated as missing
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pydantic import ValidationError

from .errors import ArchiveError
from .models import FileStamp, SnapshotState

logger = logging.getLogger("backupshield.snapshot")

LOCK_SUFFIX = ".lock"


def stamp_for(stat_result: os.stat_result) -> FileStamp:
    """Build a FileStamp from an ``lstat`` result."""
    return FileStamp(
        mtime_ns=stat_result.st_mtime_ns,
        ctime_ns=stat_result.st_ctime_ns,
        size=stat_result.st_size,
        inode=stat_result.st_ino,
        device=stat_result.st_dev,
    )


class SnapshotStore:
    """Reads, writes and locks the snapshot state file.

    Args:
        path: Location of the state file, typically
            ``<backup_dir>/snapshot.json``.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + LOCK_SUFFIX)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[SnapshotState]:
        """Load the recorded baseline.

        Returns:
            The state, or None when no state file exists yet.

        Raises:
            ArchiveError: If the file exists but cannot be parsed.
        """
        if not self.exists():
            logger.debug("No snapshot state at %s", self.path)
            return None
        try:
            return SnapshotState.model_validate_json(
                self.path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError, ValueError) as exc:
            raise ArchiveError(
                f"Snapshot state {self.path} is unreadable: {exc}",
                stage="archiving",
            ) from exc

    def save(self, state: SnapshotState) -> None:
        """Atomically replace the state file with ``state``."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(state.model_dump_json(indent=2))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Snapshot state saved: %d entries", len(state.entries))

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive lock on the state for the duration of the block."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self.lock_path.open("a+", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    @staticmethod
    def scan(source: Path, exclude: Iterable[Path] = ()) -> dict[str, FileStamp]:
        """Stat every non-directory entry beneath ``source``.

        Keys are POSIX paths relative to ``source``. Symlinks are
        stamped with ``lstat`` and never followed.

        Args:
            source: Root of the tree.
            exclude: Directories to skip entirely (e.g. the backup dir
                when it lives inside the source tree).

        Raises:
            ArchiveError: If part of the tree cannot be read.
        """
        source = Path(source)
        skip = {Path(p).resolve() for p in exclude}

        def _raise(exc: OSError) -> None:
            raise ArchiveError(
                f"Cannot read {exc.filename}: {exc.strerror}", stage="archiving"
            ) from exc

        entries: dict[str, FileStamp] = {}
        for root, dirs, files in os.walk(source, onerror=_raise):
            root_path = Path(root)
            dirs[:] = sorted(
                d for d in dirs if (root_path / d).resolve() not in skip
                or (root_path / d).is_symlink()
            )
            for name in sorted(files):
                full_path = root_path / name
                try:
                    st = full_path.lstat()
                except FileNotFoundError:
                    logger.warning("File vanished while scanning: %s", full_path)
                    continue
                except OSError as exc:
                    _raise(exc)
                entries[full_path.relative_to(source).as_posix()] = stamp_for(st)
            # Symlinks to directories show up in ``dirs`` and are not descended.
            for name in dirs:
                full_path = root_path / name
                if not full_path.is_symlink():
                    continue
                try:
                    st = full_path.lstat()
                except FileNotFoundError:
                    logger.warning("File vanished while scanning: %s", full_path)
                    continue
                entries[full_path.relative_to(source).as_posix()] = stamp_for(st)
        return entries

    @staticmethod
    def changed(
        previous: Optional[SnapshotState], current: dict[str, FileStamp]
    ) -> set[str]:
        """Paths in ``current`` that are new or differ from ``previous``."""
        if previous is None:
            return set(current)
        return {
            rel for rel, stamp in current.items()
            if previous.entries.get(rel) != stamp
        }

    @staticmethod
    def removed(
        previous: Optional[SnapshotState], current: dict[str, FileStamp]
    ) -> set[str]:
        """Paths recorded in ``previous`` that no longer exist."""
        if previous is None:
            return set()
        return set(previous.entries) - set(current)

    @staticmethod
    def build_state(source: Path, entries: dict[str, FileStamp]) -> SnapshotState:
        return SnapshotState(
            source_path=str(Path(source).resolve()),
            updated_at=datetime.now(timezone.utc),
            entries=entries,
        )
