"""
Archiver -- full and incremental gzip tar archives of a source tree.

Members are stored relative to the source root, the way
``tar -czf out.tar.gz -C <source> .`` lays them out:

    ./
    ./docs/
    ./docs/readme.txt
    ./photo.jpg

A full archive carries every entry. An incremental archive carries
every directory (so empty and unchanged directories still restore)
plus only the files and symlinks that changed since the baseline in
the snapshot store. The baseline is rewritten only after the archive
has been completely written.

Archive names embed the kind and a second-resolution timestamp:

    backup_full_20241211_153000.tar.gz
    backup_incremental_20241211_160500.tar.gz

Files are opened in exclusive-create mode, so a same-second collision
fails instead of overwriting an existing artifact.
"""

from __future__ import annotations

import logging
import os
import re
import tarfile
import zlib
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from .errors import ArchiveError, ExtractionError
from .models import ArchiveArtifact, ArchiveKind
from .snapshot import SnapshotStore

logger = logging.getLogger("backupshield.archiver")

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
ARCHIVE_SUFFIX = ".tar.gz"
ARCHIVE_NAME_RE = re.compile(
    r"^backup_(?P<kind>full|incremental)_(?P<stamp>\d{8}_\d{6})\.tar\.gz(?P<sealed>\.gpg)?$"
)


def archive_name(kind: ArchiveKind, when: datetime) -> str:
    """Build the artifact filename for ``kind`` created at ``when``."""
    return f"backup_{kind.value}_{when.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_SUFFIX}"


def parse_archive_name(filename: str) -> Optional[tuple[ArchiveKind, datetime, bool]]:
    """Split an artifact filename into (kind, timestamp, sealed).

    Returns:
        The parsed parts, or None if the name does not follow the layout.
    """
    match = ARCHIVE_NAME_RE.match(filename)
    if not match:
        return None
    return (
        ArchiveKind(match.group("kind")),
        datetime.strptime(match.group("stamp"), TIMESTAMP_FORMAT),
        match.group("sealed") is not None,
    )


def _arcname(rel: str) -> str:
    return "." if rel in ("", ".") else f"./{rel}"


class Archiver:
    """Creates and extracts backup archives.

    Args:
        backup_dir: Directory the archives are written into.
        snapshot_store: Baseline used by incremental runs. Defaults to
            ``<backup_dir>/snapshot.json``.
        clock: Returns the creation timestamp. Defaults to local time,
            matching ``date +%Y%m%d_%H%M%S``.
    """

    def __init__(
        self,
        backup_dir: Path,
        snapshot_store: Optional[SnapshotStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.backup_dir = Path(backup_dir).expanduser()
        self.snapshot_store = snapshot_store or SnapshotStore(
            self.backup_dir / "snapshot.json"
        )
        self.clock = clock or datetime.now

    def create_full(self, source_path: Path) -> ArchiveArtifact:
        """Archive the complete tree beneath ``source_path``.

        Raises:
            ArchiveError: If the source cannot be read or the archive
                cannot be written.
        """
        source = self._check_source(source_path)
        logger.info("Creating FULL backup of %s", source)
        return self._write_archive(source, ArchiveKind.FULL, files=None)

    def create_incremental(
        self, source_path: Path, snapshot_path: Optional[Path] = None
    ) -> ArchiveArtifact:
        """Archive only what changed since the recorded baseline.

        With no baseline on disk the archive equals a full backup and
        the snapshot state file is created.

        Args:
            source_path: Tree to archive.
            snapshot_path: Override for the snapshot state location.

        Raises:
            ArchiveError: If the source or the existing snapshot state
                cannot be read, or the archive cannot be written.
        """
        source = self._check_source(source_path)
        store = SnapshotStore(snapshot_path) if snapshot_path else self.snapshot_store
        logger.info("Creating INCREMENTAL backup of %s", source)

        with store.lock():
            previous = store.load()
            if previous is None:
                logger.info(
                    "No snapshot state at %s: this backup is a full level-0 baseline",
                    store.path,
                )
            current = store.scan(source, exclude=self._excluded(source))
            changed = store.changed(previous, current)
            removed = store.removed(previous, current)
            if removed:
                logger.info("%d entries removed since last baseline", len(removed))

            artifact = self._write_archive(source, ArchiveKind.INCREMENTAL, files=changed)
            store.save(store.build_state(source, current))

        logger.info(
            "Incremental baseline updated (%d changed, %d tracked)",
            len(changed), len(current),
        )
        return artifact

    def extract(self, archive_path: Path, destination_path: Path) -> int:
        """Unpack every member of ``archive_path`` into ``destination_path``.

        The destination is created if absent. Members that would land
        outside the destination are refused.

        Returns:
            Number of members extracted.

        Raises:
            ExtractionError: On a missing, corrupt or truncated archive,
                or when the destination cannot be written.
        """
        archive = Path(archive_path).expanduser()
        destination = Path(destination_path).expanduser()
        if not archive.is_file():
            raise ExtractionError(f"Archive not found: {archive}", stage="extracting")

        try:
            destination.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, "r:gz") as tar:
                members = tar.getmembers()
                tar.extractall(path=destination, members=members, filter="tar")
        except (tarfile.TarError, EOFError, zlib.error) as exc:
            raise ExtractionError(
                f"Corrupt or truncated archive {archive.name}: {exc}",
                stage="extracting",
            ) from exc
        except OSError as exc:
            raise ExtractionError(
                f"Cannot extract {archive.name} into {destination}: {exc}",
                stage="extracting",
            ) from exc

        logger.info("Extracted %d entries from %s into %s", len(members), archive.name, destination)
        return len(members)

    @staticmethod
    def list_members(archive_path: Path) -> list[str]:
        """Member names of an archive, in archive order."""
        try:
            with tarfile.open(Path(archive_path), "r:gz") as tar:
                return tar.getnames()
        except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
            raise ExtractionError(
                f"Cannot read archive {archive_path}: {exc}", stage="extracting"
            ) from exc

    def _check_source(self, source_path: Path) -> Path:
        source = Path(source_path).expanduser()
        if not source.is_dir():
            raise ArchiveError(
                f"Source is not a readable directory: {source}", stage="archiving"
            )
        if not os.access(source, os.R_OK | os.X_OK):
            raise ArchiveError(f"Source is not readable: {source}", stage="archiving")
        return source.resolve()

    def _excluded(self, source: Path) -> list[Path]:
        """The backup directory, when it lives inside the source tree."""
        backup_dir = self.backup_dir.resolve()
        if backup_dir == source or source in backup_dir.parents:
            return [backup_dir]
        return []

    def _iter_tree(self, source: Path) -> Iterable[tuple[str, bool]]:
        """Yield ``(relative path, is_directory)`` for every entry, sorted."""
        skip = set(self._excluded(source))

        def _raise(exc: OSError) -> None:
            raise ArchiveError(
                f"Cannot read {exc.filename}: {exc.strerror}", stage="archiving"
            ) from exc

        yield "", True
        for root, dirs, files in os.walk(source, onerror=_raise):
            root_path = Path(root)
            real_dirs = []
            for name in sorted(dirs):
                full_path = root_path / name
                rel = full_path.relative_to(source).as_posix()
                if full_path.is_symlink():
                    yield rel, False
                elif full_path.resolve() not in skip:
                    real_dirs.append(name)
                    yield rel, True
            dirs[:] = real_dirs
            for name in sorted(files):
                yield (root_path / name).relative_to(source).as_posix(), False

    def _write_archive(
        self, source: Path, kind: ArchiveKind, files: Optional[set[str]]
    ) -> ArchiveArtifact:
        """Write the archive; ``files=None`` means every entry."""
        created_at = self.clock()
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArchiveError(
                f"Cannot create backup directory {self.backup_dir}: {exc}",
                stage="archiving",
            ) from exc

        archive_path = self.backup_dir / archive_name(kind, created_at)
        entry_count = 0
        try:
            tar = tarfile.open(archive_path, "x:gz")
        except FileExistsError as exc:
            raise ArchiveError(
                f"Archive {archive_path.name} already exists; refusing to overwrite",
                stage="archiving",
            ) from exc
        except OSError as exc:
            raise ArchiveError(
                f"Cannot write archive {archive_path}: {exc}", stage="archiving"
            ) from exc

        try:
            with tar:
                for rel, is_dir in self._iter_tree(source):
                    if not is_dir and files is not None and rel not in files:
                        continue
                    try:
                        tar.add(source / rel if rel else source, arcname=_arcname(rel), recursive=False)
                    except FileNotFoundError:
                        logger.warning("File vanished while archiving: %s", rel)
                        continue
                    entry_count += 1
        except ArchiveError:
            archive_path.unlink(missing_ok=True)
            raise
        except (OSError, tarfile.TarError) as exc:
            archive_path.unlink(missing_ok=True)
            raise ArchiveError(
                f"Failed writing {archive_path.name}: {exc}", stage="archiving"
            ) from exc

        size = archive_path.stat().st_size
        logger.info(
            "%s backup created: %s (%d entries, %d bytes)",
            kind.value.upper(), archive_path, entry_count, size,
        )
        return ArchiveArtifact(
            source_path=source,
            created_at=created_at,
            kind=kind,
            path=archive_path,
            entry_count=entry_count,
            size_bytes=size,
        )
