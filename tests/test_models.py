"""Tests for backupshield data models."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from backupshield.models import (
    ArchiveArtifact,
    ArchiveKind,
    BackupResult,
    FileStamp,
    SnapshotState,
    StepOutcome,
    StepStatus,
)


def _artifact(**overrides) -> ArchiveArtifact:
    data = dict(
        source_path=Path("/srv/data"),
        created_at=datetime(2024, 12, 11, 15, 30, 0),
        kind=ArchiveKind.FULL,
        path=Path("/backups/backup_full_20241211_153000.tar.gz"),
    )
    data.update(overrides)
    return ArchiveArtifact(**data)


class TestArchiveArtifact:

    def test_defaults(self):
        artifact = _artifact()
        assert artifact.sealed is False
        assert artifact.entry_count == 0

    def test_copy_to_sealed_form(self):
        artifact = _artifact()
        sealed = artifact.model_copy(
            update={"path": artifact.path.with_name(artifact.path.name + ".gpg"), "sealed": True}
        )
        assert sealed.sealed
        assert sealed.path.name.endswith(".tar.gz.gpg")
        assert artifact.sealed is False


class TestStepOutcome:

    def test_ok_property(self):
        assert StepOutcome(step="replication", status=StepStatus.OK).ok
        assert not StepOutcome(step="replication", status=StepStatus.SKIPPED).ok


class TestBackupResult:

    def test_warnings_list_failed_steps_only(self):
        result = BackupResult(
            success=True,
            kind=ArchiveKind.INCREMENTAL,
            artifact=_artifact(kind=ArchiveKind.INCREMENTAL),
            replication=StepOutcome(
                step="replication", status=StepStatus.FAILED,
                error_type="UploadError", error="remote unreachable",
            ),
            notification=StepOutcome(step="notification", status=StepStatus.SKIPPED),
        )
        assert result.warnings == ["UploadError: remote unreachable"]

    def test_clean_run_has_no_warnings(self):
        result = BackupResult(success=True, kind=ArchiveKind.FULL)
        assert result.warnings == []


class TestSnapshotState:

    def test_json_roundtrip(self):
        state = SnapshotState(
            source_path="/srv/data",
            updated_at=datetime(2024, 12, 11, 15, 30, 0),
            entries={
                "notes.txt": FileStamp(mtime_ns=1, ctime_ns=2, size=3, inode=4, device=5),
            },
        )
        restored = SnapshotState.model_validate_json(state.model_dump_json())
        assert restored == state
        assert restored.schema_version == "1"
