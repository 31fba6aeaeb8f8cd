"""
Pydantic models for archives, snapshot state, and pipeline results.

Results are plain values the orchestrator builds and the CLI renders.
Non-fatal step failures live here as ``StepOutcome`` records rather
than as exceptions.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class ArchiveKind(str, Enum):
    """Which flavour of archive an artifact holds."""

    FULL = "full"
    INCREMENTAL = "incremental"


class PipelineStage(str, Enum):
    """States of the backup and restore pipelines."""

    IDLE = "idle"
    ARCHIVING = "archiving"
    SEALING = "sealing"
    REPLICATING = "replicating"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"
    DETECT_SEALED = "detect_sealed"
    UNSEALING = "unsealing"
    EXTRACTING = "extracting"
    CLEANUP = "cleanup"


class StepStatus(str, Enum):
    """Result of a best-effort step."""

    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class ArchiveArtifact(BaseModel):
    """A single archive produced by the archiver.

    Attributes:
        source_path: Directory tree that was archived.
        created_at: Timestamp embedded in the artifact name.
        kind: Full or incremental.
        path: Current location on disk.
        sealed: Whether ``path`` points at the encrypted form.
        entry_count: Number of tar members written.
        size_bytes: Size of ``path`` at the time it was recorded.
    """

    source_path: Path
    created_at: datetime
    kind: ArchiveKind
    path: Path
    sealed: bool = False
    entry_count: int = 0
    size_bytes: int = 0


class FileStamp(BaseModel):
    """Metadata used to decide whether an entry changed between runs."""

    mtime_ns: int
    ctime_ns: int
    size: int
    inode: int
    device: int


class SnapshotState(BaseModel):
    """Persisted incremental baseline for one source tree lineage."""

    schema_version: str = "1"
    source_path: str = ""
    updated_at: Optional[datetime] = None
    entries: dict[str, FileStamp] = Field(default_factory=dict)


class StepOutcome(BaseModel):
    """Outcome of a non-fatal step (replication, notification)."""

    step: str
    status: StepStatus
    error_type: Optional[str] = None
    error: Optional[str] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.OK


class BackupResult(BaseModel):
    """What a backup run produced.

    ``success`` is true once sealing completed, regardless of the
    replication and notification outcomes.
    """

    success: bool
    kind: ArchiveKind
    artifact: Optional[ArchiveArtifact] = None
    replication: Optional[StepOutcome] = None
    notification: Optional[StepOutcome] = None
    stages: list[PipelineStage] = Field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        """Human readable lines for every failed best-effort step."""
        lines = []
        for outcome in (self.replication, self.notification):
            if outcome is not None and outcome.status == StepStatus.FAILED:
                lines.append(f"{outcome.error_type}: {outcome.error}")
        return lines


class RestoreResult(BaseModel):
    """What a restore run produced."""

    artifact_path: Path
    destination: Path
    was_sealed: bool
    entries_extracted: int = 0
    stages: list[PipelineStage] = Field(default_factory=list)


class BackupDescriptor(BaseModel):
    """A backup artifact found on disk by ``list_backups``."""

    path: Path
    filename: str
    kind: ArchiveKind
    created_at: datetime
    sealed: bool
    size: int
