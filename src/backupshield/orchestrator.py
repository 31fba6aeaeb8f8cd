"""
Backup orchestrator -- sequences the pipeline and owns its verdict.

    backup   ->  archive -> seal -> replicate -> notify
    restore  ->  detect sealed -> [unseal] -> extract -> cleanup

Archiving and sealing are fatal: their errors propagate, tagged with
the stage and the artifact left on disk. Replication and notification
are best-effort: their outcomes are recorded on the result and never
change it. A backup is successful as soon as sealing completes.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional

from .archiver import Archiver, parse_archive_name
from .config import BackupConfig, ensure_directories
from .crypto import CryptoSealer, is_sealed, SEALED_SUFFIX
from .errors import ArchiveError, EncryptionError, ExtractionError
from .models import (
    ArchiveArtifact,
    ArchiveKind,
    BackupDescriptor,
    BackupResult,
    PipelineStage,
    RestoreResult,
    StepOutcome,
    StepStatus,
)
from .notify import Notifier
from .replication import Replicator, create_backend
from .snapshot import SnapshotStore

logger = logging.getLogger("backupshield.orchestrator")

RESTORE_BUFFER_PREFIX = "backupshield-restore-"


class BackupOrchestrator:
    """Runs backup and restore pipelines for one backup set.

    All collaborators are built from ``config`` unless injected.

    Args:
        config: Explicit configuration (no global state is read).
        archiver: Archive creation and extraction.
        sealer: Encryption at rest.
        replicator: Best-effort remote copy.
        notifier: Best-effort outcome report.
    """

    def __init__(
        self,
        config: BackupConfig,
        archiver: Optional[Archiver] = None,
        sealer: Optional[CryptoSealer] = None,
        replicator: Optional[Replicator] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.config = config
        self.backup_dir = Path(config.backup_dir).expanduser()
        self.archiver = archiver or Archiver(
            self.backup_dir, snapshot_store=SnapshotStore(config.snapshot_path)
        )
        self.sealer = sealer or CryptoSealer(
            gpg_binary=config.gpg_binary, cipher_algo=config.cipher_algo
        )
        if replicator is None:
            options = {"rclone_binary": config.rclone_binary} if config.replication_backend == "rclone" else {}
            replicator = Replicator(
                create_backend(config.replication_backend, config.remote_destination, **options)
            )
        self.replicator = replicator
        self.notifier = notifier or Notifier(
            config.notification_recipient,
            subject=config.notification_subject,
            mail_binary=config.mail_binary,
        )

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def create_full_backup(self, source_dir: Optional[Path] = None) -> BackupResult:
        """Archive, seal, replicate and report a full backup of ``source_dir``."""
        return self._run_backup(ArchiveKind.FULL, source_dir, self.archiver.create_full)

    def create_incremental_backup(self, source_dir: Optional[Path] = None) -> BackupResult:
        """Archive, seal, replicate and report an incremental backup of ``source_dir``."""
        return self._run_backup(
            ArchiveKind.INCREMENTAL, source_dir, self.archiver.create_incremental
        )

    def _run_backup(
        self,
        kind: ArchiveKind,
        source_dir: Optional[Path],
        create: Callable[[Path], ArchiveArtifact],
    ) -> BackupResult:
        source = Path(source_dir).expanduser() if source_dir else Path.cwd()
        stages = [PipelineStage.IDLE]

        # Checked before anything is written so no plaintext is orphaned.
        passphrase = self.config.require_passphrase()
        try:
            ensure_directories(self.config)
        except OSError as exc:
            raise ArchiveError(
                f"Cannot create backup directory {self.backup_dir}: {exc}",
                stage=PipelineStage.ARCHIVING.value,
            ) from exc

        stages.append(PipelineStage.ARCHIVING)
        try:
            artifact = create(source)
        except ArchiveError as exc:
            exc.stage = PipelineStage.ARCHIVING.value
            logger.error("Backup failed while archiving %s: %s", source, exc)
            raise

        stages.append(PipelineStage.SEALING)
        try:
            sealed_path = self.sealer.seal(artifact.path, passphrase)
        except EncryptionError as exc:
            exc.stage = PipelineStage.SEALING.value
            exc.artifact_path = artifact.path
            logger.error(
                "Backup failed while sealing; plaintext archive remains at %s", artifact.path
            )
            raise

        artifact = artifact.model_copy(
            update={
                "path": sealed_path,
                "sealed": True,
                "size_bytes": sealed_path.stat().st_size,
            }
        )

        stages.append(PipelineStage.REPLICATING)
        replication = self.replicator.upload(sealed_path)

        stages.append(PipelineStage.NOTIFYING)
        notification = self.notifier.notify(self._summary(artifact, replication))

        stages.append(PipelineStage.DONE)
        result = BackupResult(
            success=True,
            kind=kind,
            artifact=artifact,
            replication=replication,
            notification=notification,
            stages=stages,
        )
        for warning in result.warnings:
            logger.warning("Backup succeeded with warning: %s", warning)
        return result

    @staticmethod
    def _summary(artifact: ArchiveArtifact, replication: StepOutcome) -> str:
        """Notification body describing the (possibly partial) outcome."""
        lines = [
            f"Backup {artifact.kind.value.upper()} completed: {artifact.path}",
            f"Source: {artifact.source_path}",
            f"Entries: {artifact.entry_count}",
            f"Size: {artifact.size_bytes} bytes",
        ]
        if replication.status == StepStatus.OK:
            lines.append(f"Replication: uploaded to {replication.detail}")
        elif replication.status == StepStatus.SKIPPED:
            lines.append(f"Replication: skipped ({replication.detail})")
        else:
            lines.append(f"Replication: FAILED - {replication.error}")
            lines.append("The sealed archive is retained locally.")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore_backup(
        self, artifact_path: Path, destination_dir: Optional[Path] = None
    ) -> RestoreResult:
        """Restore ``artifact_path`` into ``destination_dir``.

        Sealed artifacts are decrypted into a private temporary
        directory that is removed on every exit path.

        Raises:
            DecryptionError: Wrong passphrase or corrupt sealed file.
            ExtractionError: Missing, corrupt or unwritable archive.
            PassphraseMissingError: Sealed artifact and no passphrase.
        """
        artifact = Path(artifact_path).expanduser()
        destination = Path(destination_dir).expanduser() if destination_dir else Path.cwd()
        stages = [PipelineStage.DETECT_SEALED]

        if not artifact.is_file():
            raise ExtractionError(
                f"Backup artifact not found: {artifact}", stage=PipelineStage.DETECT_SEALED.value
            )

        logger.info("Restoring from %s into %s", artifact, destination)
        try:
            ensure_directories(self.config, destination)
        except OSError as exc:
            raise ExtractionError(
                f"Cannot prepare restore destination {destination}: {exc}",
                stage=PipelineStage.EXTRACTING.value,
            ) from exc
        sealed = is_sealed(artifact)

        if not sealed:
            stages.append(PipelineStage.EXTRACTING)
            count = self.archiver.extract(artifact, destination)
            return RestoreResult(
                artifact_path=artifact,
                destination=destination,
                was_sealed=False,
                entries_extracted=count,
                stages=stages,
            )

        passphrase = self.config.require_passphrase()
        buffer_dir = Path(tempfile.mkdtemp(prefix=RESTORE_BUFFER_PREFIX))
        try:
            stages.append(PipelineStage.UNSEALING)
            plaintext = buffer_dir / artifact.name[: -len(SEALED_SUFFIX)]
            self.sealer.unseal(artifact, passphrase, plaintext)

            stages.append(PipelineStage.EXTRACTING)
            count = self.archiver.extract(plaintext, destination)
        finally:
            stages.append(PipelineStage.CLEANUP)
            shutil.rmtree(buffer_dir, ignore_errors=True)
            if buffer_dir.exists():
                logger.error("Could not remove restore buffer %s", buffer_dir)

        logger.info("Restore completed: %d entries into %s", count, destination)
        return RestoreResult(
            artifact_path=artifact,
            destination=destination,
            was_sealed=True,
            entries_extracted=count,
            stages=stages,
        )

    def list_backups(self) -> list[BackupDescriptor]:
        """Artifacts in this backup set's directory, newest first."""
        return list_backups(self.backup_dir)


def list_backups(backup_dir: Path) -> list[BackupDescriptor]:
    """Scan ``backup_dir`` for artifacts following the naming layout.

    Args:
        backup_dir: Directory to scan.

    Returns:
        Descriptors sorted newest first.
    """
    search_dir = Path(backup_dir).expanduser()
    if not search_dir.is_dir():
        return []

    found = []
    for f in search_dir.glob("backup_*.tar.gz*"):
        parsed = parse_archive_name(f.name)
        if parsed is None or not f.is_file():
            continue
        kind, created_at, sealed = parsed
        found.append(BackupDescriptor(
            path=f,
            filename=f.name,
            kind=kind,
            created_at=created_at,
            sealed=sealed,
            size=f.stat().st_size,
        ))

    found.sort(key=lambda d: (d.created_at, d.filename), reverse=True)
    return found
