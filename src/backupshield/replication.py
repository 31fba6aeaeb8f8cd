"""
Replication -- best-effort copy of a sealed artifact to one remote.

Backends know how to push a single file. The ``Replicator`` wraps a
backend, makes exactly one attempt, and turns any failure into
a failed ``StepOutcome``. Local archives are never touched here:
whatever happens remotely, the sealed artifact stays on disk.

rclone: ``rclone copy <file> <remote:path>`` (the default).
Local: plain filesystem copy. For USB drives, NAS, mounted shares.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import UploadError
from .models import StepOutcome, StepStatus

logger = logging.getLogger("backupshield.replication")


class ReplicationBackend(ABC):
    """Abstract transport for a single artifact."""

    def __init__(self, destination: str):
        self.destination = destination

    @abstractmethod
    def push(self, local_path: Path) -> None:
        """Copy ``local_path`` to the destination.

        Raises:
            UploadError: If the copy did not complete.
        """

    @abstractmethod
    def available(self) -> bool:
        """Check if this backend is currently usable."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


class RcloneBackend(ReplicationBackend):
    """Copies artifacts with rclone to a configured ``remote:path``."""

    def __init__(self, destination: str, rclone_binary: str = "rclone"):
        super().__init__(destination)
        self.rclone_binary = rclone_binary

    @property
    def name(self) -> str:
        return "rclone"

    def push(self, local_path: Path) -> None:
        cmd = [self.rclone_binary, "copy", str(local_path), self.destination]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except (OSError, ValueError) as exc:
            raise UploadError(
                f"Cannot run {self.rclone_binary}: {exc}",
                stage="replicating",
                artifact_path=Path(local_path),
            ) from exc
        if result.returncode != 0:
            raise UploadError(
                f"rclone copy to {self.destination} failed "
                f"(status {result.returncode}): {result.stderr.strip()}",
                stage="replicating",
                artifact_path=Path(local_path),
            )

    def available(self) -> bool:
        return shutil.which(self.rclone_binary) is not None


class LocalBackend(ReplicationBackend):
    """Copies artifacts into a mounted directory."""

    @property
    def name(self) -> str:
        return "local"

    def push(self, local_path: Path) -> None:
        target = Path(self.destination).expanduser()
        try:
            target.mkdir(parents=True, exist_ok=True)
            shutil.copy2(local_path, target / Path(local_path).name)
        except (OSError, ValueError) as exc:
            raise UploadError(
                f"Copy to {target} failed: {exc}",
                stage="replicating",
                artifact_path=Path(local_path),
            ) from exc

    def available(self) -> bool:
        return Path(self.destination).expanduser().parent.exists()


def create_backend(kind: str, destination: str, **options: str) -> ReplicationBackend:
    """Factory for the configured backend type.

    Args:
        kind: ``rclone`` or ``local``.
        destination: Backend-specific destination string.
        **options: Extra backend options (e.g. ``rclone_binary``).

    Raises:
        ValueError: If the backend type is not supported.
    """
    if kind == "rclone":
        return RcloneBackend(destination, **options)
    if kind == "local":
        return LocalBackend(destination)
    raise ValueError(f"Unsupported replication backend: {kind}")


class Replicator:
    """Single-attempt, never-fatal upload of an artifact."""

    STEP = "replication"

    def __init__(self, backend: ReplicationBackend):
        self.backend = backend

    def upload(self, local_path: Path) -> StepOutcome:
        """Copy ``local_path`` to the backend's destination.

        Returns:
            A StepOutcome; failures carry ``error_type="UploadError"``.
        """
        if not self.backend.destination:
            logger.info("No remote destination configured, skipping replication")
            return StepOutcome(
                step=self.STEP, status=StepStatus.SKIPPED,
                detail="no remote destination configured",
            )

        logger.info("Uploading %s to %s (%s)", local_path, self.backend.destination, self.backend.name)
        try:
            self.backend.push(Path(local_path))
        except UploadError as exc:
            logger.warning("Replication failed: %s", exc)
            return StepOutcome(
                step=self.STEP,
                status=StepStatus.FAILED,
                error_type=type(exc).__name__,
                error=str(exc),
                detail=self.backend.destination,
            )
        except Exception as exc:
            logger.warning("Replication via %s raised unexpectedly: %s", self.backend.name, exc)
            return StepOutcome(
                step=self.STEP,
                status=StepStatus.FAILED,
                error_type=UploadError.__name__,
                error=f"{type(exc).__name__}: {exc}",
                detail=self.backend.destination,
            )

        logger.info("Upload to %s succeeded", self.backend.destination)
        return StepOutcome(
            step=self.STEP, status=StepStatus.OK, detail=self.backend.destination
        )
