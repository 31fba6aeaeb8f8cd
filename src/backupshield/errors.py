"""
Error taxonomy for the backup and restore pipeline.

Fatal errors abort the current operation and carry the stage that
failed plus whatever artifact was left on disk in an intermediate
state. Upload and notification errors are never propagated out of
the orchestrator; they are captured into step outcomes instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class BackupShieldError(Exception):
    """Base class for every pipeline error.

    Attributes:
        stage: Pipeline stage that raised (``archiving``, ``sealing``, ...).
        artifact_path: Artifact left on disk by the failed operation, if any.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        artifact_path: Optional[Path] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.artifact_path = artifact_path

    def describe(self) -> str:
        """One-line summary naming the stage and any remaining artifact."""
        parts = [str(self)]
        if self.stage:
            parts.insert(0, f"[{self.stage}]")
        if self.artifact_path:
            parts.append(f"(left on disk: {self.artifact_path})")
        return " ".join(parts)


class ArchiveError(BackupShieldError):
    """Raised when an archive cannot be created."""


class ExtractionError(BackupShieldError):
    """Raised when an archive cannot be unpacked."""


class EncryptionError(BackupShieldError):
    """Raised when sealing an archive fails."""


class DecryptionError(BackupShieldError):
    """Raised when a sealed artifact cannot be decrypted."""


class ConfigurationError(BackupShieldError):
    """Raised when configuration is unusable for the requested operation."""


class PassphraseMissingError(ConfigurationError):
    """Raised when sealing or unsealing is requested without a passphrase."""


class UploadError(BackupShieldError):
    """Replication failure. Non-fatal: captured, never propagated."""


class NotificationError(BackupShieldError):
    """Notification failure. Non-fatal: captured, never propagated."""
