"""
Outcome notification by mail.

The message is piped to ``mailx -s <subject> <recipient>``, exactly
once, and a failure never affects the backup verdict.
"""

from __future__ import annotations

import logging
import subprocess

from .errors import NotificationError
from .models import StepOutcome, StepStatus

logger = logging.getLogger("backupshield.notify")


class Notifier:
    """Sends pipeline outcome reports to one recipient."""

    STEP = "notification"

    def __init__(
        self,
        recipient: str,
        subject: str = "BackupShield - Backup notification",
        mail_binary: str = "mailx",
    ):
        self.recipient = recipient
        self.subject = subject
        self.mail_binary = mail_binary

    def _send(self, message: str) -> None:
        cmd = [self.mail_binary, "-s", self.subject, self.recipient]
        try:
            result = subprocess.run(
                cmd, input=message, capture_output=True, text=True, check=False
            )
        except (OSError, ValueError) as exc:
            raise NotificationError(
                f"Cannot run {self.mail_binary}: {exc}", stage="notifying"
            ) from exc
        if result.returncode != 0:
            raise NotificationError(
                f"{self.mail_binary} exited with status {result.returncode}: "
                f"{result.stderr.strip()}",
                stage="notifying",
            )

    def notify(self, message: str) -> StepOutcome:
        """Send ``message`` to the configured recipient.

        Returns:
            A StepOutcome; failures carry ``error_type="NotificationError"``.
        """
        if not self.recipient:
            logger.info("No notification recipient configured, skipping")
            return StepOutcome(
                step=self.STEP, status=StepStatus.SKIPPED,
                detail="no recipient configured",
            )

        try:
            self._send(message)
        except NotificationError as exc:
            logger.warning("Notification failed: %s", exc)
            return StepOutcome(
                step=self.STEP,
                status=StepStatus.FAILED,
                error_type=type(exc).__name__,
                error=str(exc),
                detail=self.recipient,
            )
        except Exception as exc:
            logger.warning("Notification raised unexpectedly: %s", exc)
            return StepOutcome(
                step=self.STEP,
                status=StepStatus.FAILED,
                error_type=NotificationError.__name__,
                error=f"{type(exc).__name__}: {exc}",
                detail=self.recipient,
            )

        logger.info("Notification sent to %s", self.recipient)
        return StepOutcome(step=self.STEP, status=StepStatus.OK, detail=self.recipient)
