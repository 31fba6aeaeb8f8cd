"""
Crypto sealer -- symmetric at-rest encryption of archives via GnuPG.

    seal:   backup_full_X.tar.gz  ->  backup_full_X.tar.gz.gpg  (plaintext removed)
    unseal: backup_full_X.tar.gz.gpg  ->  <output path>

The passphrase is handed to gpg on stdin (``--passphrase-fd 0``) so it
never shows up in the process table.

Hardening guarantees:
    - Plaintext is deleted only after gpg succeeded and the sealed file exists
    - A failed seal leaves the plaintext in place and no sealed file behind
    - A failed unseal leaves no partial plaintext behind
    - An existing sealed artifact is never overwritten
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from .errors import DecryptionError, EncryptionError

logger = logging.getLogger("backupshield.crypto")

SEALED_SUFFIX = ".gpg"


def is_sealed(path: Path) -> bool:
    """Whether ``path`` names a sealed artifact."""
    return Path(path).name.endswith(SEALED_SUFFIX)


def sealed_path_for(plaintext_path: Path) -> Path:
    """Where ``seal`` writes the encrypted form of ``plaintext_path``."""
    plaintext_path = Path(plaintext_path)
    return plaintext_path.with_name(plaintext_path.name + SEALED_SUFFIX)


class CryptoSealer:
    """Encrypts and decrypts archives with ``gpg --symmetric``.

    Args:
        gpg_binary: Name or path of the gpg executable.
        cipher_algo: Symmetric cipher passed to ``--cipher-algo``.
    """

    def __init__(self, gpg_binary: str = "gpg", cipher_algo: str = "AES256"):
        self.gpg_binary = gpg_binary
        self.cipher_algo = cipher_algo

    def available(self) -> bool:
        return shutil.which(self.gpg_binary) is not None

    def _base_cmd(self) -> list[str]:
        return [
            self.gpg_binary, "--batch", "--yes", "--quiet",
            "--no-symkey-cache",
            "--pinentry-mode", "loopback",
            "--passphrase-fd", "0",
        ]

    def _run(self, cmd: list[str], passphrase: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            cmd, input=passphrase, capture_output=True, text=True, check=False
        )

    def seal(self, plaintext_path: Path, passphrase: str) -> Path:
        """Encrypt ``plaintext_path`` and remove the plaintext.

        Args:
            plaintext_path: Archive to encrypt.
            passphrase: Symmetric passphrase.

        Returns:
            Path to the sealed artifact (``<plaintext>.gpg``).

        Raises:
            EncryptionError: If gpg cannot be run, fails, or would
                overwrite an existing sealed artifact. The plaintext is
                left untouched in every failure case.
        """
        plaintext = Path(plaintext_path)
        output = sealed_path_for(plaintext)

        if not plaintext.is_file():
            raise EncryptionError(
                f"Nothing to seal: {plaintext} does not exist", stage="sealing"
            )
        if output.exists():
            raise EncryptionError(
                f"Sealed artifact {output.name} already exists; refusing to overwrite",
                stage="sealing",
                artifact_path=plaintext,
            )

        cmd = self._base_cmd() + [
            "--symmetric", "--cipher-algo", self.cipher_algo,
            "-o", str(output), str(plaintext),
        ]
        try:
            result = self._run(cmd, passphrase)
        except OSError as exc:
            output.unlink(missing_ok=True)
            raise EncryptionError(
                f"Cannot run {self.gpg_binary}: {exc}",
                stage="sealing",
                artifact_path=plaintext,
            ) from exc

        if result.returncode != 0 or not output.is_file() or output.stat().st_size == 0:
            output.unlink(missing_ok=True)
            logger.error("GPG encryption failed: %s", result.stderr.strip())
            raise EncryptionError(
                f"gpg exited with status {result.returncode}: {result.stderr.strip()}",
                stage="sealing",
                artifact_path=plaintext,
            )

        try:
            plaintext.unlink()
        except OSError as exc:
            raise EncryptionError(
                f"Sealed {output.name} but could not remove plaintext {plaintext}: {exc}",
                stage="sealing",
                artifact_path=plaintext,
            ) from exc
        logger.info("Archive sealed: %s", output)
        return output

    def unseal(self, sealed_path: Path, passphrase: str, output_path: Path) -> Path:
        """Decrypt ``sealed_path`` into ``output_path``.

        Raises:
            DecryptionError: On a wrong passphrase, corrupt input, or when
                gpg cannot be run. ``output_path`` is removed first.
        """
        sealed = Path(sealed_path)
        output = Path(output_path)

        if not sealed.is_file():
            raise DecryptionError(
                f"Sealed artifact not found: {sealed}", stage="unsealing"
            )

        cmd = self._base_cmd() + ["-o", str(output), "--decrypt", str(sealed)]
        try:
            result = self._run(cmd, passphrase)
        except OSError as exc:
            output.unlink(missing_ok=True)
            raise DecryptionError(
                f"Cannot run {self.gpg_binary}: {exc}", stage="unsealing"
            ) from exc

        if result.returncode != 0:
            output.unlink(missing_ok=True)
            logger.error("GPG decryption failed: %s", result.stderr.strip())
            raise DecryptionError(
                f"Cannot decrypt {sealed.name} (wrong passphrase or corrupt file): "
                f"{result.stderr.strip()}",
                stage="unsealing",
            )

        logger.info("Archive unsealed: %s", output)
        return output
