"""Shared test fixtures for backupshield."""

from __future__ import annotations

import os
import shutil
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from backupshield.config import BackupConfig
from backupshield.errors import DecryptionError, EncryptionError


class StepClock:
    """Deterministic clock: every call is one second later than the last."""

    def __init__(self, start: datetime = datetime(2024, 12, 11, 15, 30, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


class FakeSealer:
    """Reversible stand-in for gpg so pipeline tests need no binary.

    The sealed file is a header carrying the passphrase followed by
    the plaintext bytes.
    """

    HEADER = b"FAKE-SEALED:"

    def __init__(self, fail_seal: bool = False):
        self.fail_seal = fail_seal
        self.sealed: list[Path] = []
        self.unsealed: list[Path] = []

    def seal(self, plaintext_path: Path, passphrase: str) -> Path:
        if self.fail_seal:
            raise EncryptionError("simulated gpg failure", stage="sealing",
                                  artifact_path=plaintext_path)
        output = plaintext_path.with_name(plaintext_path.name + ".gpg")
        output.write_bytes(
            self.HEADER + passphrase.encode() + b"\n" + plaintext_path.read_bytes()
        )
        plaintext_path.unlink()
        self.sealed.append(output)
        return output

    def unseal(self, sealed_path: Path, passphrase: str, output_path: Path) -> Path:
        data = Path(sealed_path).read_bytes()
        header, _, body = data.partition(b"\n")
        if header != self.HEADER + passphrase.encode():
            raise DecryptionError("bad passphrase", stage="unsealing")
        Path(output_path).write_bytes(body)
        self.unsealed.append(Path(output_path))
        return Path(output_path)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real user config and passphrases out of every test."""
    monkeypatch.delenv("BACKUPSHIELD_PASSPHRASE", raising=False)
    monkeypatch.delenv("BACKUPSHIELD_CONFIG", raising=False)
    monkeypatch.setattr("backupshield.config.BACKUPSHIELD_HOME", str(tmp_path / ".backupshield"))


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A small tree: nested files, a 10 KB binary, an empty directory."""
    src = tmp_path / "source"
    (src / "docs").mkdir(parents=True)
    (src / "empty").mkdir()
    (src / "notes.txt").write_text("remember the milk\n")
    (src / "docs" / "readme.md").write_text("# Project\n\nSome words.\n")
    (src / "data.bin").write_bytes(os.urandom(10 * 1024))
    return src


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def fake_sealer() -> FakeSealer:
    return FakeSealer()


@pytest.fixture
def config(tmp_path: Path) -> BackupConfig:
    """Config with a passphrase, local replication and no mail."""
    return BackupConfig(
        passphrase="correct horse battery staple",
        backup_dir=tmp_path / "backups",
        replication_backend="local",
        remote_destination=str(tmp_path / "remote"),
        notification_recipient="",
    )


@pytest.fixture
def gnupg_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Private GNUPGHOME; skips the test when gpg is not installed."""
    if not shutil.which("gpg"):
        pytest.skip("gpg not available")
    home = tmp_path / "gnupg"
    home.mkdir(mode=0o700)
    monkeypatch.setenv("GNUPGHOME", str(home))
    return home


def tree_files(root: Path) -> dict[str, bytes]:
    """Map of relative path -> content for every file under ``root``."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def tree_dirs(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_dir()}
