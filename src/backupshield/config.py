"""
Configuration loading and directory bootstrap.

Configuration is a YAML file mapped onto ``BackupConfig``. A missing
file is not an error: defaults are used and a warning is logged.
The one value with no default is the passphrase. Sealing or
unsealing without one raises ``PassphraseMissingError`` instead of
silently encrypting with a well-known placeholder.

Lookup order:
    1. explicit path (``--config``)
    2. ``$BACKUPSHIELD_CONFIG``
    3. ``./backupshield.yaml``
    4. ``~/.backupshield/config.yaml``

``$BACKUPSHIELD_PASSPHRASE`` overrides the passphrase from any file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from . import BACKUPSHIELD_HOME
from .errors import PassphraseMissingError

logger = logging.getLogger("backupshield.config")

CONFIG_FILENAME = "backupshield.yaml"
CONFIG_ENV_VAR = "BACKUPSHIELD_CONFIG"
PASSPHRASE_ENV_VAR = "BACKUPSHIELD_PASSPHRASE"


class BackupConfig(BaseModel):
    """Everything the orchestrator needs, passed in explicitly.

    Attributes:
        passphrase: Symmetric key passphrase. No default.
        remote_destination: rclone ``remote:path`` or a local directory.
        replication_backend: ``rclone`` or ``local``.
        notification_recipient: Mail address for outcome reports.
        backup_dir: Where archives and the snapshot state live.
    """

    passphrase: Optional[str] = Field(default=None, repr=False)
    remote_destination: str = "myremote:backupfolder"
    replication_backend: Literal["rclone", "local"] = "rclone"
    notification_recipient: str = ""
    notification_subject: str = "BackupShield - Backup notification"
    backup_dir: Path = Path("backups")
    snapshot_filename: str = "snapshot.json"
    gpg_binary: str = "gpg"
    cipher_algo: str = "AES256"
    rclone_binary: str = "rclone"
    mail_binary: str = "mailx"

    @property
    def snapshot_path(self) -> Path:
        """Fixed, well-known location of the incremental baseline."""
        return self.backup_dir / self.snapshot_filename

    def require_passphrase(self) -> str:
        """Return the passphrase or raise if none is configured."""
        if not self.passphrase:
            raise PassphraseMissingError(
                "No passphrase configured. Set 'passphrase' in the config "
                f"file or export {PASSPHRASE_ENV_VAR}."
            )
        return self.passphrase

    def masked(self) -> dict:
        """Config as a dict with the passphrase hidden, for display."""
        data = self.model_dump(mode="json")
        data["passphrase"] = "********" if self.passphrase else None
        return data


def candidate_paths(explicit: Optional[Path] = None) -> list[Path]:
    """Config file locations in lookup order."""
    paths: list[Path] = []
    if explicit is not None:
        paths.append(Path(explicit).expanduser())
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        paths.append(Path(env_path).expanduser())
    paths.append(Path.cwd() / CONFIG_FILENAME)
    paths.append(Path(BACKUPSHIELD_HOME).expanduser() / "config.yaml")
    return paths


def load_config(path: Optional[Path] = None) -> BackupConfig:
    """Load configuration, falling back to defaults.

    Relative ``backup_dir`` values are resolved against the directory
    of the config file they came from, or the current working
    directory when no file was found.

    Args:
        path: Explicit config file. Searched first.

    Returns:
        BackupConfig with environment overrides applied.
    """
    config: Optional[BackupConfig] = None
    base_dir = Path.cwd()

    for candidate in candidate_paths(path):
        if not candidate.is_file():
            continue
        try:
            data = yaml.safe_load(candidate.read_text(encoding="utf-8")) or {}
            config = BackupConfig(**data)
            base_dir = candidate.parent
            logger.debug("Loaded config from %s", candidate)
            break
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config %s: %s; using defaults", candidate, exc)
            config = BackupConfig()
            break

    if config is None:
        logger.warning("No %s found. Using default values.", CONFIG_FILENAME)
        config = BackupConfig()

    if not config.backup_dir.is_absolute():
        config.backup_dir = (base_dir / config.backup_dir.expanduser()).resolve()

    env_passphrase = os.environ.get(PASSPHRASE_ENV_VAR)
    if env_passphrase:
        config.passphrase = env_passphrase

    return config


def save_config(config: BackupConfig, path: Path) -> Path:
    """Write ``config`` as YAML.

    The passphrase is only written when one is set.
    """
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    path.write_text(yaml.safe_dump(data, default_flow_style=False), encoding="utf-8")
    logger.info("Config written to %s", path)
    return path


def ensure_directories(config: BackupConfig, *extra: Path) -> list[Path]:
    """Create the backup directory and any extra directories.

    Returns:
        The directories that now exist.
    """
    created = []
    for directory in (config.backup_dir, *extra):
        directory = Path(directory).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        created.append(directory)
    return created
