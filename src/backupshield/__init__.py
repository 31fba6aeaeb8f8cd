"""
BackupShield: versioned, encrypted, replicated directory backups.

Full and incremental gzip tar archives, sealed at rest with GnuPG,
copied best-effort to a single remote, and restored with guaranteed
cleanup of anything decrypted along the way.
"""

import os

__version__ = "0.1.0"
__author__ = "BackupShield contributors"

BACKUPSHIELD_HOME = os.environ.get("BACKUPSHIELD_HOME", "~/.backupshield")
