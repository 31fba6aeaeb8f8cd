"""Backup commands: full, incremental, restore, list."""

from __future__ import annotations

from pathlib import Path

import click

from ..errors import BackupShieldError
from ._common import (
    console,
    fail,
    get_config,
    get_orchestrator,
    print_backup_result,
    print_backup_table,
    print_restore_result,
)


def register_backup_commands(main: click.Group) -> None:
    """Register full, incremental, restore and list on the main group."""

    @main.command("full")
    @click.argument("source", required=False, type=click.Path(file_okay=False))
    @click.pass_context
    def backup_full(ctx: click.Context, source):
        """Create a FULL backup of SOURCE (default: current directory).

        Examples:

            backupshield full

            backupshield full ~/projects
        """
        source_dir = Path(source).expanduser() if source else Path.cwd()
        try:
            console.print(f"\n[cyan]Creating FULL backup of {source_dir}...[/]")
            result = get_orchestrator(ctx).create_full_backup(source_dir)
        except BackupShieldError as exc:
            fail(exc)
        print_backup_result(result)

    @main.command("incremental")
    @click.argument("source", required=False, type=click.Path(file_okay=False))
    @click.pass_context
    def backup_incremental(ctx: click.Context, source):
        """Create an INCREMENTAL backup of SOURCE (default: current directory).

        Only entries changed since the last incremental run are archived.
        The first run, with no snapshot state yet, archives everything.
        """
        source_dir = Path(source).expanduser() if source else Path.cwd()
        try:
            console.print(f"\n[cyan]Creating INCREMENTAL backup of {source_dir}...[/]")
            result = get_orchestrator(ctx).create_incremental_backup(source_dir)
        except BackupShieldError as exc:
            fail(exc)
        print_backup_result(result)

    @main.command("restore")
    @click.argument("artifact", type=click.Path(dir_okay=False))
    @click.argument("destination", required=False, type=click.Path(file_okay=False))
    @click.pass_context
    def backup_restore(ctx: click.Context, artifact, destination):
        """Restore ARTIFACT into DESTINATION (default: current directory).

        Sealed (.gpg) artifacts are decrypted into a temporary buffer
        that is always removed afterwards.

        Examples:

            backupshield restore backups/backup_full_20241211_153000.tar.gz.gpg /tmp/restore
        """
        dest_dir = Path(destination).expanduser() if destination else Path.cwd()
        try:
            console.print(f"\n[cyan]Restoring {artifact} into {dest_dir}...[/]")
            result = get_orchestrator(ctx).restore_backup(Path(artifact), dest_dir)
        except BackupShieldError as exc:
            fail(exc)
        print_restore_result(result)

    @main.command("list")
    @click.option("--backup-dir", default=None, type=click.Path(file_okay=False),
                  help="Directory to scan (default: configured backup_dir).")
    @click.pass_context
    def backup_list(ctx: click.Context, backup_dir):
        """List backup artifacts, newest first."""
        from ..orchestrator import list_backups

        directory = Path(backup_dir).expanduser() if backup_dir else get_config(ctx).backup_dir
        print_backup_table(list_backups(directory))
