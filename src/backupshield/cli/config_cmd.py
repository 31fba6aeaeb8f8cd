"""Config commands: show the effective configuration, write a starter file."""

from __future__ import annotations

import json
from pathlib import Path

import click

from ..config import CONFIG_FILENAME, BackupConfig, save_config
from ._common import console, get_config


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    @main.group("config")
    def config_group():
        """Inspect or initialise configuration."""

    @config_group.command("show")
    @click.option("--json-out", is_flag=True, help="Output raw JSON.")
    @click.pass_context
    def config_show(ctx: click.Context, json_out):
        """Show the effective configuration (passphrase masked)."""
        data = get_config(ctx).masked()
        if json_out:
            click.echo(json.dumps(data, indent=2))
            return
        for key, value in data.items():
            console.print(f"  [bold]{key}[/]: {value}")

    @config_group.command("init")
    @click.option("--path", default=CONFIG_FILENAME, type=click.Path(dir_okay=False),
                  help="Where to write the config file.")
    @click.option("--remote", default=None, help="rclone remote:path or local directory.")
    @click.option("--mail-to", default=None, help="Notification recipient.")
    @click.option("--force", is_flag=True, help="Overwrite an existing file.")
    def config_init(path, remote, mail_to, force):
        """Write a starter config file.

        The passphrase is not written; set it in the file afterwards or
        export BACKUPSHIELD_PASSPHRASE.
        """
        target = Path(path).expanduser()
        if target.exists() and not force:
            console.print(f"[red]{target} already exists (use --force).[/]")
            raise SystemExit(1)

        config = BackupConfig()
        if remote:
            config.remote_destination = remote
        if mail_to:
            config.notification_recipient = mail_to
        save_config(config, target)
        console.print(f"[green]Config written:[/] {target}")
