"""
BackupShield CLI: full, incremental, restore, list, menu, config.

Each command group lives in its own module and is attached to the
main Click group through a register function. Running the tool with
no subcommand opens the interactive menu.

Entry point: backupshield.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="backupshield")
@click.option(
    "--config", "config_path", default=None, type=click.Path(dir_okay=False),
    help="Config file (default: ./backupshield.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path, verbose):
    """BackupShield: encrypted full and incremental backups.

    Archive a directory, seal it with GnuPG, copy it to your remote,
    and get told how it went.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    if ctx.invoked_subcommand is None:
        from .menu import run_menu

        run_menu(ctx)


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .backup import register_backup_commands
from .config_cmd import register_config_commands
from .menu import register_menu_commands

register_backup_commands(main)
register_config_commands(main)
register_menu_commands(main)
