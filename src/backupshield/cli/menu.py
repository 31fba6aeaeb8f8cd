"""Interactive menu: the prompt-driven front end to every backup command."""

from __future__ import annotations

from pathlib import Path

import click

from ..errors import BackupShieldError
from ._common import (
    console,
    get_config,
    get_orchestrator,
    print_backup_result,
    print_backup_table,
    print_error,
    print_restore_result,
)

MENU_OPTIONS = [
    "Create full backup",
    "Create incremental backup",
    "Restore backup",
    "List backup files",
    "Exit",
]


def _ask_dir(prompt: str) -> Path:
    answer = click.prompt(prompt, default="", show_default=False).strip()
    return Path(answer).expanduser() if answer else Path.cwd()


def run_menu(ctx: click.Context) -> None:
    """Loop over the menu until the user picks Exit.

    A failed operation is reported and the menu keeps running.
    """
    while True:
        console.print()
        for number, label in enumerate(MENU_OPTIONS, start=1):
            console.print(f"  [bold]{number})[/] {label}")
        choice = click.prompt("Select an option", type=int, default=len(MENU_OPTIONS))

        try:
            if choice == 1:
                source = _ask_dir("Directory to back up (ENTER for current)")
                print_backup_result(get_orchestrator(ctx).create_full_backup(source))
            elif choice == 2:
                source = _ask_dir("Directory to back up (ENTER for current)")
                print_backup_result(get_orchestrator(ctx).create_incremental_backup(source))
            elif choice == 3:
                artifact = click.prompt("Backup file (.tar.gz or .tar.gz.gpg)")
                destination = _ask_dir("Destination directory (ENTER for current)")
                print_restore_result(
                    get_orchestrator(ctx).restore_backup(Path(artifact).expanduser(), destination)
                )
            elif choice == 4:
                from ..orchestrator import list_backups

                print_backup_table(list_backups(get_config(ctx).backup_dir))
            elif choice == len(MENU_OPTIONS):
                console.print("[dim]Leaving the menu.[/]")
                return
            else:
                console.print("[yellow]Invalid option. Try again.[/]")
        except BackupShieldError as exc:
            print_error(exc)


def register_menu_commands(main: click.Group) -> None:
    """Register the menu command."""

    @main.command("menu")
    @click.pass_context
    def menu(ctx: click.Context):
        """Interactive menu (also shown when no command is given)."""
        run_menu(ctx)
