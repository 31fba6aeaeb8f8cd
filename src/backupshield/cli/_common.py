"""Shared helpers for all CLI command modules.

Provides the Rich console, orchestrator construction from the group
context, and renderers for backup/restore results and errors.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..config import BackupConfig, load_config
from ..errors import BackupShieldError
from ..models import BackupDescriptor, BackupResult, RestoreResult, StepOutcome, StepStatus
from ..orchestrator import BackupOrchestrator

console = Console()
logger = logging.getLogger("backupshield.cli")


def get_config(ctx: click.Context) -> BackupConfig:
    """Load (once) the configuration selected by the group options."""
    obj = ctx.ensure_object(dict)
    if "config" not in obj:
        path = obj.get("config_path")
        obj["config"] = load_config(Path(path) if path else None)
    return obj["config"]


def get_orchestrator(ctx: click.Context) -> BackupOrchestrator:
    return BackupOrchestrator(get_config(ctx))


def print_error(exc: BackupShieldError) -> None:
    console.print(f"[bold red]Failed:[/] {escape(exc.describe())}", soft_wrap=True)


def fail(exc: BackupShieldError) -> None:
    """Print a fatal pipeline error and exit with status 1."""
    print_error(exc)
    raise SystemExit(1)


def outcome_line(outcome: Optional[StepOutcome]) -> str:
    """Rich markup for a best-effort step outcome."""
    if outcome is None:
        return "[dim]not run[/]"
    if outcome.status == StepStatus.OK:
        return f"[green]ok[/] [dim]{outcome.detail}[/]"
    if outcome.status == StepStatus.SKIPPED:
        return f"[dim]skipped ({outcome.detail})[/]"
    return f"[yellow]{outcome.error_type}[/] {escape(outcome.error or '')}"


def print_backup_result(result: BackupResult) -> None:
    artifact = result.artifact
    size_mb = artifact.size_bytes / 1024 / 1024
    console.print(Panel(
        f"[bold green]Backup {result.kind.value.upper()} created[/]\n"
        f"Entries: {artifact.entry_count}\n"
        f"Size: {size_mb:.1f} MB\n"
        f"Path: [cyan]{artifact.path}[/]\n"
        f"Replication: {outcome_line(result.replication)}\n"
        f"Notification: {outcome_line(result.notification)}",
        title="Backup Complete",
        border_style="yellow" if result.warnings else "green",
    ))


def print_restore_result(result: RestoreResult) -> None:
    console.print(Panel(
        f"[bold green]Restore complete[/]\n"
        f"From: {result.artifact_path.name}"
        f"{' (decrypted)' if result.was_sealed else ''}\n"
        f"Entries: {result.entries_extracted}\n"
        f"Target: [cyan]{result.destination}[/]",
        title="Restore Complete",
        border_style="green",
    ))


def print_backup_table(backups: list[BackupDescriptor]) -> None:
    if not backups:
        console.print("\n[dim]No backups found.[/]\n")
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Filename", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Sealed", justify="center")
    table.add_column("Size", justify="right")
    table.add_column("Created", style="dim")

    for b in backups:
        size_mb = b.size / 1024 / 1024
        table.add_row(
            b.filename,
            b.kind.value,
            "[green]yes[/]" if b.sealed else "[yellow]no[/]",
            f"{size_mb:.1f} MB",
            b.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(f"\n[bold]{len(backups)}[/] backup(s):\n")
    console.print(table)
    console.print()
