"""CLI for infrastructure backups (Typer + Rich)."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from infrabackup.config import BackupConfig
from infrabackup.errors import InfraBackupError
from infrabackup.lifecycle import BackupManager
from infrabackup.runtime import create_runtime
from infrabackup.status import StatusReport, collect_status

app = typer.Typer(
    name="backup-infrastructure",
    help="Scheduled database and file backups for local WordPress infrastructures.",
    no_args_is_help=True,
)
console = Console()


def _log_level(name: str | None) -> int:
    """Numeric level for a level name; unknown names fall back to WARNING."""
    level = logging.getLevelName((name or "WARNING").upper())
    return level if isinstance(level, int) else logging.WARNING


logging.basicConfig(
    level=_log_level(os.getenv("INFRA_BACKUP_LOG_LEVEL")),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("infrabackup")

InfraName = Annotated[str, typer.Argument(help="Infrastructure name, e.g. dev-fi-01")]
BackupPath = Annotated[
    Optional[str],
    typer.Option("--backup-path", help="Base directory for backups (default: ~/Backups/infrastructure)"),
]
DbSchedule = Annotated[Optional[str], typer.Option("--db-schedule", help="Database backup schedule (default: @hourly)")]
FilesSchedule = Annotated[
    Optional[str], typer.Option("--files-schedule", help="Files backup schedule (default: '0 2 * * *')")
]
RetentionDays = Annotated[
    Optional[int], typer.Option("--retention-days", help="Days to keep backups, both kinds (default: 7 db, 30 files)")
]
DbRetentionDays = Annotated[Optional[int], typer.Option("--db-retention-days", help="Days to keep database dumps")]
FilesRetentionDays = Annotated[
    Optional[int], typer.Option("--files-retention-days", help="Days to keep file archives")
]


def _load_config(infra_name: str, **overrides) -> BackupConfig:
    """Load config, calling dotenv first for local runs."""
    load_dotenv()
    config = BackupConfig.from_env(infra_name)
    if overrides:
        config = config.with_overrides(**overrides)
    return config


def _fail(error: InfraBackupError) -> typer.Exit:
    console.print(f"[red]Error:[/] {escape(error.message)}")
    if error.hint:
        console.print(escape(error.hint))
    return typer.Exit(1)


def _format_size(size_bytes: int) -> str:
    """Human-readable file size."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def _format_age(dt: datetime) -> str:
    """Human-readable age from a datetime."""
    delta = datetime.now(UTC) - dt
    hours = delta.total_seconds() / 3600
    if hours < 1:
        return f"{int(delta.total_seconds() / 60)}m ago"
    elif hours < 24:
        return f"{hours:.1f}h ago"
    else:
        return f"{delta.days}d ago"


# ── add ─────────────────────────────────────────────────────────────────


@app.command()
def add(
    infra_name: InfraName,
    backup_path: BackupPath = None,
    db_schedule: DbSchedule = None,
    files_schedule: FilesSchedule = None,
    retention_days: RetentionDays = None,
    db_retention_days: DbRetentionDays = None,
    files_retention_days: FilesRetentionDays = None,
) -> None:
    """Add/enable backups for an infrastructure."""
    try:
        config = _load_config(
            infra_name,
            backup_path=backup_path,
            db_schedule=db_schedule,
            files_schedule=files_schedule,
            retention_days=retention_days,
            db_retention_days=db_retention_days,
            files_retention_days=files_retention_days,
        )
        BackupManager(config, create_runtime(config), console).add()
    except InfraBackupError as e:
        raise _fail(e)


# ── remove ──────────────────────────────────────────────────────────────


@app.command()
def remove(infra_name: InfraName) -> None:
    """Remove/disable backups. Scripts and backup data are kept."""
    try:
        config = _load_config(infra_name)
        BackupManager(config, create_runtime(config), console).remove()
    except InfraBackupError as e:
        raise _fail(e)


# ── config ──────────────────────────────────────────────────────────────


@app.command("config")
def configure(
    infra_name: InfraName,
    backup_path: BackupPath = None,
    db_schedule: DbSchedule = None,
    files_schedule: FilesSchedule = None,
    retention_days: RetentionDays = None,
    db_retention_days: DbRetentionDays = None,
    files_retention_days: FilesRetentionDays = None,
) -> None:
    """Reconfigure backups (remove, then add with the given settings)."""
    try:
        config = _load_config(
            infra_name,
            backup_path=backup_path,
            db_schedule=db_schedule,
            files_schedule=files_schedule,
            retention_days=retention_days,
            db_retention_days=db_retention_days,
            files_retention_days=files_retention_days,
        )
        BackupManager(config, create_runtime(config), console).reconfigure()
    except InfraBackupError as e:
        raise _fail(e)


# ── status ──────────────────────────────────────────────────────────────


def _artifact_table(title: str, entries) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Filename", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Date")
    table.add_column("Age", style="dim")
    for entry in entries:
        name = f"{entry.filename} -> {entry.target}" if entry.target else entry.filename
        table.add_row(
            name,
            _format_size(entry.size),
            entry.modified.strftime("%Y-%m-%d %H:%M UTC"),
            _format_age(entry.modified),
        )
    return table


def _render_status(report: StatusReport) -> None:
    lines = [f"[bold]Infrastructure:[/] {report.infra_name}", f"[bold]Backup path:[/]    {report.backup_path}"]

    if not report.scripts_installed:
        lines.append("[bold]Backup scripts:[/] [red]✗ Not installed[/]")
        lines.append("")
        lines.append(f"To enable backups: backup-infrastructure add {report.infra_name}")
        console.print(Panel("\n".join(lines), title="Backup Status"))
        return

    lines.append("[bold]Backup scripts:[/] [green]✓ Installed[/]")
    if report.scheduler_running:
        lines.append("[bold]Scheduler:[/]      [green]✓ Running[/]")
    elif report.scheduler_running is None:
        lines.append(f"[bold]Scheduler:[/]      [yellow]? {escape(report.errors.get('scheduler', 'unknown'))}[/]")
    else:
        lines.append("[bold]Scheduler:[/]      [red]✗ Not running[/]")
    if report.state:
        lines.append(f"[bold]State:[/]          {report.state.state.value}")

    usage = report.disk_usage
    lines.append("")
    lines.append("[bold]Disk usage:[/]")
    if usage is None:
        lines.append(f"  [dim]{escape(report.errors.get('disk', 'unavailable'))}[/]")
    else:
        lines.append(f"  Total:     {_format_size(usage['total'])}")
        lines.append(f"  Databases: {_format_size(usage['databases'])}")
        lines.append(f"  Files:     {_format_size(usage['files'])}")
    console.print(Panel("\n".join(lines), title="Backup Status"))

    console.print("\n[bold]Scheduler jobs:[/]")
    if report.daemon_jobs is not None:
        console.print(escape(report.daemon_jobs) or "  [dim](no output)[/]")
    else:
        console.print(f"  [yellow]{escape(report.errors.get('daemon', 'unavailable'))}[/]")

    for title, entries, section in (
        ("Recent Database Backups", report.database_dumps, "databases"),
        ("Recent File Backups", report.file_archives, "files"),
    ):
        console.print()
        if entries:
            console.print(_artifact_table(title, entries))
        else:
            reason = report.errors.get(section, "No backups found")
            console.print(f"[bold]{title}:[/] [dim]{escape(reason)}[/]")

    console.print(f"\nRecent logs: tail -f {report.logs_dir}/*.log")


@app.command()
def status(infra_name: InfraName) -> None:
    """Show backup status and recent backups."""
    try:
        config = _load_config(infra_name)
        report = collect_status(config, create_runtime(config))
    except InfraBackupError as e:
        raise _fail(e)
    _render_status(report)


# ── run ─────────────────────────────────────────────────────────────────


@app.command()
def run(
    infra_name: InfraName,
    db_only: Annotated[bool, typer.Option("--db-only", help="Run only the database backup")] = False,
    files_only: Annotated[bool, typer.Option("--files-only", help="Run only the files backup")] = False,
) -> None:
    """Run backups now."""
    try:
        config = _load_config(infra_name)
        BackupManager(config, create_runtime(config), console).run(db_only=db_only, files_only=files_only)
    except InfraBackupError as e:
        raise _fail(e)
