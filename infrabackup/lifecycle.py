"""Backup lifecycle commands: add, remove, config and run."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import dotenv_values
from rich.console import Console

from infrabackup.compose import ComposeFile, build_scheduler_service
from infrabackup.cron import validate_schedule
from infrabackup.errors import (
    ArtifactBackupFailed,
    BackupAlreadyConfigured,
    BackupNotConfigured,
    ConfigError,
    ContainerRuntimeError,
    InfrastructureNotFound,
    SchedulerDaemonUnavailable,
)
from infrabackup.lock import InfraLock
from infrabackup.storage.local import LocalArtifacts
from infrabackup.templates import write_backup_scripts

if TYPE_CHECKING:
    from infrabackup.config import BackupConfig
    from infrabackup.runtime import ContainerRuntime

logger = logging.getLogger(__name__)

DB_PASSWORD_KEY = "MYSQL_ROOT_PASSWORD"


@dataclass
class AddResult:
    scripts: list[Path] = field(default_factory=list)
    snapshot: Path | None = None
    replaced_container: bool = False
    smoke_test_passed: bool = False


@dataclass
class RemoveResult:
    container_removed: bool = False
    snapshot: Path | None = None


@dataclass
class RunResult:
    ran: list[str] = field(default_factory=list)


def verify_infrastructure(config: BackupConfig) -> None:
    if not config.infra_dir.is_dir():
        raise InfrastructureNotFound(
            f"Infrastructure not found at {config.infra_dir}",
            hint=f"Clone the infrastructure first: clone-infrastructure {config.infra_name} <server-ip>",
        )


class BackupManager:
    """Runs lifecycle commands for one infrastructure.

    ``add``, ``remove`` and ``config`` hold the infrastructure lock for
    their whole duration.
    """

    def __init__(self, config: BackupConfig, runtime: ContainerRuntime, console: Console | None = None) -> None:
        self.config = config
        self.runtime = runtime
        self.console = console or Console()
        self.compose = ComposeFile.for_config(config)
        self.artifacts = LocalArtifacts(config)

    def _lock(self) -> InfraLock:
        return InfraLock(self.config.lock_file, timeout=self.config.lock_timeout)

    def _step(self, n: int, total: int, text: str) -> None:
        self.console.print(f"[yellow][{n}/{total}] {text}[/]")

    # ── checks ──────────────────────────────────────────────────────────

    def check_scheduler_daemon(self) -> None:
        name = self.config.scheduler_daemon_container
        try:
            running = self.runtime.is_running(name)
        except ContainerRuntimeError as e:
            raise SchedulerDaemonUnavailable(
                f"Cannot reach the {name} scheduler: {e.message}",
                hint=e.hint,
            ) from None
        if not running:
            raise SchedulerDaemonUnavailable(
                f"{name} container is not running",
                hint=f"Start the infrastructure: cd {self.config.infra_dir} && docker compose up -d",
            )

    def check_env_file(self) -> bool:
        """Warn when the database root password is missing from the env file."""
        env_file = self.config.env_file
        values = dotenv_values(env_file) if env_file.is_file() else {}
        if values.get(DB_PASSWORD_KEY):
            return True
        logger.warning(f"[{self.config.infra_name}] {DB_PASSWORD_KEY} not set in {env_file}")
        self.console.print(f"  [yellow]⚠[/]  {DB_PASSWORD_KEY} not found in {env_file}; database dumps will fail")
        return False

    # ── add ─────────────────────────────────────────────────────────────

    def add(self) -> AddResult:
        verify_infrastructure(self.config)
        with self._lock():
            return self._add()

    def _add(self) -> AddResult:
        config = self.config
        console = self.console

        console.print("[bold green]=== Adding Backup Configuration ===[/]")
        console.print(f"Infrastructure:  {config.infra_name}")
        console.print(f"Backup location: {config.backup_path}\n")

        config.db_schedule = validate_schedule(config.db_schedule)
        config.files_schedule = validate_schedule(config.files_schedule)
        self.check_scheduler_daemon()
        if self.compose.has_service(config.scheduler_container):
            raise BackupAlreadyConfigured(
                f"{config.scheduler_container} service already in {config.compose_file.name}",
                hint=f"Run: backup-infrastructure remove {config.infra_name} (or use 'config' to change settings)",
            )
        self.check_env_file()

        result = AddResult()

        self._step(1, 5, "Creating backup directories...")
        self.artifacts.ensure_layout()
        console.print(f"  [green]✓[/] Created {config.databases_dir}, {config.files_dir}, {config.logs_dir}")

        self._step(2, 5, "Creating backup scripts...")
        result.scripts = write_backup_scripts(config)
        for script in result.scripts:
            console.print(f"  [green]✓[/] Created: {script.name}")

        self._step(3, 5, "Configuring scheduler jobs...")
        result.replaced_container = self.runtime.remove_container(config.scheduler_container)
        if result.replaced_container:
            console.print(f"  [yellow]⚠[/]  Replaced existing {config.scheduler_container} container")
        result.snapshot = self.compose.enable(config.scheduler_container, build_scheduler_service(config))
        console.print(f"  [green]✓[/] Added {config.scheduler_container} to {config.compose_file.name}")
        console.print(f"  [green]✓[/] Database schedule: {config.db_schedule}")
        console.print(f"  [green]✓[/] Files schedule: {config.files_schedule}")

        self._step(4, 5, "Restarting infrastructure...")
        up = self.runtime.compose_up(config.infra_dir)
        if not up.ok:
            raise ContainerRuntimeError(
                f"Compose up failed: {up.error}",
                hint=f"Inspect with: cd {config.infra_dir} && docker compose up -d",
            )
        if config.restart_grace > 0:
            time.sleep(config.restart_grace)
        console.print("  [green]✓[/] Infrastructure restarted")

        self._step(5, 5, "Testing backup...")
        result.smoke_test_passed = self.smoke_test()

        console.print("\n[bold green]=== Backup Configuration Complete ===[/]")
        console.print(f"Backup location:   {config.backup_path}")
        console.print(f"Database schedule: {config.db_schedule}")
        console.print(f"Files schedule:    {config.files_schedule}")
        console.print(
            f"Retention:         {config.db_retention_days} days (db), {config.files_retention_days} days (files)"
        )
        console.print(f"\nView status:  backup-infrastructure status {config.infra_name}")
        console.print(f"Run manually: backup-infrastructure run {config.infra_name}")
        return result

    def smoke_test(self) -> bool:
        """Run the database script once and check that a dump appeared."""
        run = self.runtime.run_script(self.config.db_script, capture=True)
        if not run.ok:
            logger.warning(f"[{self.config.infra_name}] Smoke test script failed: {run.error}")

        if self.artifacts.has_database_dumps():
            self.console.print("  [green]✓[/] Database backup test successful")
            return True

        self.console.print(
            "  [yellow]⚠[/]  No database backups created (may be normal if no WordPress sites exist)"
        )
        return False

    # ── remove ──────────────────────────────────────────────────────────

    def remove(self) -> RemoveResult:
        verify_infrastructure(self.config)
        with self._lock():
            return self._remove()

    def _remove(self) -> RemoveResult:
        config = self.config
        console = self.console
        result = RemoveResult()

        console.print("[bold yellow]=== Removing Backup Configuration ===[/]")
        console.print(f"Infrastructure: {config.infra_name}\n")

        self._step(1, 3, f"Stopping {config.scheduler_container}...")
        try:
            result.container_removed = self.runtime.remove_container(config.scheduler_container)
        except ContainerRuntimeError as e:
            logger.warning(f"[{config.infra_name}] {e.message}")
        if result.container_removed:
            console.print(f"  [green]✓[/] Stopped {config.scheduler_container}")
        else:
            console.print(f"  [yellow]⚠[/]  {config.scheduler_container} not running")

        self._step(2, 3, f"Removing from {config.compose_file.name}...")
        result.snapshot = self.compose.disable(config.scheduler_container)
        if result.snapshot:
            console.print(f"  [green]✓[/] Removed {config.scheduler_container} from {config.compose_file.name}")
        else:
            console.print(f"  [yellow]⚠[/]  {config.scheduler_container} not found in {config.compose_file.name}")

        self._step(3, 3, "Cleanup...")
        console.print(f"  Backup scripts preserved at: {config.scripts_dir}")
        console.print(f"  Backup data preserved at:    {config.backup_path}")
        console.print(f"  To delete backups: rm -rf {config.backup_path}")

        console.print("\n[bold green]=== Backup Configuration Removed ===[/]")
        console.print(f"To re-enable: backup-infrastructure add {config.infra_name}")
        return result

    # ── config ──────────────────────────────────────────────────────────

    def reconfigure(self) -> tuple[RemoveResult, AddResult]:
        """Tear down the current configuration and add it again with new settings.

        Not atomic: if the add half fails the infrastructure is left ABSENT.
        """
        verify_infrastructure(self.config)
        # Fail on bad schedules before tearing anything down
        validate_schedule(self.config.db_schedule)
        validate_schedule(self.config.files_schedule)

        with self._lock():
            self.console.print("[bold yellow]=== Updating Backup Configuration ===[/]")
            self.console.print("Removing existing configuration...\n")
            removed = self._remove()
            self.console.print("\nAdding new configuration...\n")
            added = self._add()
        return removed, added

    # ── run ─────────────────────────────────────────────────────────────

    def run(self, db_only: bool = False, files_only: bool = False) -> RunResult:
        if db_only and files_only:
            raise ConfigError("--db-only and --files-only are mutually exclusive")

        config = self.config
        verify_infrastructure(config)
        if not config.scripts_dir.is_dir():
            raise BackupNotConfigured(
                "Backup scripts not found",
                hint=f"Enable backups first: backup-infrastructure add {config.infra_name}",
            )

        self.console.print("[bold green]=== Running Manual Backup ===[/]")
        self.console.print(f"Infrastructure: {config.infra_name}\n")

        jobs = []
        if not files_only:
            jobs.append(("Database", config.db_script))
        if not db_only:
            jobs.append(("Files", config.files_script))

        result = RunResult()
        for label, script in jobs:
            if not script.is_file():
                raise BackupNotConfigured(
                    f"{script} is missing",
                    hint=f"Regenerate the scripts: backup-infrastructure config {config.infra_name}",
                )
            self.console.print(f"[yellow]Running {label.lower()} backup...[/]")
            run = self.runtime.run_script(script)
            if not run.ok:
                raise ArtifactBackupFailed(
                    f"{label} backup failed: {run.error}",
                    hint=f"See logs in {config.logs_dir}",
                )
            self.console.print(f"  [green]✓[/] {label} backup complete")
            result.ran.append(script.name)

        self.console.print("\n[bold green]Manual backup complete[/]")
        self.console.print(f"View status: backup-infrastructure status {config.infra_name}")
        return result
