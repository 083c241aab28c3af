"""Backup configuration (os.getenv based)."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from infrabackup.errors import ConfigError

logger = logging.getLogger(__name__)

SCRIPTS_DIRNAME = "backup-scripts"
DB_SCRIPT = "backup-databases.sh"
FILES_SCRIPT = "backup-files.sh"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class BackupConfig:
    """Configuration for one infrastructure's backups."""

    infra_name: str

    # Layout
    home: Path = field(default_factory=Path.home)
    backup_base_path: Path | None = None
    wordpress_base: Path | None = None

    # Schedules (scheduler daemon syntax)
    db_schedule: str = "@hourly"
    files_schedule: str = "0 2 * * *"

    # Retention
    db_retention_days: int = 7
    files_retention_days: int = 30

    # Collaborators
    scheduler_container: str = "backup-scheduler"
    scheduler_daemon_container: str = "ofelia"
    mysql_container: str = "mysql"
    scheduler_image: str = "alpine:latest"
    scheduler_networks: tuple[str, ...] = ("wordpress-sites", "db-network")
    compose_command: str = "docker compose"

    # Behavior
    lock_timeout: float = 30.0
    restart_grace: float = 3.0
    recent_limit: int = 5

    def __post_init__(self) -> None:
        if not self.infra_name or "/" in self.infra_name or self.infra_name.startswith("."):
            raise ConfigError(f"Invalid infrastructure name: {self.infra_name!r}")
        self.home = Path(self.home).expanduser()
        if self.backup_base_path is None:
            self.backup_base_path = self.home / "Backups" / "infrastructure"
        if self.wordpress_base is None:
            self.wordpress_base = self.home / "ProjectFiles" / "wordpress"
        self.backup_base_path = Path(self.backup_base_path).expanduser()
        self.wordpress_base = Path(self.wordpress_base).expanduser()
        for name in ("db_retention_days", "files_retention_days"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(f"{name.replace('_', ' ')} must be a positive integer, got {value!r}")

    @classmethod
    def from_env(cls, infra_name: str) -> BackupConfig:
        """Load configuration from environment variables."""
        home = Path(os.getenv("INFRA_BACKUP_HOME", "") or Path.home())
        base = os.getenv("INFRA_BACKUP_BASE_PATH", "")
        wordpress = os.getenv("INFRA_BACKUP_WORDPRESS_BASE", "")

        config = cls(
            infra_name=infra_name,
            home=home,
            backup_base_path=Path(base) if base else None,
            wordpress_base=Path(wordpress) if wordpress else None,
            db_schedule=os.getenv("INFRA_BACKUP_DB_SCHEDULE", "@hourly"),
            files_schedule=os.getenv("INFRA_BACKUP_FILES_SCHEDULE", "0 2 * * *"),
            db_retention_days=_env_int("INFRA_BACKUP_DB_RETENTION_DAYS", 7),
            files_retention_days=_env_int("INFRA_BACKUP_FILES_RETENTION_DAYS", 30),
            scheduler_image=os.getenv("INFRA_BACKUP_SCHEDULER_IMAGE", "alpine:latest"),
            compose_command=os.getenv("INFRA_BACKUP_COMPOSE_COMMAND", "docker compose"),
            lock_timeout=_env_float("INFRA_BACKUP_LOCK_TIMEOUT", 30.0),
            restart_grace=_env_float("INFRA_BACKUP_RESTART_GRACE", 3.0),
        )
        logger.debug(f"[{infra_name}] Loaded config: backup path {config.backup_path}")
        return config

    def with_overrides(
        self,
        *,
        backup_path: str | Path | None = None,
        db_schedule: str | None = None,
        files_schedule: str | None = None,
        retention_days: int | None = None,
        db_retention_days: int | None = None,
        files_retention_days: int | None = None,
    ) -> BackupConfig:
        """Return a copy with CLI overrides applied.

        ``retention_days`` sets both windows; the per-kind values win over it.
        """
        changes: dict = {}
        if backup_path is not None:
            changes["backup_base_path"] = Path(backup_path)
        if db_schedule is not None:
            changes["db_schedule"] = db_schedule
        if files_schedule is not None:
            changes["files_schedule"] = files_schedule
        if retention_days is not None:
            changes["db_retention_days"] = retention_days
            changes["files_retention_days"] = retention_days
        if db_retention_days is not None:
            changes["db_retention_days"] = db_retention_days
        if files_retention_days is not None:
            changes["files_retention_days"] = files_retention_days
        return dataclasses.replace(self, **changes)

    # ── derived paths ──────────────────────────────────────────────────

    @property
    def infra_dir(self) -> Path:
        return self.home / f".{self.infra_name}"

    @property
    def env_file(self) -> Path:
        return self.infra_dir / ".env"

    @property
    def compose_file(self) -> Path:
        return self.infra_dir / "docker-compose.yml"

    @property
    def scripts_dir(self) -> Path:
        return self.infra_dir / SCRIPTS_DIRNAME

    @property
    def db_script(self) -> Path:
        return self.scripts_dir / DB_SCRIPT

    @property
    def files_script(self) -> Path:
        return self.scripts_dir / FILES_SCRIPT

    @property
    def lock_file(self) -> Path:
        return self.infra_dir / ".backup.lock"

    @property
    def backup_path(self) -> Path:
        return self.backup_base_path / self.infra_name

    @property
    def databases_dir(self) -> Path:
        return self.backup_path / "databases"

    @property
    def files_dir(self) -> Path:
        return self.backup_path / "files"

    @property
    def logs_dir(self) -> Path:
        return self.backup_path / "logs"
