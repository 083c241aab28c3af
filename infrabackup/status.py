"""Read-only status report for an infrastructure's backups.

Each probe is independent: a failing probe records its error in the
report and the remaining probes still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from infrabackup.lifecycle import verify_infrastructure
from infrabackup.state import StateSnapshot, detect_state
from infrabackup.storage import ArtifactEntry
from infrabackup.storage.local import LocalArtifacts

if TYPE_CHECKING:
    from infrabackup.config import BackupConfig
    from infrabackup.runtime import ContainerRuntime

logger = logging.getLogger(__name__)


@dataclass
class StatusReport:
    infra_name: str
    backup_path: Path
    logs_dir: Path
    scripts_installed: bool
    state: StateSnapshot | None = None
    scheduler_running: bool | None = None
    daemon_jobs: str | None = None
    database_dumps: list[ArtifactEntry] = field(default_factory=list)
    file_archives: list[ArtifactEntry] = field(default_factory=list)
    disk_usage: dict[str, int] | None = None
    errors: dict[str, str] = field(default_factory=dict)


def _probe(report: StatusReport, section: str, fn):
    try:
        return fn()
    except Exception as e:
        logger.warning(f"[{report.infra_name}] {section} probe failed: {e}")
        report.errors[section] = str(getattr(e, "message", e))
        return None


def collect_status(config: BackupConfig, runtime: ContainerRuntime) -> StatusReport:
    """Gather the status report. Raises only when the infrastructure is missing."""
    verify_infrastructure(config)

    report = StatusReport(
        infra_name=config.infra_name,
        backup_path=config.backup_path,
        logs_dir=config.logs_dir,
        scripts_installed=config.scripts_dir.is_dir(),
    )
    if not report.scripts_installed:
        return report

    artifacts = LocalArtifacts(config)

    report.scheduler_running = _probe(report, "scheduler", lambda: runtime.is_running(config.scheduler_container))
    report.state = _probe(report, "state", lambda: detect_state(config, runtime))

    def daemon_jobs() -> str:
        result = runtime.exec(config.scheduler_daemon_container, ["ofelia", "status"])
        if not result.ok:
            raise RuntimeError(f"Cannot connect to {config.scheduler_daemon_container}: {result.error}")
        return result.output.strip()

    report.daemon_jobs = _probe(report, "daemon", daemon_jobs)

    if not artifacts.databases_dir.is_dir():
        report.errors["databases"] = "No backup directory"
    else:
        report.database_dumps = _probe(
            report, "databases", lambda: artifacts.recent_database_dumps(config.recent_limit)
        ) or []

    if not artifacts.files_dir.is_dir():
        report.errors["files"] = "No backup directory"
    else:
        report.file_archives = _probe(report, "files", artifacts.latest_archives) or []

    report.disk_usage = _probe(report, "disk", artifacts.disk_usage)
    return report
