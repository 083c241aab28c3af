"""Rendering of the backup shell scripts run by the scheduler."""

from __future__ import annotations

import logging
import re
import stat
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from infrabackup.config import BackupConfig

logger = logging.getLogger(__name__)

DB_TEMPLATE = "backup-databases.sh.tmpl"
FILES_TEMPLATE = "backup-files.sh.tmpl"

_TOKEN_RE = re.compile(r"\{\{([A-Z_]+)\}\}")
_RETENTION_RE = re.compile(r"-mtime \+(\d+)")


def load_template(name: str) -> str:
    return resources.files("infrabackup").joinpath("scripts", name).read_text(encoding="utf-8")


def render(template: str, params: dict[str, str]) -> str:
    """Substitute ``{{TOKEN}}`` placeholders literally.

    Values are not escaped; callers pass filesystem paths and integers.
    Raises ValueError if the template references a token not in ``params``.
    """
    missing = sorted(set(_TOKEN_RE.findall(template)) - params.keys())
    if missing:
        raise ValueError(f"No value for template token(s): {', '.join(missing)}")

    text = template
    for key, value in params.items():
        text = text.replace("{{" + key + "}}", str(value))
    return text


def template_params(config: BackupConfig) -> dict[str, str]:
    return {
        "BACKUP_PATH": str(config.backup_path),
        "INFRA_DIR": str(config.infra_dir),
        "WORDPRESS_BASE": str(config.wordpress_base),
        "DB_RETENTION_DAYS": str(config.db_retention_days),
        "FILES_RETENTION_DAYS": str(config.files_retention_days),
        "MYSQL_CONTAINER": config.mysql_container,
    }


def render_scripts(config: BackupConfig) -> dict[str, str]:
    """Render both backup scripts, keyed by their file name in the scripts dir."""
    params = template_params(config)
    return {
        config.db_script.name: render(load_template(DB_TEMPLATE), params),
        config.files_script.name: render(load_template(FILES_TEMPLATE), params),
    }


def write_backup_scripts(config: BackupConfig) -> list[Path]:
    """Write both scripts to the scripts dir and mark them executable.

    Existing scripts are overwritten wholesale.
    """
    config.scripts_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for filename, body in render_scripts(config).items():
        path = config.scripts_dir / filename
        path.write_text(body, encoding="utf-8")
        mode = path.stat().st_mode
        path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logger.info(f"[{config.infra_name}] Wrote {path}")
        written.append(path)
    return written


def parse_retention_days(script: str) -> int:
    """Return the age (in days) past which a rendered script deletes artifacts."""
    match = _RETENTION_RE.search(script)
    if not match:
        raise ValueError("Script has no retention clause")
    return int(match.group(1))
