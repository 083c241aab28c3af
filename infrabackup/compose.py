"""Adding and removing the backup scheduler service in a compose file.

Membership is decided on the parsed document (PyYAML). The edit itself is
a splice of the service's lines, so everything else in the file keeps its
exact bytes, comments included. Each mutation is snapshotted, written
atomically, re-parsed and verified, and holds an exclusive lock on
``<compose file>.lock`` while it runs.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from infrabackup.errors import BackupAlreadyConfigured, ComposeError
from infrabackup.lock import InfraLock

if TYPE_CHECKING:
    from infrabackup.config import BackupConfig

logger = logging.getLogger(__name__)

MARKER_COMMENT = "# Backup scheduler service (added by backup-infrastructure)"

_SERVICES_RE = re.compile(r"^services\s*:\s*(#.*)?$")


def build_scheduler_service(config: BackupConfig) -> list[str]:
    """Service definition for the backup scheduler container.

    Lines are relative to the service key at column 0; the first line is
    the marker comment.
    """
    q = json.dumps
    db_command = f"sh -c '/backup-scripts/{config.db_script.name}'"
    files_command = f"sh -c '/backup-scripts/{config.files_script.name}'"

    # The scripts use host paths, so scheduled runs inside this container only
    # work where backup_path and wordpress_base resolve to the mounts below;
    # the infrastructure .env is not mounted. Manual `run` executes on the host.
    lines = [
        MARKER_COMMENT,
        f"{config.scheduler_container}:",
        f"  image: {config.scheduler_image}",
        f"  container_name: {config.scheduler_container}",
        "  volumes:",
        f"    - {q(f'{config.scripts_dir}:/backup-scripts:ro')}",
        f"    - {q(f'{config.backup_path}:/backups')}",
        f"    - {q(f'{config.wordpress_base}:/wordpress:ro')}",
        f"    - {q('/var/run/docker.sock:/var/run/docker.sock:ro')}",
        "  labels:",
        '    ofelia.enabled: "true"',
        "    # Database backup",
        f"    ofelia.job-exec.backup-db.schedule: {q(config.db_schedule)}",
        f"    ofelia.job-exec.backup-db.command: {q(db_command)}",
        '    ofelia.job-exec.backup-db.no-overlap: "true"',
        "    # Files backup",
        f"    ofelia.job-exec.backup-files.schedule: {q(config.files_schedule)}",
        f"    ofelia.job-exec.backup-files.command: {q(files_command)}",
        '    ofelia.job-exec.backup-files.no-overlap: "true"',
    ]
    if config.scheduler_networks:
        lines.append("  networks:")
        lines.extend(f"    - {network}" for network in config.scheduler_networks)
    lines += [
        "  command: sleep infinity",
        "  restart: always",
    ]
    return lines


def parse_services(text: str) -> dict:
    """Return the ``services`` mapping of a compose document."""
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ComposeError(f"Compose file is not valid YAML: {e}") from None

    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ComposeError("Compose file must be a mapping at the top level")

    services = doc.get("services") or {}
    if not isinstance(services, dict):
        raise ComposeError("'services' in the compose file must be a mapping")
    return services


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _services_range(lines: list[str]) -> tuple[int, int]:
    """(index of the ``services:`` line, index of the next top-level key or EOF)."""
    start = next((i for i, line in enumerate(lines) if _SERVICES_RE.match(line.rstrip("\r\n"))), None)
    if start is None:
        raise ComposeError("Compose file has no block-style top-level 'services:' mapping")

    for j in range(start + 1, len(lines)):
        line = lines[j]
        if line.strip() and not line[0].isspace() and not line.startswith("#"):
            return start, j
    return start, len(lines)


def _child_indent(lines: list[str], start: int, end: int) -> str:
    for line in lines[start + 1 : end]:
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return line[: _indent_of(line)]
    return "  "


def insert_service(text: str, block: list[str]) -> str:
    """Splice ``block`` in at the end of the services mapping.

    A blank separator line precedes the block.
    """
    lines = text.splitlines(keepends=True)
    start, end = _services_range(lines)
    indent = _child_indent(lines, start, end)

    last = start
    for j in range(start + 1, end):
        if lines[j].strip() and lines[j][0].isspace():
            last = j
    insert_at = last + 1

    new_lines = ["\n"] + [f"{indent}{line}\n" if line else "\n" for line in block]
    if not lines[insert_at - 1].endswith("\n"):
        # No newline at EOF: end the old last line here and leave the
        # block unterminated, as the file was
        new_lines = ["\n"] + new_lines
        new_lines[-1] = new_lines[-1][:-1]
    return "".join(lines[:insert_at] + new_lines + lines[insert_at:])


def _service_span(lines: list[str], name: str) -> tuple[int, int] | None:
    """Inclusive line range that belongs to service ``name``.

    Covers the marker comment directly above the key and one blank line
    above that, when present.
    """
    start, end = _services_range(lines)
    indent = len(_child_indent(lines, start, end))
    # Bare, single- or double-quoted key; block or flow value
    key_re = re.compile(rf"^[ \t]*(['\"]?){re.escape(name)}\1\s*:(\s.*)?$")

    key = next(
        (j for j in range(start + 1, end) if _indent_of(lines[j]) == indent and key_re.match(lines[j].rstrip("\r\n"))),
        None,
    )
    if key is None:
        return None

    last = key
    for j in range(key + 1, end):
        if not lines[j].strip():
            continue
        if _indent_of(lines[j]) <= indent:
            break
        last = j

    first = key
    if first - 1 > start and lines[first - 1].strip() == MARKER_COMMENT:
        first -= 1
    if first - 1 > start and not lines[first - 1].strip():
        first -= 1
    return first, last


def remove_service(text: str, name: str) -> str:
    lines = text.splitlines(keepends=True)
    span = _service_span(lines, name)
    if span is None:
        raise ComposeError(f"Could not locate the '{name}' service block in the compose file")
    first, last = span
    kept = lines[:first] + lines[last + 1 :]
    if last == len(lines) - 1 and not lines[last].endswith("\n") and first > 0:
        kept[first - 1] = kept[first - 1].rstrip("\r\n")
    return "".join(kept)


class ComposeFile:
    """A compose file owned by one infrastructure."""

    def __init__(self, path: Path, lock_timeout: float = 30.0) -> None:
        self.path = Path(path)
        self.lock_timeout = lock_timeout

    @classmethod
    def for_config(cls, config: BackupConfig) -> ComposeFile:
        return cls(config.compose_file, lock_timeout=config.lock_timeout)

    def read_text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ComposeError(f"Compose file not found: {self.path}") from None

    def services(self) -> dict:
        return parse_services(self.read_text())

    def has_service(self, name: str) -> bool:
        return name in self.services()

    def _lock(self) -> InfraLock:
        return InfraLock(self.path.with_name(self.path.name + ".lock"), timeout=self.lock_timeout)

    def snapshot(self) -> Path:
        """Copy the compose file to ``<name>.backup-YYYYmmdd-HHMMSS``."""
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        target = self.path.with_name(f"{self.path.name}.backup-{stamp}")
        n = 1
        while target.exists():
            target = self.path.with_name(f"{self.path.name}.backup-{stamp}-{n}")
            n += 1
        shutil.copy2(self.path, target)
        logger.info(f"Snapshot of {self.path.name} saved to {target}")
        return target

    def _write(self, text: str) -> None:
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            shutil.copymode(self.path, tmp)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _verify(self, original: str, expected: set[str]) -> None:
        try:
            actual = set(self.services())
        except ComposeError:
            actual = None
        if actual != expected:
            self._write(original)
            raise ComposeError(
                f"Edited {self.path.name} did not parse to the expected services; original restored",
                hint="Check the indentation of the services section.",
            )

    def enable(self, name: str, block: list[str]) -> Path:
        """Declare service ``name`` with definition ``block``.

        Returns the snapshot path. Raises BackupAlreadyConfigured if the
        service is already declared.
        """
        with self._lock():
            original = self.read_text()
            before = set(parse_services(original))
            if name in before:
                raise BackupAlreadyConfigured(
                    f"'{name}' service already declared in {self.path.name}",
                    hint="Run 'backup-infrastructure remove' (or 'config') first.",
                )

            updated = insert_service(original, block)
            snapshot = self.snapshot()
            self._write(updated)
            self._verify(original, before | {name})
            logger.info(f"Added '{name}' to {self.path}")
            return snapshot

    def disable(self, name: str) -> Path | None:
        """Remove service ``name``. Returns the snapshot path, or None if it was not declared."""
        with self._lock():
            original = self.read_text()
            before = set(parse_services(original))
            if name not in before:
                logger.warning(f"'{name}' not found in {self.path}; nothing to remove")
                return None

            updated = remove_service(original, name)
            snapshot = self.snapshot()
            self._write(updated)
            self._verify(original, before - {name})
            logger.info(f"Removed '{name}' from {self.path}")
            return snapshot
