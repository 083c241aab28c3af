"""Local filesystem view of an infrastructure's backup tree."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from infrabackup.storage import ArtifactEntry, ArtifactKind

if TYPE_CHECKING:
    from infrabackup.config import BackupConfig

logger = logging.getLogger(__name__)


def _entry(path: Path, kind: ArtifactKind) -> ArtifactEntry:
    stat = path.lstat()
    target = os.readlink(path) if path.is_symlink() else None
    return ArtifactEntry(
        key=str(path),
        filename=path.name,
        size=stat.st_size,
        modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
        kind=kind,
        target=target,
    )


def tree_size(path: Path) -> int:
    """Total bytes of regular files below ``path``; symlinks are not followed."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            file_path = os.path.join(root, name)
            if os.path.islink(file_path):
                continue
            try:
                total += os.path.getsize(file_path)
            except FileNotFoundError:
                continue
    return total


class LocalArtifacts:
    """Backups stored under ``<backup path>/{databases,files,logs}``."""

    def __init__(self, config: BackupConfig) -> None:
        self.base_dir = config.backup_path
        self.databases_dir = config.databases_dir
        self.files_dir = config.files_dir
        self.logs_dir = config.logs_dir

    def ensure_layout(self) -> list[Path]:
        dirs = [self.databases_dir, self.files_dir, self.logs_dir]
        for d in dirs:
            d.mkdir(parents=True, exist_ok=True)
        logger.info(f"Backup directories ready under {self.base_dir}")
        return dirs

    def has_database_dumps(self) -> bool:
        return self.databases_dir.is_dir() and any(self.databases_dir.glob("*.gz"))

    def recent_database_dumps(self, limit: int = 5) -> list[ArtifactEntry]:
        """Newest compressed dumps first."""
        if not self.databases_dir.is_dir():
            return []
        entries = [_entry(f, ArtifactKind.database) for f in self.databases_dir.glob("*.gz") if f.is_file()]
        entries.sort(key=lambda e: e.modified, reverse=True)
        return entries[:limit]

    def latest_archives(self) -> list[ArtifactEntry]:
        """The ``<domain>-latest.tar.gz`` links, one per site, sorted by name."""
        if not self.files_dir.is_dir():
            return []
        entries = []
        for link in sorted(self.files_dir.glob("*-latest.tar.gz")):
            entry = _entry(link, ArtifactKind.files)
            # Report the archive the link points to, not the link itself
            target = link.resolve()
            if target.is_file():
                stat = target.stat()
                entry.size = stat.st_size
                entry.modified = datetime.fromtimestamp(stat.st_mtime, tz=UTC)
            entries.append(entry)
        return entries

    def disk_usage(self) -> dict[str, int]:
        """Bytes used by the whole backup tree and by each artifact kind."""
        if not self.base_dir.is_dir():
            raise FileNotFoundError(f"No backup directory at {self.base_dir}")
        return {
            "total": tree_size(self.base_dir),
            "databases": tree_size(self.databases_dir),
            "files": tree_size(self.files_dir),
        }
