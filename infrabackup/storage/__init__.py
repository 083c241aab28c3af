"""Backup artifacts on disk."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ArtifactKind(str, Enum):
    database = "database"
    files = "files"


@dataclass
class ArtifactEntry:
    """Metadata for a single backup artifact."""

    key: str  # Full path
    filename: str
    size: int  # Bytes
    modified: datetime
    kind: ArtifactKind
    target: str | None = None  # Archive a -latest link points to
