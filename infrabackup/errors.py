"""Error types raised by the backup lifecycle commands."""

from __future__ import annotations


class InfraBackupError(Exception):
    """Base error. ``hint`` is remediation text shown to the operator."""

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class ConfigError(InfraBackupError):
    """Invalid option or environment value."""


class InfrastructureNotFound(InfraBackupError):
    """The infrastructure directory does not exist."""


class BackupAlreadyConfigured(InfraBackupError):
    """The compose file already declares the backup scheduler service."""


class BackupNotConfigured(InfraBackupError):
    """Backup scripts have not been generated yet."""


class SchedulerDaemonUnavailable(InfraBackupError):
    """The job scheduler daemon container is not running or unreachable."""


class ContainerRuntimeError(InfraBackupError):
    """The container runtime rejected a request or could not be reached."""


class ComposeError(InfraBackupError):
    """The compose file could not be parsed or safely mutated."""


class LockTimeout(InfraBackupError):
    """Another command holds the lock for this infrastructure."""


class ArtifactBackupFailed(InfraBackupError):
    """A backup script exited non-zero or produced no artifacts."""
