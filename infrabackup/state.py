"""Backup configuration state of an infrastructure."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from infrabackup.compose import ComposeFile
from infrabackup.errors import ComposeError, ContainerRuntimeError

if TYPE_CHECKING:
    from infrabackup.config import BackupConfig
    from infrabackup.runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class BackupState(str, Enum):
    ABSENT = "absent"  # no scheduler service declared
    CONFIGURED = "configured"  # declared, container state unknown
    RUNNING = "running"  # declared and scheduler container running
    STOPPED = "stopped"  # declared, scheduler container stopped or missing


@dataclass
class StateSnapshot:
    state: BackupState
    scripts_installed: bool
    declared: bool
    container_status: str | None = None

    @property
    def configured(self) -> bool:
        return self.state is not BackupState.ABSENT


def detect_state(config: BackupConfig, runtime: ContainerRuntime | None = None) -> StateSnapshot:
    """Derive the backup state from the compose file and, if given, the runtime.

    Scripts are preserved by ``remove``, so ``scripts_installed`` is
    reported separately and does not make an infrastructure CONFIGURED.
    """
    scripts_installed = config.scripts_dir.is_dir()

    try:
        declared = ComposeFile.for_config(config).has_service(config.scheduler_container)
    except ComposeError as e:
        logger.warning(f"[{config.infra_name}] Cannot read compose file: {e.message}")
        declared = False

    if not declared:
        return StateSnapshot(BackupState.ABSENT, scripts_installed, declared=False)

    if runtime is None:
        return StateSnapshot(BackupState.CONFIGURED, scripts_installed, declared=True)

    try:
        status = runtime.container_status(config.scheduler_container)
    except ContainerRuntimeError as e:
        logger.warning(f"[{config.infra_name}] Cannot query scheduler container: {e.message}")
        return StateSnapshot(BackupState.CONFIGURED, scripts_installed, declared=True)

    state = BackupState.RUNNING if status == "running" else BackupState.STOPPED
    return StateSnapshot(state, scripts_installed, declared=True, container_status=status)
