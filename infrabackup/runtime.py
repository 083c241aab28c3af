"""Container runtime adapter (Docker SDK + compose CLI).

Every call returns a plain value or a ``CommandResult`` so callers can
decide whether a failure is fatal or only worth a warning.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import docker
from docker.errors import DockerException, NotFound

from infrabackup.errors import ContainerRuntimeError

if TYPE_CHECKING:
    from infrabackup.config import BackupConfig

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a command run in a container or on the host."""

    ok: bool
    output: str = ""
    error: str | None = None
    exit_code: int = 0


class ContainerRuntime(Protocol):
    """Operations the lifecycle commands need from the container runtime."""

    def container_status(self, name: str) -> str | None: ...

    def is_running(self, name: str) -> bool: ...

    def remove_container(self, name: str) -> bool: ...

    def exec(self, name: str, command: list[str]) -> CommandResult: ...

    def compose_up(self, project_dir: Path) -> CommandResult: ...

    def run_script(self, script: Path, capture: bool = False) -> CommandResult: ...


class DockerRuntime:
    """ContainerRuntime backed by the local Docker daemon."""

    def __init__(self, compose_command: str = "docker compose") -> None:
        self.compose_command = shlex.split(compose_command)
        self._client: docker.DockerClient | None = None

    @property
    def client(self) -> docker.DockerClient:
        """Get or create Docker client."""
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise ContainerRuntimeError(
                    f"Cannot connect to Docker: {e}",
                    hint="Is the Docker daemon running?",
                ) from None
        return self._client

    def container_status(self, name: str) -> str | None:
        """Status string ("running", "exited", ...) or None if no such container."""
        try:
            container = self.client.containers.get(name)
        except NotFound:
            return None
        except DockerException as e:
            raise ContainerRuntimeError(f"Cannot inspect container {name}: {e}") from None
        return container.status

    def is_running(self, name: str) -> bool:
        return self.container_status(name) == "running"

    def remove_container(self, name: str) -> bool:
        """Force-remove a container. Returns False if it did not exist."""
        try:
            container = self.client.containers.get(name)
            container.remove(force=True)
        except NotFound:
            logger.debug(f"Container {name} not present; nothing to remove")
            return False
        except DockerException as e:
            raise ContainerRuntimeError(f"Cannot remove container {name}: {e}") from None
        logger.info(f"Removed container {name}")
        return True

    def exec(self, name: str, command: list[str]) -> CommandResult:
        try:
            container = self.client.containers.get(name)
            result = container.exec_run(command)
        except NotFound:
            return CommandResult(ok=False, error=f"container {name} not found", exit_code=-1)
        except DockerException as e:
            return CommandResult(ok=False, error=str(e), exit_code=-1)

        output = (result.output or b"").decode(errors="replace")
        if result.exit_code != 0:
            return CommandResult(ok=False, output=output, error=output.strip()[:500], exit_code=result.exit_code)
        return CommandResult(ok=True, output=output)

    def compose_up(self, project_dir: Path) -> CommandResult:
        cmd = [*self.compose_command, "up", "-d"]
        logger.info(f"Running {' '.join(cmd)} in {project_dir}")
        try:
            result = subprocess.run(cmd, cwd=project_dir, capture_output=True, text=True)
        except FileNotFoundError:
            return CommandResult(ok=False, error=f"{self.compose_command[0]} not found", exit_code=127)

        if result.returncode != 0:
            return CommandResult(
                ok=False,
                output=result.stdout,
                error=result.stderr.strip()[:500],
                exit_code=result.returncode,
            )
        return CommandResult(ok=True, output=result.stdout)

    def run_script(self, script: Path, capture: bool = False) -> CommandResult:
        """Run a generated backup script with ``sh``.

        With ``capture=False`` the script writes straight to the terminal.
        """
        try:
            result = subprocess.run(["sh", str(script)], capture_output=capture, text=True)
        except FileNotFoundError:
            return CommandResult(ok=False, error="sh not found", exit_code=127)

        output = (result.stdout or "") if capture else ""
        if result.returncode != 0:
            error = (result.stderr or "").strip()[:500] if capture else None
            return CommandResult(
                ok=False,
                output=output,
                error=error or f"{script.name} exited with status {result.returncode}",
                exit_code=result.returncode,
            )
        return CommandResult(ok=True, output=output)


def create_runtime(config: BackupConfig) -> ContainerRuntime:
    return DockerRuntime(config.compose_command)
