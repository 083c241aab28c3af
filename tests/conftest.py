"""Pytest configuration and fixtures for infrabackup tests."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from infrabackup.config import BackupConfig
from infrabackup.runtime import CommandResult

INFRA_NAME = "dev-fi-01"

SAMPLE_COMPOSE = """\
version: "3.8"

services:
  proxy:
    image: nginx:alpine
    # published ports
    ports:
      - "80:80"

  mysql:
    image: mysql:8.0
    container_name: mysql
    env_file: .env
    volumes:
      - ./database/mysql:/var/lib/mysql

  ofelia:
    image: mcuadros/ofelia:latest
    container_name: ofelia
    command: daemon --docker
    volumes:
      - /var/run/docker.sock:/var/run/docker.sock:ro

networks:
  wordpress-sites:
    external: true
  db-network:
    external: true
"""


class FakeRuntime:
    """In-memory ContainerRuntime recording every call."""

    def __init__(self, containers: dict[str, str] | None = None) -> None:
        if containers is None:
            containers = {"ofelia": "running", "mysql": "running"}
        self.containers = dict(containers)
        self.calls: list[tuple] = []
        self.compose_result = CommandResult(ok=True)
        self.exec_results: dict[str, CommandResult] = {}
        self.script_results: dict[str, CommandResult] = {}
        self.script_effects: dict = {}
        self.fail_with: Exception | None = None

    def container_status(self, name: str) -> str | None:
        self.calls.append(("status", name))
        if self.fail_with:
            raise self.fail_with
        return self.containers.get(name)

    def is_running(self, name: str) -> bool:
        return self.container_status(name) == "running"

    def remove_container(self, name: str) -> bool:
        self.calls.append(("remove", name))
        if self.fail_with:
            raise self.fail_with
        return self.containers.pop(name, None) is not None

    def exec(self, name: str, command: list[str]) -> CommandResult:
        self.calls.append(("exec", name, tuple(command)))
        return self.exec_results.get(name, CommandResult(ok=True, output="backup-db    @hourly\n"))

    def compose_up(self, project_dir: Path) -> CommandResult:
        self.calls.append(("compose_up", Path(project_dir)))
        if self.compose_result.ok:
            self.containers["backup-scheduler"] = "running"
        return self.compose_result

    def run_script(self, script: Path, capture: bool = False) -> CommandResult:
        name = Path(script).name
        self.calls.append(("run_script", name))
        effect = self.script_effects.get(name)
        if effect:
            effect(Path(script))
        return self.script_results.get(name, CommandResult(ok=True))

    def scripts_run(self) -> list[str]:
        return [c[1] for c in self.calls if c[0] == "run_script"]


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def config(home):
    """Config for an infrastructure that has been cloned."""
    cfg = BackupConfig(infra_name=INFRA_NAME, home=home, restart_grace=0, lock_timeout=0.5)
    cfg.infra_dir.mkdir()
    cfg.env_file.write_text("MYSQL_ROOT_PASSWORD=s3cret\nMYSQL_DATABASE=wordpress\n")
    cfg.compose_file.write_text(SAMPLE_COMPOSE)
    return cfg


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, color_system=None)
