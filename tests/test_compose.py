"""Tests for the compose file mutator."""

from __future__ import annotations

import pytest
import yaml

from infrabackup import compose as compose_module
from infrabackup.compose import (
    MARKER_COMMENT,
    ComposeFile,
    build_scheduler_service,
    insert_service,
    parse_services,
    remove_service,
)
from infrabackup.errors import BackupAlreadyConfigured, ComposeError

from conftest import SAMPLE_COMPOSE

NAME = "backup-scheduler"


def _snapshots(config):
    return sorted(config.infra_dir.glob("docker-compose.yml.backup-*"))


class TestServiceBlock:
    def test_block_parses_as_service(self, config):
        text = insert_service(SAMPLE_COMPOSE, build_scheduler_service(config))
        service = parse_services(text)[NAME]

        assert service["image"] == "alpine:latest"
        assert service["container_name"] == NAME
        assert service["command"] == "sleep infinity"
        assert service["restart"] == "always"
        assert f"{config.scripts_dir}:/backup-scripts:ro" in service["volumes"]
        assert f"{config.backup_path}:/backups" in service["volumes"]
        assert service["networks"] == ["wordpress-sites", "db-network"]

    def test_volume_layout(self, config):
        text = insert_service(SAMPLE_COMPOSE, build_scheduler_service(config))
        volumes = parse_services(text)[NAME]["volumes"]

        assert volumes == [
            f"{config.scripts_dir}:/backup-scripts:ro",
            f"{config.backup_path}:/backups",
            f"{config.wordpress_base}:/wordpress:ro",
            "/var/run/docker.sock:/var/run/docker.sock:ro",
        ]
        assert not any(str(config.env_file) in v for v in volumes)

    def test_job_labels(self, config):
        config.db_schedule = "0 */2 * * *"
        text = insert_service(SAMPLE_COMPOSE, build_scheduler_service(config))
        labels = parse_services(text)[NAME]["labels"]

        assert labels["ofelia.enabled"] == "true"
        assert labels["ofelia.job-exec.backup-db.schedule"] == "0 */2 * * *"
        assert labels["ofelia.job-exec.backup-files.schedule"] == "0 2 * * *"
        assert labels["ofelia.job-exec.backup-db.command"] == "sh -c '/backup-scripts/backup-databases.sh'"
        assert labels["ofelia.job-exec.backup-db.no-overlap"] == "true"
        assert labels["ofelia.job-exec.backup-files.no-overlap"] == "true"

    def test_inserted_inside_services_mapping(self, config):
        text = insert_service(SAMPLE_COMPOSE, build_scheduler_service(config))
        doc = yaml.safe_load(text)

        assert set(doc["services"]) == {"proxy", "mysql", "ofelia", NAME}
        assert set(doc["networks"]) == {"wordpress-sites", "db-network"}
        assert text.index(MARKER_COMMENT) < text.index("\nnetworks:")

    def test_round_trip_preserves_bytes(self, config):
        text = insert_service(SAMPLE_COMPOSE, build_scheduler_service(config))
        assert remove_service(text, NAME) == SAMPLE_COMPOSE

    def test_round_trip_services_last(self, config):
        original = "services:\n    web:\n        image: nginx\n"
        text = insert_service(original, build_scheduler_service(config))
        assert "\n    # Backup scheduler service" in text
        assert NAME in parse_services(text)
        assert remove_service(text, NAME) == original

    def test_round_trip_without_trailing_newline(self, config):
        original = "services:\n  web:\n    image: nginx"
        text = insert_service(original, build_scheduler_service(config))

        assert not text.endswith("\n")
        assert set(parse_services(text)) == {"web", NAME}
        assert remove_service(text, NAME) == original

    def test_empty_services(self, config):
        text = insert_service("services:\n", build_scheduler_service(config))
        assert list(parse_services(text)) == [NAME]

    def test_no_services_key(self, config):
        with pytest.raises(ComposeError):
            insert_service("version: '3'\n", build_scheduler_service(config))


class TestRemoveService:
    def test_without_marker_or_trailing_blank(self):
        text = SAMPLE_COMPOSE.replace(
            "\nnetworks:",
            f"  {NAME}:\n    image: alpine\n\n    labels:\n      a: b\nnetworks:",
        )
        stripped = remove_service(text, NAME)
        services = parse_services(stripped)
        assert NAME not in services
        assert set(services) == {"proxy", "mysql", "ofelia"}
        assert "labels" not in stripped

    def test_only_removes_named_service(self):
        stripped = remove_service(SAMPLE_COMPOSE, "mysql")
        assert set(parse_services(stripped)) == {"proxy", "ofelia"}
        assert "# published ports" in stripped

    @pytest.mark.parametrize(
        "declaration",
        [
            f'  "{NAME}":\n    image: alpine\n',
            f"  '{NAME}':\n    image: alpine\n",
            f"  {NAME}: {{image: alpine}}\n",
            f'  "{NAME}": {{image: alpine,\n      restart: always}}\n',
        ],
    )
    def test_quoted_and_flow_keys(self, declaration):
        base = "services:\n  web:\n    image: nginx\n"
        text = base + declaration
        assert NAME in parse_services(text)

        assert remove_service(text, NAME) == base

    def test_unknown_service(self):
        with pytest.raises(ComposeError):
            remove_service(SAMPLE_COMPOSE, "nope")


class TestComposeFile:
    def test_enable_then_disable_restores_file(self, config):
        compose = ComposeFile.for_config(config)

        compose.enable(NAME, build_scheduler_service(config))
        assert compose.has_service(NAME)
        compose.disable(NAME)

        assert config.compose_file.read_text() == SAMPLE_COMPOSE

    def test_enable_then_disable_without_trailing_newline(self, config):
        original = "services:\n  web:\n    image: nginx"
        config.compose_file.write_text(original)
        compose = ComposeFile.for_config(config)

        compose.enable(NAME, build_scheduler_service(config))
        assert compose.disable(NAME) is not None

        assert config.compose_file.read_text() == original

    def test_disable_quoted_key(self, config):
        config.compose_file.write_text(f'services:\n  web:\n    image: nginx\n  "{NAME}":\n    image: alpine\n')
        compose = ComposeFile.for_config(config)

        assert compose.disable(NAME) is not None
        assert set(compose.services()) == {"web"}

    def test_enable_snapshots_original(self, config):
        compose = ComposeFile.for_config(config)
        snapshot = compose.enable(NAME, build_scheduler_service(config))

        assert snapshot.name.startswith("docker-compose.yml.backup-")
        assert snapshot.read_text() == SAMPLE_COMPOSE

    def test_enable_twice_fails(self, config):
        compose = ComposeFile.for_config(config)
        compose.enable(NAME, build_scheduler_service(config))
        before = config.compose_file.read_text()

        with pytest.raises(BackupAlreadyConfigured):
            compose.enable(NAME, build_scheduler_service(config))
        assert config.compose_file.read_text() == before
        assert len(_snapshots(config)) == 1

    def test_disable_absent_is_noop(self, config):
        compose = ComposeFile.for_config(config)

        assert compose.disable(NAME) is None
        assert compose.disable(NAME) is None
        assert config.compose_file.read_text() == SAMPLE_COMPOSE
        assert _snapshots(config) == []

    def test_snapshot_names_unique(self, config):
        compose = ComposeFile.for_config(config)
        first = compose.snapshot()
        second = compose.snapshot()
        assert first != second
        assert first.exists() and second.exists()

    def test_invalid_yaml(self, config):
        config.compose_file.write_text("services:\n  web: [unclosed\n")
        with pytest.raises(ComposeError):
            ComposeFile.for_config(config).has_service(NAME)

    def test_missing_file(self, config):
        config.compose_file.unlink()
        with pytest.raises(ComposeError, match="not found"):
            ComposeFile.for_config(config).disable(NAME)

    def test_failed_verification_restores_original(self, config, monkeypatch):
        monkeypatch.setattr(compose_module, "insert_service", lambda text, block: "services:\n  other: {}\n")
        compose = ComposeFile.for_config(config)

        with pytest.raises(ComposeError, match="original restored"):
            compose.enable(NAME, build_scheduler_service(config))
        assert config.compose_file.read_text() == SAMPLE_COMPOSE

    def test_mode_preserved(self, config):
        config.compose_file.chmod(0o640)
        ComposeFile.for_config(config).enable(NAME, build_scheduler_service(config))
        assert config.compose_file.stat().st_mode & 0o777 == 0o640
