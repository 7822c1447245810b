"""Unit tests for the command line."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from deployer import cli as cli_module
from deployer.api.dependencies.services import ServiceContainer
from deployer.cli import cli, ExitCode
from deployer.config import Environment, PipelineSettings, Settings
from deployer.infrastructure.observability.logging import setup_logging
from deployer.infrastructure.persistence.repositories.in_memory import InMemoryBuildRecordRepository
from tests.fakes import FakeHealthTransport, FakeLocalRunner, FakeRemoteHost


@pytest.fixture
def health() -> FakeHealthTransport:
    return FakeHealthTransport()


@pytest.fixture(autouse=True)
def wired(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    remote_host: FakeRemoteHost,
    health: FakeHealthTransport,
) -> Settings:
    settings = Settings(
        environment=Environment.TESTING,
        pipeline=PipelineSettings(settle_seconds=0, archive_root=str(tmp_path / "archive")),
    )
    log_sink = io.StringIO()

    def _container(settings: Settings, approval_gate=None) -> ServiceContainer:
        return ServiceContainer(
            settings,
            approval_gate=approval_gate,
            channel=remote_host,
            local_runner=FakeLocalRunner(),
            health_transport=health,
        )

    monkeypatch.setattr(cli_module, "get_settings", lambda: settings)
    monkeypatch.setattr(cli_module, "ServiceContainer", _container)
    monkeypatch.setattr(
        cli_module, "setup_logging", lambda level, stream=None: setup_logging(level, log_sink),
    )
    return settings


@pytest.fixture
def jar(tmp_path: Path) -> Path:
    path = tmp_path / "app.jar"
    path.write_text("build-1")
    return path


class TestDeployCommand:
    def test_jar_deploy(self, remote_host: FakeRemoteHost, jar: Path) -> None:
        result = CliRunner().invoke(cli, ["deploy", "--env", "test", "--method", "jar", "--jar", str(jar)])
        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert remote_host.running_jar == "build-1"
        assert "Deployed" in result.stdout

    def test_container_deploy_with_host_override(self, remote_host: FakeRemoteHost) -> None:
        result = CliRunner().invoke(cli, [
            "deploy", "--env", "stage", "--method", "container",
            "--image", "petclinic:5", "--host", "10.9.9.9",
        ])
        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert remote_host.containers == {"petclinic-stage": "petclinic:5"}

    def test_empty_host_targets_this_machine(self, remote_host: FakeRemoteHost, jar: Path) -> None:
        result = CliRunner().invoke(cli, [
            "deploy", "--method", "jar", "--jar", str(jar), "--host", "",
        ])
        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert set(remote_host.hosts) == {""}
        assert "(local)" in result.stdout

    def test_unreachable_host_exits_255(self, remote_host: FakeRemoteHost, jar: Path) -> None:
        remote_host.reachable = False
        result = CliRunner().invoke(cli, ["deploy", "--method", "jar", "--jar", str(jar)])
        assert result.exit_code == ExitCode.CONNECTIVITY

    def test_missing_jar_exits_1(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["deploy", "--method", "jar", "--jar", str(tmp_path / "x.jar")])
        assert result.exit_code == ExitCode.FAILURE

    def test_jar_option_required(self) -> None:
        result = CliRunner().invoke(cli, ["deploy", "--method", "jar"])
        assert result.exit_code == 2


class TestHealthcheckCommand:
    def test_healthy(self) -> None:
        result = CliRunner().invoke(cli, ["healthcheck", "--url", "http://10.0.0.10:8080/actuator/health"])
        assert result.exit_code == ExitCode.SUCCESS
        assert "HEALTHY after 0s" in result.stdout
        assert '{"status":"UP"}' in result.stdout

    def test_unhealthy(self, health: FakeHealthTransport) -> None:
        health.default = (False, "")
        result = CliRunner().invoke(cli, [
            "healthcheck", "--url", "http://10.0.0.10:8080/actuator/health",
            "--timeout", "0.2", "--interval", "0.1",
        ])
        assert result.exit_code == ExitCode.FAILURE

    def test_via_ssh(self, remote_host: FakeRemoteHost, health: FakeHealthTransport) -> None:
        result = CliRunner().invoke(cli, [
            "healthcheck", "--url", "http://localhost:8080/actuator/health",
            "--via-ssh", "deploy@10.0.0.10",
        ])
        assert result.exit_code == ExitCode.SUCCESS
        assert remote_host.commands[0][0] == "curl"
        assert health.reads == []


class TestRollbackCommand:
    def test_explicit_jar(self, remote_host: FakeRemoteHost, tmp_path: Path) -> None:
        old = tmp_path / "old.jar"
        old.write_text("build-41")
        result = CliRunner().invoke(cli, [
            "rollback", "--env", "test", "--build-number", "41", "--jar", str(old),
        ])
        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert remote_host.running_jar == "build-41"
        assert "build #41" in result.stdout

    def test_nothing_archived(self) -> None:
        result = CliRunner().invoke(cli, ["rollback", "--build-number", "7"])
        assert result.exit_code == ExitCode.FAILURE


class TestRunCommand:
    def test_successful_run(self, remote_host: FakeRemoteHost, jar: Path) -> None:
        result = CliRunner().invoke(cli, ["run", "--branch", "develop", "--artifact", str(jar)])
        assert result.exit_code == ExitCode.SUCCESS, result.output
        summary = json.loads(result.stdout)
        assert summary["stage"] == "succeeded"
        assert summary["environment"] == "test"
        assert summary["build_number"] == 1
        assert remote_host.running_jar == "build-1"

    def test_prod_with_pregranted_approval(self, remote_host: FakeRemoteHost) -> None:
        result = CliRunner().invoke(cli, [
            "run", "--branch", "main", "--image", "petclinic:9", "--approve-as", "release-bot",
        ])
        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert json.loads(result.stdout)["environment"] == "prod"
        assert remote_host.containers == {"petclinic-prod": "petclinic:9"}

    def test_forced_failure_without_history(self, jar: Path) -> None:
        result = CliRunner().invoke(cli, [
            "run", "--branch", "develop", "--artifact", str(jar), "--force-failure",
        ])
        assert result.exit_code == ExitCode.FAILURE
        summary = json.loads(result.stdout)
        assert summary["stage"] == "rollback_failed"
        assert summary["error_kind"] == "forced_failure"

    def test_build_history_survives_between_invocations(
        self, remote_host: FakeRemoteHost, wired: Settings, tmp_path: Path
    ) -> None:
        jar = tmp_path / "app.jar"
        numbers = []
        for n in (1, 2):
            jar.write_text(f"build-{n}")
            result = CliRunner().invoke(cli, [
                "run", "--job", "petclinic", "--branch", "develop", "--artifact", str(jar),
            ])
            assert result.exit_code == ExitCode.SUCCESS, result.output
            numbers.append(json.loads(result.stdout)["build_number"])
            # nothing is carried over in process memory
            InMemoryBuildRecordRepository.clear()

        jar.write_text("build-3")
        result = CliRunner().invoke(cli, [
            "run", "--job", "petclinic", "--branch", "develop", "--artifact", str(jar),
            "--force-failure",
        ])
        summary = json.loads(result.stdout)

        assert numbers == [1, 2]
        assert summary["build_number"] == 3
        assert summary["stage"] == "rolled_back"
        assert summary["rollback_build_number"] == 2
        assert remote_host.running_jar == "build-2"
        assert (Path(wired.pipeline.archive_root) / ".build-log.json").exists()

    def test_artifact_or_image_required(self) -> None:
        result = CliRunner().invoke(cli, ["run", "--branch", "develop"])
        assert result.exit_code == 2
