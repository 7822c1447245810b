"""Unit tests for the deployment executor."""

from __future__ import annotations

from pathlib import Path

import pytest

from deployer.config import ApplicationSettings, ContainerSettings
from deployer.domain.errors import ConfigurationError, ConnectivityError, DeliveryError
from deployer.domain.models.build import BuildRecord
from deployer.domain.models.environment import (
    ConnectionProfile,
    ContainerTransfer,
    DeliveryMethod,
)
from deployer.domain.models.pipeline import DeploymentAttempt
from deployer.domain.models.remote import StopOutcome
from deployer.domain.services.executor import DeploymentExecutor, instance_name
from tests.fakes import FakeLocalRunner, FakeRemoteHost, FakeSleep


@pytest.fixture
def executor(
    remote_host: FakeRemoteHost,
    local_runner: FakeLocalRunner,
    application: ApplicationSettings,
    container_settings: ContainerSettings,
    fake_sleep: FakeSleep,
) -> DeploymentExecutor:
    return DeploymentExecutor(
        channel=remote_host,
        local=local_runner,
        application=application,
        container=container_settings,
        settle_seconds=2,
        sleep=fake_sleep,
    )


def _attempt(
    profile: ConnectionProfile,
    reference: str,
    method: DeliveryMethod = DeliveryMethod.JAR,
    transfer: ContainerTransfer = ContainerTransfer.REGISTRY,
) -> DeploymentAttempt:
    build = BuildRecord(job="petclinic", build_number=1, artifact_reference=reference, method=method)
    return DeploymentAttempt(
        build_record=build,
        connection_profile=profile,
        method=method,
        container_transfer=transfer,
    )


class TestJarDelivery:
    @pytest.mark.asyncio
    async def test_first_deploy(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
        fake_sleep: FakeSleep,
        make_jar,
    ) -> None:
        jar = make_jar(content="build-1")
        await executor.deploy(_attempt(target_profile, str(jar)))

        assert remote_host.checks == 1
        assert remote_host.files["/home/deploy/petclinic/app.jar"] == b"build-1"
        assert remote_host.running_jar == "build-1"
        assert fake_sleep.calls == [2]
        assert remote_host.commands[0] == ("mkdir", "-p", "/home/deploy/petclinic")
        assert remote_host.rendered[-1] == (
            "cd /home/deploy/petclinic && nohup java -jar app.jar > app.log 2>&1 &"
        )

    @pytest.mark.asyncio
    async def test_redeploy_replaces_running_process(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
        make_jar,
    ) -> None:
        await executor.deploy(_attempt(target_profile, str(make_jar(content="build-1"))))
        await executor.deploy(_attempt(target_profile, str(make_jar(content="build-2"))))
        assert remote_host.processes == ["build-2"]

    @pytest.mark.asyncio
    async def test_same_artifact_twice_leaves_one_instance(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
        make_jar,
    ) -> None:
        jar = str(make_jar(content="build-1"))
        await executor.deploy(_attempt(target_profile, jar))
        await executor.deploy(_attempt(target_profile, jar))
        assert remote_host.processes == ["build-1"]

    @pytest.mark.asyncio
    async def test_missing_artifact_is_configuration_error(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
        tmp_path: Path,
    ) -> None:
        with pytest.raises(ConfigurationError):
            await executor.deploy(_attempt(target_profile, str(tmp_path / "nope.jar")))
        assert remote_host.checks == 0
        assert remote_host.commands == []

    @pytest.mark.asyncio
    async def test_empty_reference_is_configuration_error(
        self, executor: DeploymentExecutor, target_profile: ConnectionProfile
    ) -> None:
        with pytest.raises(ConfigurationError):
            await executor.deploy(_attempt(target_profile, ""))

    @pytest.mark.asyncio
    async def test_unreachable_host(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
        make_jar,
    ) -> None:
        remote_host.reachable = False
        with pytest.raises(ConnectivityError):
            await executor.deploy(_attempt(target_profile, str(make_jar())))
        assert remote_host.files == {}

    @pytest.mark.asyncio
    async def test_copy_failure_is_delivery_error(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
        make_jar,
    ) -> None:
        remote_host.copy_fails = True
        with pytest.raises(DeliveryError):
            await executor.deploy(_attempt(target_profile, str(make_jar())))

    @pytest.mark.asyncio
    async def test_start_failure_is_delivery_error(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
        make_jar,
    ) -> None:
        remote_host.fail_on = {"java"}
        with pytest.raises(DeliveryError):
            await executor.deploy(_attempt(target_profile, str(make_jar())))

    @pytest.mark.asyncio
    async def test_stop_process_outcomes(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        target_profile: ConnectionProfile,
    ) -> None:
        assert await executor.stop_process(target_profile) == StopOutcome.WAS_NOT_RUNNING
        remote_host.processes.append("build-1")
        assert await executor.stop_process(target_profile) == StopOutcome.WAS_RUNNING


class TestContainerDelivery:
    @pytest.mark.asyncio
    async def test_registry_deploy(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        stage_profile: ConnectionProfile,
    ) -> None:
        image = "registry.example.com/petclinic:7"
        await executor.deploy(_attempt(stage_profile, image, method=DeliveryMethod.CONTAINER))

        assert remote_host.pulled == [image]
        assert remote_host.containers == {"petclinic-stage": image}
        run_argv = remote_host.commands[-1]
        assert run_argv[:3] == ("docker", "run", "-d")
        assert "8080:8080" in run_argv
        assert "SPRING_PROFILES_ACTIVE=staging" in run_argv
        assert run_argv[run_argv.index("--restart") + 1] == "unless-stopped"

    @pytest.mark.asyncio
    async def test_redeploy_replaces_container(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        stage_profile: ConnectionProfile,
    ) -> None:
        await executor.deploy(_attempt(stage_profile, "petclinic:1", method=DeliveryMethod.CONTAINER))
        await executor.deploy(_attempt(stage_profile, "petclinic:2", method=DeliveryMethod.CONTAINER))
        assert remote_host.containers == {"petclinic-stage": "petclinic:2"}

    @pytest.mark.asyncio
    async def test_only_own_environment_container_touched(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        stage_profile: ConnectionProfile,
    ) -> None:
        remote_host.containers["petclinic-prod"] = "petclinic:1"
        await executor.deploy(_attempt(stage_profile, "petclinic:2", method=DeliveryMethod.CONTAINER))
        assert remote_host.containers["petclinic-prod"] == "petclinic:1"
        assert remote_host.containers["petclinic-stage"] == "petclinic:2"

    @pytest.mark.asyncio
    async def test_pull_failure_is_delivery_error(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        stage_profile: ConnectionProfile,
    ) -> None:
        remote_host.fail_on = {"docker"}
        with pytest.raises(DeliveryError):
            await executor.deploy(_attempt(stage_profile, "petclinic:2", method=DeliveryMethod.CONTAINER))

    @pytest.mark.asyncio
    async def test_image_transfer(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        local_runner: FakeLocalRunner,
        stage_profile: ConnectionProfile,
        tmp_path: Path,
    ) -> None:
        local_runner.images.add("petclinic:3")
        await executor.deploy(_attempt(
            stage_profile, "petclinic:3",
            method=DeliveryMethod.CONTAINER,
            transfer=ContainerTransfer.IMAGE_TRANSFER,
        ))

        assert remote_host.files["/tmp/petclinic-stage-image.tar"] == b"image-tar"
        assert remote_host.loaded == ["/tmp/petclinic-stage-image.tar"]
        assert remote_host.pulled == []
        assert remote_host.containers == {"petclinic-stage": "petclinic:3"}
        assert not (tmp_path / "petclinic-stage-image.tar").exists()

    @pytest.mark.asyncio
    async def test_local_target_runs_image_without_transfer(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        local_runner: FakeLocalRunner,
        stage_profile: ConnectionProfile,
    ) -> None:
        local_runner.images.add("petclinic:dev")
        local = stage_profile.model_copy(update={"host": "localhost"})
        await executor.deploy(_attempt(
            local, "petclinic:dev",
            method=DeliveryMethod.CONTAINER,
            transfer=ContainerTransfer.IMAGE_TRANSFER,
        ))

        assert [call[1] for call in local_runner.calls] == ["image"]
        assert remote_host.files == {}
        assert remote_host.loaded == []
        assert remote_host.pulled == []
        assert remote_host.containers == {"petclinic-stage": "petclinic:dev"}

    @pytest.mark.asyncio
    async def test_image_transfer_requires_local_image(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        stage_profile: ConnectionProfile,
    ) -> None:
        with pytest.raises(ConfigurationError):
            await executor.deploy(_attempt(
                stage_profile, "petclinic:missing",
                method=DeliveryMethod.CONTAINER,
                transfer=ContainerTransfer.IMAGE_TRANSFER,
            ))
        assert remote_host.checks == 0

    @pytest.mark.asyncio
    async def test_stop_container_outcomes(
        self,
        executor: DeploymentExecutor,
        remote_host: FakeRemoteHost,
        stage_profile: ConnectionProfile,
    ) -> None:
        assert await executor.stop_container(stage_profile) == StopOutcome.WAS_NOT_RUNNING
        remote_host.containers["petclinic-stage"] = "petclinic:1"
        assert await executor.stop_container(stage_profile) == StopOutcome.WAS_RUNNING
        remote_host.fail_on = {"docker"}
        assert await executor.stop_container(stage_profile) == StopOutcome.FAILED

    def test_instance_name(self, stage_profile: ConnectionProfile) -> None:
        assert instance_name("petclinic", stage_profile) == "petclinic-stage"
