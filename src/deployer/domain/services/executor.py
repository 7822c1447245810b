"""Deployment executor: process-artifact and container delivery."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from deployer.config import ApplicationSettings, ContainerSettings
from deployer.domain.errors import ConfigurationError, DeliveryError
from deployer.domain.models.environment import (
    ConnectionProfile,
    ContainerTransfer,
    DeliveryMethod,
)
from deployer.domain.models.pipeline import DeploymentAttempt
from deployer.domain.models.remote import CommandResult, RemoteCommand, StopOutcome
from deployer.domain.ports.services import LocalCommandRunner, RemoteCommandChannel, Sleeper


logger = structlog.get_logger(__name__)

NO_SUCH_CONTAINER = "no such container"


def instance_name(application: str, profile: ConnectionProfile) -> str:
    """The one container/process name owned by (application, environment)."""
    return f"{application}-{profile.environment.value}"


class DeploymentExecutor:
    """Leaves the target running the attempt's artifact, in place.

    Only the instance named for ``(application, environment)`` is touched;
    the previous version is stopped before the new one starts.
    """

    def __init__(
        self,
        channel: RemoteCommandChannel,
        local: LocalCommandRunner,
        application: ApplicationSettings,
        container: ContainerSettings,
        settle_seconds: float = 2.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._channel = channel
        self._local = local
        self._app = application
        self._container = container
        self._settle_seconds = settle_seconds
        self._sleep = sleep

    async def deploy(self, attempt: DeploymentAttempt) -> None:
        """Deliver one build. Raises ConfigurationError, ConnectivityError or DeliveryError."""
        profile = attempt.connection_profile
        reference = attempt.reference
        if not reference:
            raise ConfigurationError(
                f"Build #{attempt.build_record.build_number} has no "
                f"{'image' if attempt.method == DeliveryMethod.CONTAINER else 'artifact'} reference"
            )

        log = logger.bind(
            environment=profile.environment.value,
            host=profile.host,
            method=attempt.method.value,
            build_number=attempt.build_record.build_number,
        )
        log.info("deploy_started", reference=reference)

        if attempt.method == DeliveryMethod.JAR:
            artifact = Path(reference)
            if not artifact.is_file():
                raise ConfigurationError(f"Artifact not found locally: {artifact}")
            await self._channel.check(profile)
            await self._deploy_jar(profile, artifact)
        elif attempt.container_transfer == ContainerTransfer.IMAGE_TRANSFER:
            await self._require_local_image(reference)
            await self._channel.check(profile)
            if profile.is_local:
                # already in this machine's runtime
                await self._replace_container(profile, reference, pull=False)
            else:
                await self._deploy_container_transfer(profile, reference)
        else:
            await self._channel.check(profile)
            await self._deploy_container_registry(profile, reference)

        log.info("deploy_completed", instance=instance_name(self._app.name, profile))

    # ------------------------------------------------------------------
    # Process artifact
    # ------------------------------------------------------------------

    async def _deploy_jar(self, profile: ConnectionProfile, artifact: Path) -> None:
        remote_dir = self._app.remote_dir
        remote_jar = f"{remote_dir.rstrip('/')}/{self._app.jar_name}"

        await self._require(profile, RemoteCommand(argv=("mkdir", "-p", remote_dir)))
        await self._channel.copy(profile, artifact, remote_jar)

        outcome = await self.stop_process(profile)
        if outcome == StopOutcome.FAILED:
            raise DeliveryError(f"Could not stop the running {self._app.jar_name} on {profile.host}")
        await self._sleep(self._settle_seconds)

        await self._require(profile, RemoteCommand(
            argv=("java", "-jar", self._app.jar_name),
            background=True,
            workdir=remote_dir,
            stdout_path=self._app.log_name,
        ))
        logger.info("process_started", host=profile.host, path=remote_jar, log=self._app.log_name)

    async def stop_process(self, profile: ConnectionProfile) -> StopOutcome:
        """Terminate processes launched from the application jar.

        pkill exits 0 when something matched and 1 when nothing did.
        """
        result = await self._channel.run(profile, RemoteCommand(
            argv=("pkill", "-f", f"java.*{self._app.jar_name}"), best_effort=True,
        ))
        if result.exit_code == 0:
            outcome = StopOutcome.WAS_RUNNING
        elif result.exit_code == 1:
            outcome = StopOutcome.WAS_NOT_RUNNING
        else:
            outcome = StopOutcome.FAILED
        logger.info("process_stop", host=profile.host, outcome=outcome.value)
        return outcome

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    async def _deploy_container_registry(self, profile: ConnectionProfile, image: str) -> None:
        await self._replace_container(profile, image, pull=True)

    async def _deploy_container_transfer(self, profile: ConnectionProfile, image: str) -> None:
        name = instance_name(self._app.name, profile)
        tar_file = Path(self._container.transfer_dir) / f"{name}-image.tar"
        remote_tar = f"{self._container.remote_transfer_dir.rstrip('/')}/{tar_file.name}"

        logger.info("image_transfer_started", image=image, host=profile.host)
        try:
            saved = await self._local.run(
                [self._container.docker_binary, "save", image, "-o", str(tar_file)]
            )
            if not saved.ok:
                raise DeliveryError(f"docker save {image} failed: {saved.stderr.strip()}")
            await self._channel.copy(profile, tar_file, remote_tar)
            await self._require(profile, RemoteCommand(
                argv=(self._container.docker_binary, "load", "-i", remote_tar),
            ))
        finally:
            tar_file.unlink(missing_ok=True)

        await self._replace_container(profile, image, pull=False)

    async def _replace_container(self, profile: ConnectionProfile, image: str, pull: bool) -> None:
        docker = self._container.docker_binary
        name = instance_name(self._app.name, profile)

        outcome = await self.stop_container(profile)
        if outcome == StopOutcome.FAILED:
            raise DeliveryError(f"Could not remove container {name} on {profile.host}")

        if pull:
            await self._require(profile, RemoteCommand(argv=(docker, "pull", image)))

        await self._require(profile, RemoteCommand(argv=(
            docker, "run", "-d",
            "--name", name,
            "-p", f"{profile.port}:{self._app.container_port}",
            "-e", f"SPRING_PROFILES_ACTIVE={profile.runtime_profile or profile.environment.value}",
            "--restart", "unless-stopped",
            image,
        )))
        logger.info("container_started", host=profile.host, container=name, image=image)

    async def stop_container(self, profile: ConnectionProfile) -> StopOutcome:
        """Stop and remove the environment's container if it exists."""
        docker = self._container.docker_binary
        name = instance_name(self._app.name, profile)

        stopped = await self._channel.run(
            profile, RemoteCommand(argv=(docker, "stop", name), best_effort=True)
        )
        removed = await self._channel.run(
            profile, RemoteCommand(argv=(docker, "rm", name), best_effort=True)
        )

        if removed.ok:
            outcome = StopOutcome.WAS_RUNNING
        elif _missing_container(removed):
            outcome = StopOutcome.WAS_NOT_RUNNING
        else:
            outcome = StopOutcome.FAILED
        logger.info(
            "container_stop",
            host=profile.host,
            container=name,
            outcome=outcome.value,
            stop_exit_code=stopped.exit_code,
        )
        return outcome

    async def _require_local_image(self, image: str) -> None:
        result = await self._local.run(
            [self._container.docker_binary, "image", "inspect", image]
        )
        if not result.ok:
            raise ConfigurationError(f"Image not found locally: {image}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, profile: ConnectionProfile, command: RemoteCommand) -> CommandResult:
        result = await self._channel.run(profile, command)
        if not result.ok:
            raise DeliveryError(
                f"Remote command failed ({result.exit_code}) on {profile.host}: "
                f"{command}: {result.stderr.strip()}"
            )
        return result


def _missing_container(result: CommandResult) -> bool:
    return NO_SUCH_CONTAINER in (result.stderr or "").lower()
