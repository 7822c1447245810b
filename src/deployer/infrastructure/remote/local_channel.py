"""Command channel for targets on the orchestrating machine."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import structlog

from deployer.domain.errors import ConnectivityError, DeliveryError
from deployer.domain.models.environment import ConnectionProfile
from deployer.domain.models.remote import CommandResult, RemoteCommand
from deployer.domain.ports.services import RemoteCommandChannel
from deployer.infrastructure.remote.process import run_process


logger = structlog.get_logger(__name__)


class LocalCommandChannel(RemoteCommandChannel):
    """Runs target commands on this machine through ``sh -c``.

    The line handed to the shell is the same one ssh passes to the remote
    login shell, so quoting, redirection and backgrounding behave the same
    for local and remote targets.
    """

    def __init__(self, shell: str = "/bin/sh") -> None:
        self._shell = shell

    def shell_argv(self, command: RemoteCommand) -> list[str]:
        return [self._shell, "-c", command.render()]

    async def check(self, profile: ConnectionProfile) -> None:
        if not Path(self._shell).exists():
            raise ConnectivityError(f"Local shell {self._shell} not found")
        logger.info("connectivity_ok", host="local", environment=profile.environment.value)

    async def run(self, profile: ConnectionProfile, command: RemoteCommand) -> CommandResult:
        try:
            result = await run_process(self.shell_argv(command))
        except OSError as exc:
            raise ConnectivityError(f"Could not start {self._shell}: {exc}") from exc

        if result.ok:
            logger.debug("local_target_command_ok", command=str(command))
        elif command.best_effort:
            logger.info(
                "local_target_command_tolerated",
                command=str(command),
                exit_code=result.exit_code,
            )
        else:
            logger.warning(
                "local_target_command_failed",
                command=str(command),
                exit_code=result.exit_code,
                stderr=result.stderr.strip()[:500],
            )
        return result

    async def copy(self, profile: ConnectionProfile, local_path: Path, remote_path: str) -> None:
        target = Path(remote_path).expanduser()
        try:
            await asyncio.to_thread(self._copy, Path(local_path), target)
        except OSError as exc:
            raise DeliveryError(f"Copy of {local_path} to {target} failed: {exc}") from exc
        logger.info("file_copied", host="local", source=str(local_path), target=str(target))

    @staticmethod
    def _copy(source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)


class TargetCommandChannel(RemoteCommandChannel):
    """Sends each command to the local channel or over ssh by profile host."""

    def __init__(self, remote: RemoteCommandChannel, local: RemoteCommandChannel) -> None:
        self._remote = remote
        self._local = local

    def channel_for(self, profile: ConnectionProfile) -> RemoteCommandChannel:
        return self._local if profile.is_local else self._remote

    async def check(self, profile: ConnectionProfile) -> None:
        await self.channel_for(profile).check(profile)

    async def run(self, profile: ConnectionProfile, command: RemoteCommand) -> CommandResult:
        return await self.channel_for(profile).run(profile, command)

    async def copy(self, profile: ConnectionProfile, local_path: Path, remote_path: str) -> None:
        await self.channel_for(profile).copy(profile, local_path, remote_path)
