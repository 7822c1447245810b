"""Remote command channel over the OpenSSH ``ssh`` and ``scp`` clients."""

from __future__ import annotations

from pathlib import Path

import structlog

from deployer.config import HostKeyPolicy, RemoteSettings
from deployer.domain.errors import ConnectivityError, DeliveryError
from deployer.domain.models.environment import ConnectionProfile
from deployer.domain.models.remote import CommandResult, RemoteCommand
from deployer.domain.ports.services import RemoteCommandChannel
from deployer.infrastructure.remote.process import run_process


logger = structlog.get_logger(__name__)

# ssh reserves 255 for its own failures (connect, auth, host key).
SSH_TRANSPORT_FAILURE = 255

HOST_KEY_OPTIONS: dict[HostKeyPolicy, tuple[str, ...]] = {
    HostKeyPolicy.STRICT: ("-o", "StrictHostKeyChecking=yes"),
    HostKeyPolicy.ACCEPT_NEW: ("-o", "StrictHostKeyChecking=accept-new"),
    HostKeyPolicy.TRUST_ALL: (
        "-o", "StrictHostKeyChecking=no",
        "-o", "UserKnownHostsFile=/dev/null",
    ),
}


class SshCommandChannel(RemoteCommandChannel):
    """Executes structured commands on the profile's host via ssh.

    Every remote argument is quoted individually and the local side never
    goes through a shell. Authentication is key based and non-interactive.
    """

    def __init__(self, settings: RemoteSettings) -> None:
        self._settings = settings

    def _options(self, profile: ConnectionProfile) -> list[str]:
        options = [
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self._settings.connect_timeout}",
            *HOST_KEY_OPTIONS[self._settings.host_key_policy],
        ]
        if profile.auth_handle:
            options += ["-i", profile.auth_handle]
        if self._settings.verbose:
            options.append("-v")
        if self._settings.host_key_policy == HostKeyPolicy.TRUST_ALL:
            logger.warning("host_key_verification_disabled", host=profile.host)
        return options

    def ssh_argv(self, profile: ConnectionProfile, command: RemoteCommand) -> list[str]:
        return [
            self._settings.ssh_binary,
            *self._options(profile),
            "-p", str(profile.ssh_port),
            profile.destination,
            command.render(),
        ]

    def scp_argv(self, profile: ConnectionProfile, local_path: Path, remote_path: str) -> list[str]:
        return [
            self._settings.scp_binary,
            *self._options(profile),
            "-P", str(profile.ssh_port),
            str(local_path),
            f"{profile.destination}:{remote_path}",
        ]

    async def check(self, profile: ConnectionProfile) -> None:
        result = await self.run(profile, RemoteCommand(argv=("echo", "ok")))
        if not result.ok:
            raise ConnectivityError(
                f"Pre-flight check on {profile.destination} exited {result.exit_code}"
            )
        logger.info("connectivity_ok", host=profile.host, environment=profile.environment.value)

    async def run(self, profile: ConnectionProfile, command: RemoteCommand) -> CommandResult:
        log = logger.bind(host=profile.host, command=str(command))
        try:
            result = await run_process(self.ssh_argv(profile, command))
        except OSError as exc:
            raise ConnectivityError(f"Could not start ssh: {exc}") from exc

        if result.exit_code == SSH_TRANSPORT_FAILURE:
            log.error("ssh_transport_failed", stderr=result.stderr.strip()[:500])
            raise ConnectivityError(
                f"Cannot reach {profile.destination}:{profile.ssh_port}: "
                f"{result.stderr.strip() or 'ssh exited 255'}"
            )
        if result.ok:
            log.debug("remote_command_ok")
        elif command.best_effort:
            log.info("remote_command_tolerated", exit_code=result.exit_code)
        else:
            log.warning(
                "remote_command_failed",
                exit_code=result.exit_code,
                stderr=result.stderr.strip()[:500],
            )
        return result

    async def copy(self, profile: ConnectionProfile, local_path: Path, remote_path: str) -> None:
        try:
            result = await run_process(self.scp_argv(profile, local_path, remote_path))
        except OSError as exc:
            raise ConnectivityError(f"Could not start scp: {exc}") from exc

        if not result.ok:
            raise DeliveryError(
                f"Copy of {local_path.name} to {profile.destination}:{remote_path} "
                f"failed ({result.exit_code}): {result.stderr.strip()}"
            )
        logger.info("file_copied", host=profile.host, source=str(local_path), target=remote_path)
