"""Health transports: direct HTTP and curl on the target host."""

from __future__ import annotations

import aiohttp
import structlog

from deployer.domain.errors import ConnectivityError
from deployer.domain.models.environment import ConnectionProfile
from deployer.domain.models.remote import RemoteCommand
from deployer.domain.ports.services import HealthTransport, RemoteCommandChannel


logger = structlog.get_logger(__name__)

MAX_BODY_CHARS = 4096


class AiohttpHealthTransport(HealthTransport):
    """One unauthenticated GET per read; any failure counts as unhealthy."""

    async def read(self, url: str, timeout_seconds: float) -> tuple[bool, str]:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=timeout_seconds)
                ) as response:
                    body = await response.text(errors="replace")
                    healthy = 200 <= response.status < 300
                    if not healthy:
                        logger.debug("probe_attempt_failed", url=url, status=response.status)
                    return healthy, body[:MAX_BODY_CHARS]
        except (aiohttp.ClientError, TimeoutError) as exc:
            logger.debug("probe_attempt_failed", url=url, error=type(exc).__name__)
            return False, ""


class RemoteCurlHealthTransport(HealthTransport):
    """Runs ``curl -sf`` on the target, for ports not reachable from here."""

    def __init__(self, channel: RemoteCommandChannel, profile: ConnectionProfile) -> None:
        self._channel = channel
        self._profile = profile

    async def read(self, url: str, timeout_seconds: float) -> tuple[bool, str]:
        command = RemoteCommand(
            argv=("curl", "-sf", "--max-time", str(max(1, int(timeout_seconds))), url),
            best_effort=True,
        )
        try:
            result = await self._channel.run(self._profile, command)
        except ConnectivityError as exc:
            logger.debug("probe_attempt_failed", url=url, via=self._profile.host, error=str(exc))
            return False, ""
        return result.ok, result.stdout[:MAX_BODY_CHARS]
