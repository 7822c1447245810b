"""Unit tests for health transports."""

from __future__ import annotations

import pytest

from deployer.domain.models.environment import ConnectionProfile
from deployer.domain.models.remote import CommandResult, RemoteCommand
from deployer.infrastructure.health.http_probe import (
    AiohttpHealthTransport,
    RemoteCurlHealthTransport,
)
from tests.fakes import FakeRemoteHost


class CurlHost(FakeRemoteHost):
    def __init__(self, result: CommandResult) -> None:
        super().__init__()
        self.result = result

    async def run(self, profile: ConnectionProfile, command: RemoteCommand) -> CommandResult:
        self._guard()
        self.commands.append(command.argv)
        return self.result


URL = "http://localhost:8080/actuator/health"


class TestRemoteCurlHealthTransport:
    @pytest.mark.asyncio
    async def test_healthy(self, target_profile: ConnectionProfile) -> None:
        host = CurlHost(CommandResult(exit_code=0, stdout='{"status":"UP"}'))
        healthy, body = await RemoteCurlHealthTransport(host, target_profile).read(URL, 4.5)
        assert healthy
        assert body == '{"status":"UP"}'
        assert host.commands == [("curl", "-sf", "--max-time", "4", URL)]

    @pytest.mark.asyncio
    async def test_http_error(self, target_profile: ConnectionProfile) -> None:
        host = CurlHost(CommandResult(exit_code=22))
        healthy, _ = await RemoteCurlHealthTransport(host, target_profile).read(URL, 5)
        assert not healthy

    @pytest.mark.asyncio
    async def test_unreachable_host_is_unhealthy(self, target_profile: ConnectionProfile) -> None:
        host = CurlHost(CommandResult(exit_code=0))
        host.reachable = False
        assert await RemoteCurlHealthTransport(host, target_profile).read(URL, 5) == (False, "")


class TestAiohttpHealthTransport:
    @pytest.mark.asyncio
    async def test_connection_refused_is_unhealthy(self) -> None:
        healthy, body = await AiohttpHealthTransport().read("http://127.0.0.1:9/health", 1)
        assert not healthy
        assert body == ""
