"""Unit tests for the health prober."""

from __future__ import annotations

import pytest

from deployer.domain.errors import ConfigurationError
from deployer.domain.models.environment import ConnectionProfile
from deployer.domain.models.health import HealthOutcome
from deployer.domain.services.prober import HealthProber
from tests.fakes import FakeHealthTransport, FakeSleep


URL = "http://10.0.0.10:8080/actuator/health"


class TestHealthProber:
    @pytest.mark.asyncio
    async def test_healthy_first_read(self, fake_sleep: FakeSleep) -> None:
        transport = FakeHealthTransport()
        prober = HealthProber(transport, sleep=fake_sleep)
        result = await prober.probe(URL, 120, 5)

        assert result.outcome == HealthOutcome.HEALTHY
        assert result.elapsed_seconds == 0
        assert result.attempts == 1
        assert result.last_response_body == '{"status":"UP"}'
        assert fake_sleep.calls == []

    @pytest.mark.asyncio
    async def test_healthy_after_retries(self, fake_sleep: FakeSleep) -> None:
        transport = FakeHealthTransport(script=[(False, ""), (False, "starting")])
        prober = HealthProber(transport, sleep=fake_sleep)
        result = await prober.probe(URL, 120, 5)

        assert result.healthy
        assert result.elapsed_seconds == 10
        assert result.attempts == 3
        assert fake_sleep.calls == [5, 5]

    @pytest.mark.parametrize(
        ("timeout", "interval"),
        [(10, 2), (10, 3), (5, 5), (1, 4)],
    )
    @pytest.mark.asyncio
    async def test_timeout_elapsed_bounds(
        self, fake_sleep: FakeSleep, timeout: float, interval: float
    ) -> None:
        transport = FakeHealthTransport(default=(False, "DOWN"))
        prober = HealthProber(transport, sleep=fake_sleep)
        result = await prober.probe(URL, timeout, interval)

        assert result.outcome == HealthOutcome.TIMEOUT
        assert timeout <= result.elapsed_seconds < timeout + interval
        assert result.elapsed_seconds == fake_sleep.total
        assert result.last_response_body == "DOWN"

    @pytest.mark.asyncio
    async def test_zero_timeout_reads_nothing(self, fake_sleep: FakeSleep) -> None:
        transport = FakeHealthTransport()
        prober = HealthProber(transport, sleep=fake_sleep)
        result = await prober.probe(URL, 0, 5)
        assert result.outcome == HealthOutcome.TIMEOUT
        assert transport.reads == []

    @pytest.mark.asyncio
    async def test_request_timeout_bounded_by_interval(self, fake_sleep: FakeSleep) -> None:
        transport = FakeHealthTransport(default=(False, ""))
        prober = HealthProber(transport, sleep=fake_sleep)
        await prober.probe(URL, 7, 3)
        assert [t for _, t in transport.reads] == [3, 3, 1]

    @pytest.mark.asyncio
    async def test_non_positive_interval_rejected(self, fake_sleep: FakeSleep) -> None:
        prober = HealthProber(FakeHealthTransport(), sleep=fake_sleep)
        with pytest.raises(ConfigurationError):
            await prober.probe(URL, 10, 0)

    @pytest.mark.asyncio
    async def test_empty_url_rejected(self, fake_sleep: FakeSleep) -> None:
        prober = HealthProber(FakeHealthTransport(), sleep=fake_sleep)
        with pytest.raises(ConfigurationError):
            await prober.probe("", 10, 1)

    @pytest.mark.asyncio
    async def test_via_remote_uses_factory(
        self, fake_sleep: FakeSleep, target_profile: ConnectionProfile
    ) -> None:
        local = FakeHealthTransport(default=(False, ""))
        remote = FakeHealthTransport()
        seen: list[ConnectionProfile] = []

        def factory(profile: ConnectionProfile) -> FakeHealthTransport:
            seen.append(profile)
            return remote

        prober = HealthProber(local, remote_transport_factory=factory, sleep=fake_sleep)
        result = await prober.probe("http://localhost:8080/actuator/health", 10, 1, via=target_profile)

        assert result.healthy
        assert seen == [target_profile]
        assert local.reads == []

    @pytest.mark.asyncio
    async def test_via_remote_without_factory(
        self, fake_sleep: FakeSleep, target_profile: ConnectionProfile
    ) -> None:
        prober = HealthProber(FakeHealthTransport(), sleep=fake_sleep)
        with pytest.raises(ConfigurationError):
            await prober.probe(URL, 10, 1, via=target_profile)
