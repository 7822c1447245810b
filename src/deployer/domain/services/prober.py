"""Bounded-retry health probing."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from deployer.domain.errors import ConfigurationError
from deployer.domain.models.environment import ConnectionProfile
from deployer.domain.models.health import HealthCheckResult, HealthOutcome
from deployer.domain.ports.services import HealthTransport, Sleeper


logger = structlog.get_logger(__name__)

MIN_REQUEST_TIMEOUT = 1.0


class HealthProber:
    """Polls a health URL until it answers 2xx or the budget runs out.

    Elapsed time is the sum of the intervals slept between failed reads, so
    a probe that never succeeds reports at least ``timeout_seconds`` and
    less than ``timeout_seconds + interval_seconds``. A healthy first read
    reports zero.
    """

    def __init__(
        self,
        transport: HealthTransport,
        remote_transport_factory: Callable[[ConnectionProfile], HealthTransport] | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._remote_transport_factory = remote_transport_factory
        self._sleep = sleep

    async def probe(
        self,
        url: str,
        timeout_seconds: float,
        interval_seconds: float,
        via: ConnectionProfile | None = None,
    ) -> HealthCheckResult:
        if interval_seconds <= 0:
            raise ConfigurationError("Probe interval must be positive")
        if not url:
            raise ConfigurationError("Probe URL is required")

        transport = self._transport_for(via)
        log = logger.bind(url=url, via=via.destination if via else None)
        log.info("probe_started", timeout=timeout_seconds, interval=interval_seconds)

        elapsed = 0.0
        attempts = 0
        body = ""
        while elapsed < timeout_seconds:
            attempts += 1
            request_timeout = max(MIN_REQUEST_TIMEOUT, min(interval_seconds, timeout_seconds - elapsed))
            healthy, body = await transport.read(url, request_timeout)
            if healthy:
                log.info("probe_healthy", elapsed=elapsed, attempts=attempts)
                return HealthCheckResult(
                    checked_url=url,
                    elapsed_seconds=elapsed,
                    outcome=HealthOutcome.HEALTHY,
                    last_response_body=body,
                    attempts=attempts,
                )

            log.info("probe_waiting", elapsed=elapsed, timeout=timeout_seconds)
            await self._sleep(interval_seconds)
            elapsed += interval_seconds

        log.warning("probe_timed_out", elapsed=elapsed, attempts=attempts)
        return HealthCheckResult(
            checked_url=url,
            elapsed_seconds=elapsed,
            outcome=HealthOutcome.TIMEOUT,
            last_response_body=body,
            attempts=attempts,
        )

    def _transport_for(self, via: ConnectionProfile | None) -> HealthTransport:
        if via is None:
            return self._transport
        if self._remote_transport_factory is None:
            raise ConfigurationError("Probing through a remote host is not configured")
        return self._remote_transport_factory(via)
