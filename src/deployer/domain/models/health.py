"""Health check results."""

from __future__ import annotations

from enum import Enum

from deployer.domain.models.base import ValueObject


class HealthOutcome(str, Enum):
    HEALTHY = "healthy"
    TIMEOUT = "timeout"


class HealthCheckResult(ValueObject):
    checked_url: str
    elapsed_seconds: float
    outcome: HealthOutcome
    last_response_body: str = ""
    attempts: int = 0

    @property
    def healthy(self) -> bool:
        return self.outcome == HealthOutcome.HEALTHY
