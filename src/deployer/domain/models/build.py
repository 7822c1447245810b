"""Build lineage records."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import Field

from deployer.domain.errors import ConfigurationError
from deployer.domain.models.base import DomainEntity
from deployer.domain.models.environment import DeliveryMethod


# Job names become archive directories and URL segments.
JOB_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$"


def check_job_name(job: str) -> str:
    if not re.fullmatch(JOB_NAME_PATTERN, job):
        raise ConfigurationError(f"Invalid job name {job!r}")
    return job


class BuildResult(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class BuildRecord(DomainEntity):
    """One entry of a job's append-only build log.

    ``artifact_reference`` is what the build step produced: a local jar path
    for the process method or an image reference for containers.
    ``locator`` is where the artifact archive keeps it once the build
    succeeded.
    """

    job: str = Field(pattern=JOB_NAME_PATTERN)
    build_number: int = Field(ge=1)
    commit_id: str = ""
    artifact_reference: str = ""
    method: DeliveryMethod = DeliveryMethod.JAR
    locator: str = ""
    result: BuildResult = BuildResult.PENDING

    @property
    def is_rollback_candidate(self) -> bool:
        return self.result == BuildResult.SUCCESS

    def mark_success(self, locator: str = "") -> None:
        self._finish(BuildResult.SUCCESS)
        if locator:
            self.locator = locator

    def mark_failed(self) -> None:
        self._finish(BuildResult.FAILED)

    def _finish(self, result: BuildResult) -> None:
        if self.result != BuildResult.PENDING:
            raise BuildAlreadyFinishedError(
                f"Build {self.job}#{self.build_number} already {self.result.value}"
            )
        self.result = result
        self.touch()


class BuildAlreadyFinishedError(Exception):
    """Raised when a terminal build record is mutated again."""
