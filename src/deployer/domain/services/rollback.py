"""Rollback to the last known-good build."""

from __future__ import annotations

import structlog

from deployer.domain.errors import (
    ConfigurationError,
    ConnectivityError,
    DeliveryError,
    NoPriorBuildError,
    RollbackError,
)
from deployer.domain.models.build import BuildRecord
from deployer.domain.models.environment import ConnectionProfile, ContainerTransfer
from deployer.domain.models.pipeline import DeploymentAttempt
from deployer.domain.ports.repositories import BuildRecordRepository
from deployer.domain.ports.services import ArtifactArchive
from deployer.domain.services.executor import DeploymentExecutor
from deployer.domain.services.prober import HealthProber


logger = structlog.get_logger(__name__)


class RollbackVerification:
    """Optional post-rollback health check settings."""

    def __init__(
        self,
        prober: HealthProber,
        health_path: str,
        timeout_seconds: float,
        interval_seconds: float,
        via_remote: bool = False,
    ) -> None:
        self.prober = prober
        self.health_path = health_path
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self.via_remote = via_remote


class RollbackManager:
    """Redeploys the most recent successful build below the failed one.

    Rollback always targets the profile of the failed run and is attempted
    once; a failure raises RollbackError and is never rolled back itself.
    """

    def __init__(
        self,
        builds: BuildRecordRepository,
        archive: ArtifactArchive,
        executor: DeploymentExecutor,
        verification: RollbackVerification | None = None,
    ) -> None:
        self._builds = builds
        self._archive = archive
        self._executor = executor
        self._verification = verification

    async def find_candidate(self, current: BuildRecord) -> BuildRecord:
        candidate = await self._builds.latest_successful_below(current.job, current.build_number)
        if candidate is None or not candidate.is_rollback_candidate:
            raise NoPriorBuildError(
                f"No successful build of {current.job} before #{current.build_number}"
            )
        return candidate

    async def rollback(
        self,
        profile: ConnectionProfile,
        current: BuildRecord,
        container_transfer: ContainerTransfer = ContainerTransfer.REGISTRY,
    ) -> BuildRecord:
        """Restore the previous good build on ``profile`` and return it."""
        candidate = await self.find_candidate(current)
        log = logger.bind(
            job=current.job,
            failed_build=current.build_number,
            restore_build=candidate.build_number,
            environment=profile.environment.value,
        )
        log.info("rollback_started")

        try:
            reference = await self._archive.fetch(candidate.job, candidate.build_number)
        except ConfigurationError as exc:
            raise RollbackError(
                f"Archived artifact of build #{candidate.build_number} unavailable: {exc}"
            ) from exc

        restored = candidate.model_copy(update={"locator": reference})
        attempt = DeploymentAttempt(
            build_record=restored,
            connection_profile=profile,
            method=candidate.method,
            container_transfer=container_transfer,
        )
        try:
            await self._executor.deploy(attempt)
        except (ConfigurationError, ConnectivityError, DeliveryError) as exc:
            log.error("rollback_deploy_failed", error=str(exc), error_kind=exc.kind.value)
            raise RollbackError(
                f"Redeploy of build #{candidate.build_number} failed: {exc}"
            ) from exc

        if self._verification is not None:
            await self._verify(self._verification, profile, candidate)

        log.info("rollback_completed")
        return restored

    async def _verify(
        self,
        verification: RollbackVerification,
        profile: ConnectionProfile,
        candidate: BuildRecord,
    ) -> None:
        url = profile.health_url(
            verification.health_path,
            host="localhost" if verification.via_remote else None,
        )
        result = await verification.prober.probe(
            url,
            verification.timeout_seconds,
            verification.interval_seconds,
            via=profile if verification.via_remote else None,
        )
        if not result.healthy:
            raise RollbackError(
                f"Build #{candidate.build_number} redeployed but unhealthy after "
                f"{result.elapsed_seconds:.0f}s"
            )
