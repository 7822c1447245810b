"""Pipeline orchestration: resolve, deploy, probe, roll back on failure."""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import NamedTuple

import structlog

from deployer.config import ApplicationSettings, ProbeSettings
from deployer.domain.errors import (
    ApprovalRejectedError,
    ConfigurationError,
    ConnectivityError,
    DeliveryError,
    DeployerError,
    ForcedFailureError,
    HealthTimeoutError,
    NoPriorBuildError,
    PipelineBusyError,
    RollbackError,
    RunTimeoutError,
)
from deployer.domain.models.base import AggregateRoot
from deployer.domain.models.build import BuildRecord, BuildResult, check_job_name
from deployer.domain.models.environment import (
    ConnectionProfile,
    ContainerTransfer,
    DeliveryMethod,
)
from deployer.domain.models.pipeline import DeploymentAttempt, PipelineRun
from deployer.domain.ports.repositories import (
    BuildRecordRepository,
    DuplicateBuildError,
    PipelineRunRepository,
)
from deployer.domain.ports.services import (
    ApprovalGate,
    ArtifactArchive,
    DistributedLock,
    EventPublisher,
)
from deployer.domain.services.executor import DeploymentExecutor
from deployer.domain.services.prober import HealthProber
from deployer.domain.services.resolver import EnvironmentResolver
from deployer.domain.services.rollback import RollbackManager


logger = structlog.get_logger(__name__)


class _JobClaim(NamedTuple):
    token: str
    heartbeat: asyncio.Task[None]


class PipelineOrchestrator:
    """Runs one job's pipeline end to end, one run per job at a time.

    The connection profile is resolved once when the run starts and again
    only after the production approval gate, so a long pause never acts on
    a stale branch mapping. Everything after the gate runs under the
    run-wide timeout; the gate itself may wait indefinitely.

    The job claim is refreshed every ``lock_refresh_seconds`` for as long as
    the run is alive, so neither the approval wait nor a slow rollback lets
    it lapse while the run still owns the target.
    """

    def __init__(
        self,
        resolver: EnvironmentResolver,
        executor: DeploymentExecutor,
        prober: HealthProber,
        rollback_manager: RollbackManager,
        build_repo: BuildRecordRepository,
        run_repo: PipelineRunRepository,
        archive: ArtifactArchive,
        approval_gate: ApprovalGate,
        lock_service: DistributedLock,
        event_publisher: EventPublisher,
        application: ApplicationSettings,
        probe_settings: ProbeSettings,
        run_timeout_seconds: float = 900,
        container_transfer: ContainerTransfer = ContainerTransfer.REGISTRY,
        lock_ttl_seconds: int = 3600,
        lock_refresh_seconds: float | None = None,
        artifact_root: str | Path | None = None,
    ) -> None:
        self._resolver = resolver
        self._executor = executor
        self._prober = prober
        self._rollback_manager = rollback_manager
        self._build_repo = build_repo
        self._run_repo = run_repo
        self._archive = archive
        self._approval_gate = approval_gate
        self._lock_service = lock_service
        self._event_publisher = event_publisher
        self._app = application
        self._probe = probe_settings
        self._run_timeout_seconds = run_timeout_seconds
        self._container_transfer = container_transfer
        self._lock_ttl_seconds = lock_ttl_seconds
        self._lock_refresh_seconds = lock_refresh_seconds or lock_ttl_seconds / 3
        self._claims: dict[str, _JobClaim] = {}
        self._artifact_root = Path(artifact_root).resolve() if artifact_root else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def lock_key(job: str) -> str:
        return f"pipeline:{job}"

    async def _publish_events(self, aggregate: AggregateRoot) -> None:
        for event in aggregate.collect_events():
            await self._event_publisher.publish(event.event_type, event.to_payload())

    async def _checkpoint(self, run: PipelineRun) -> None:
        await self._run_repo.update(run)
        await self._publish_events(run)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(
        self,
        job: str,
        branch: str | None,
        artifact_reference: str,
        commit_id: str = "",
        method: DeliveryMethod | None = None,
        build_number: int | None = None,
        force_failure: bool = False,
    ) -> PipelineRun:
        """Prepare and execute a run, returning it in its terminal stage."""
        run = await self.prepare(
            job, branch, artifact_reference,
            commit_id=commit_id,
            method=method,
            build_number=build_number,
            force_failure=force_failure,
        )
        return await self.execute(run)

    async def prepare(
        self,
        job: str,
        branch: str | None,
        artifact_reference: str,
        commit_id: str = "",
        method: DeliveryMethod | None = None,
        build_number: int | None = None,
        force_failure: bool = False,
    ) -> PipelineRun:
        """Claim the job and register a new run in the resolving stage.

        Raises PipelineBusyError while another run of the job is active and
        ConfigurationError for a malformed job name or a jar outside the
        artifact root. The caller must hand the returned run to
        :meth:`execute`, which releases the claim.
        """
        check_job_name(job)
        token = await self._lock_service.acquire(
            self.lock_key(job), ttl_seconds=self._lock_ttl_seconds
        )
        if token is None:
            raise PipelineBusyError(f"A pipeline run of {job} is already active")

        try:
            if method is None:
                method = self._resolver.resolve(branch).deploy_method
            self._check_artifact(method, artifact_reference)
            if build_number is None:
                build_number = await self._build_repo.next_build_number(job)

            run = PipelineRun(
                job=job,
                branch=branch or "",
                force_failure=force_failure,
                build=BuildRecord(
                    job=job,
                    build_number=build_number,
                    commit_id=commit_id,
                    artifact_reference=artifact_reference,
                    method=method,
                ),
            )
            await self._run_repo.save(run)
        except BaseException:
            await self._lock_service.release(self.lock_key(job), token)
            raise

        self._claims[run.id] = _JobClaim(
            token, asyncio.create_task(self._keep_claim(job, token), name=f"claim-{run.id}"),
        )

        logger.info(
            "pipeline_prepared",
            run_id=run.id,
            job=job,
            branch=branch,
            build_number=build_number,
            method=method.value,
            force_failure=force_failure,
        )
        return run

    async def execute(self, run: PipelineRun) -> PipelineRun:
        """Drive a prepared run to a terminal stage and release the job."""
        log = logger.bind(run_id=run.id, job=run.job, build_number=run.build.build_number)
        registered = False
        try:
            profile = self._resolver.resolve(run.branch)
            log.info("pipeline_resolved", environment=profile.environment.value, host=profile.host)

            try:
                await self._build_repo.append(run.build)
            except DuplicateBuildError as exc:
                run.begin_build()
                run.fail(ConfigurationError(str(exc)))
                return run
            registered = True
            run.begin_build()
            await self._checkpoint(run)

            if profile.requires_approval:
                resumed = await self._await_approval(run, profile)
                if resumed is None:
                    return run
                profile = resumed

            try:
                await asyncio.wait_for(
                    self._deliver(run, profile), timeout=self._run_timeout_seconds
                )
            except asyncio.TimeoutError:
                log.error("pipeline_timed_out", stage=run.stage.value)
                run.time_out(RunTimeoutError(
                    f"Run exceeded {self._run_timeout_seconds:.0f}s while {run.stage.value}"
                ))

            return run
        finally:
            await self._finish(run, registered)
            log.info(
                "pipeline_finished",
                stage=run.stage.value,
                error_kind=run.error_kind.value if run.error_kind else None,
                rollback_build_number=run.rollback_build_number,
            )

    async def _await_approval(
        self, run: PipelineRun, profile: ConnectionProfile
    ) -> ConnectionProfile | None:
        run.await_approval(profile.environment.value)
        await self._checkpoint(run)
        logger.info("approval_requested", run_id=run.id, environment=profile.environment.value)

        try:
            approver = await self._approval_gate.wait(run.id)
        except ApprovalRejectedError as exc:
            run.fail(exc)
            return None

        run.record_approval(approver)
        resumed = self._resolver.resolve(run.branch)
        logger.info(
            "approval_granted",
            run_id=run.id,
            approved_by=approver,
            environment=resumed.environment.value,
        )
        return resumed

    async def _deliver(self, run: PipelineRun, profile: ConnectionProfile) -> None:
        run.start_deploy(profile)
        await self._checkpoint(run)

        attempt = DeploymentAttempt(
            build_record=run.build,
            connection_profile=profile,
            method=run.build.method,
            container_transfer=self._container_transfer,
        )
        try:
            await self._executor.deploy(attempt)
        except ConfigurationError as exc:
            logger.error("deploy_misconfigured", run_id=run.id, error=str(exc))
            run.fail(exc)
            return
        except (ConnectivityError, DeliveryError) as exc:
            logger.error("deploy_failed", run_id=run.id, error=str(exc), error_kind=exc.kind.value)
            await self._roll_back(run, profile, exc)
            return

        run.start_probe()
        await self._checkpoint(run)

        via = profile if self._probe.via_remote else None
        url = profile.health_url(self._app.health_path, host="localhost" if via else None)
        result = await self._prober.probe(
            url, self._probe.timeout_seconds, self._probe.interval_seconds, via=via,
        )
        run.health = result

        if not result.healthy:
            await self._roll_back(run, profile, HealthTimeoutError(
                f"{url} not healthy within {self._probe.timeout_seconds:.0f}s"
            ))
            return
        if run.force_failure:
            # Test hook: fail a healthy deployment to exercise rollback.
            await self._roll_back(run, profile, ForcedFailureError(
                "Forced failure requested; deployment was healthy"
            ))
            return

        run.succeed(result)

    async def _roll_back(
        self, run: PipelineRun, profile: ConnectionProfile, error: DeployerError
    ) -> None:
        run.start_rollback(error)
        await self._checkpoint(run)

        try:
            restored = await self._rollback_manager.rollback(
                profile, run.build, self._container_transfer
            )
        except (NoPriorBuildError, RollbackError) as exc:
            logger.error(
                "rollback_failed",
                run_id=run.id,
                error=str(exc),
                error_kind=exc.kind.value,
            )
            run.fail_rollback(exc)
            return

        run.complete_rollback(restored)

    async def _finish(self, run: PipelineRun, registered: bool) -> None:
        """Settle the build record, persist the run and release the job."""
        try:
            if registered:
                await self._settle_build(run.build, run.succeeded)
            await self._checkpoint(run)
        finally:
            await self._drop_claim(run)

    def _check_artifact(self, method: DeliveryMethod, reference: str) -> None:
        if method != DeliveryMethod.JAR or self._artifact_root is None:
            return
        if not Path(reference).resolve().is_relative_to(self._artifact_root):
            raise ConfigurationError(f"Artifact {reference} is outside {self._artifact_root}")

    async def _keep_claim(self, job: str, token: str) -> None:
        while True:
            await asyncio.sleep(self._lock_refresh_seconds)
            if not await self._lock_service.extend(
                self.lock_key(job), token, ttl_seconds=self._lock_ttl_seconds
            ):
                logger.error("job_claim_lost", job=job)
                return

    async def _drop_claim(self, run: PipelineRun) -> None:
        claim = self._claims.pop(run.id, None)
        if claim is None:
            return
        claim.heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await claim.heartbeat
        await self._lock_service.release(self.lock_key(run.job), claim.token)

    async def _settle_build(self, build: BuildRecord, succeeded: bool) -> None:
        if build.result != BuildResult.PENDING:
            return
        if not succeeded:
            build.mark_failed()
        else:
            try:
                locator = await self._archive.store(build)
            except (DeployerError, OSError) as exc:
                # Without an archived blob the build can never be restored.
                logger.error(
                    "archive_failed",
                    job=build.job,
                    build_number=build.build_number,
                    error=str(exc),
                )
                build.mark_failed()
            else:
                build.mark_success(locator)
        await self._build_repo.update_result(build)
