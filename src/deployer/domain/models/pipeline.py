"""Pipeline run aggregate root with its stage machine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from deployer.domain.errors import DeployerError, ErrorKind
from deployer.domain.events.pipeline_events import (
    ApprovalRequested,
    DeploymentStarted,
    PipelineApproved,
    PipelineFailed,
    PipelineStarted,
    PipelineSucceeded,
    RollbackCompleted,
    RollbackFailed,
    RollbackStarted,
)
from deployer.domain.models.base import AggregateRoot, utc_now, ValueObject
from deployer.domain.models.build import BuildRecord
from deployer.domain.models.environment import (
    ConnectionProfile,
    ContainerTransfer,
    DeliveryMethod,
)
from deployer.domain.models.health import HealthCheckResult


class PipelineStage(str, Enum):
    """Pipeline run lifecycle states."""

    RESOLVING = "resolving"
    BUILDING = "building"
    AWAITING_APPROVAL = "awaiting_approval"
    DEPLOYING = "deploying"
    PROBING = "probing"
    SUCCEEDED = "succeeded"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


# State machine transitions
VALID_TRANSITIONS: dict[PipelineStage, set[PipelineStage]] = {
    PipelineStage.RESOLVING: {PipelineStage.BUILDING, PipelineStage.FAILED},
    PipelineStage.BUILDING: {
        PipelineStage.AWAITING_APPROVAL, PipelineStage.DEPLOYING, PipelineStage.FAILED,
    },
    PipelineStage.AWAITING_APPROVAL: {PipelineStage.DEPLOYING, PipelineStage.FAILED},
    PipelineStage.DEPLOYING: {
        PipelineStage.PROBING, PipelineStage.ROLLING_BACK,
        PipelineStage.FAILED, PipelineStage.TIMED_OUT,
    },
    PipelineStage.PROBING: {
        PipelineStage.SUCCEEDED, PipelineStage.ROLLING_BACK, PipelineStage.TIMED_OUT,
    },
    PipelineStage.ROLLING_BACK: {
        PipelineStage.ROLLED_BACK, PipelineStage.ROLLBACK_FAILED, PipelineStage.TIMED_OUT,
    },
    PipelineStage.SUCCEEDED: set(),
    PipelineStage.ROLLED_BACK: set(),
    PipelineStage.ROLLBACK_FAILED: set(),
    PipelineStage.FAILED: set(),
    PipelineStage.TIMED_OUT: set(),
}

TERMINAL_STAGES = frozenset(
    stage for stage, targets in VALID_TRANSITIONS.items() if not targets
)

# Stages during which the remote target is being written to.
MUTATING_STAGES = frozenset({
    PipelineStage.DEPLOYING, PipelineStage.PROBING, PipelineStage.ROLLING_BACK,
})


class DeploymentAttempt(ValueObject):
    """One deploy-and-verify cycle. Never persisted."""

    build_record: BuildRecord
    connection_profile: ConnectionProfile
    method: DeliveryMethod
    container_transfer: ContainerTransfer = ContainerTransfer.REGISTRY

    @property
    def reference(self) -> str:
        return self.build_record.locator or self.build_record.artifact_reference


class PipelineRun(AggregateRoot):
    """A single end-to-end run of one job for one build.

    The run is the explicit context threaded through every stage. The
    connection profile is set when deploying starts and is never mutated
    afterwards.
    """

    job: str
    branch: str = ""
    build: BuildRecord
    stage: PipelineStage = PipelineStage.RESOLVING
    force_failure: bool = False
    profile: ConnectionProfile | None = None
    health: HealthCheckResult | None = None
    approved_by: str = ""
    error_kind: ErrorKind | None = None
    error_message: str = ""
    rollback_build_number: int | None = None
    rollback_error: str = ""
    rollback_error_kind: ErrorKind | None = None
    finished_at: datetime | None = None

    def _transition_to(self, new_stage: PipelineStage) -> None:
        """Validate and execute stage transition."""
        valid = VALID_TRANSITIONS.get(self.stage, set())
        if new_stage not in valid:
            raise InvalidStateTransitionError(
                f"Cannot transition from {self.stage.value} to {new_stage.value}. "
                f"Valid transitions: {sorted(s.value for s in valid)}"
            )
        self.stage = new_stage
        if new_stage in TERMINAL_STAGES:
            self.finished_at = utc_now()
        self.touch()

    def begin_build(self) -> None:
        self._transition_to(PipelineStage.BUILDING)
        self.add_event(PipelineStarted(
            run_id=self.id,
            job=self.job,
            build_number=self.build.build_number,
            branch=self.branch,
        ))

    def await_approval(self, environment: str) -> None:
        self._transition_to(PipelineStage.AWAITING_APPROVAL)
        self.add_event(ApprovalRequested(
            run_id=self.id, job=self.job, environment=environment,
        ))

    def record_approval(self, approved_by: str) -> None:
        """Note who released the approval gate; the stage moves on deploy."""
        if self.stage != PipelineStage.AWAITING_APPROVAL:
            raise InvalidStateTransitionError(
                f"Run {self.id} is not awaiting approval ({self.stage.value})"
            )
        self.approved_by = approved_by
        self.add_event(PipelineApproved(
            run_id=self.id, job=self.job, approved_by=approved_by,
        ))

    def start_deploy(self, profile: ConnectionProfile) -> None:
        self._transition_to(PipelineStage.DEPLOYING)
        self.profile = profile
        self.add_event(DeploymentStarted(
            run_id=self.id,
            job=self.job,
            environment=profile.environment.value,
            host=profile.host,
            method=self.build.method.value,
        ))

    def start_probe(self) -> None:
        self._transition_to(PipelineStage.PROBING)

    def succeed(self, health: HealthCheckResult) -> None:
        self.health = health
        self._transition_to(PipelineStage.SUCCEEDED)
        self.add_event(PipelineSucceeded(
            run_id=self.id,
            job=self.job,
            build_number=self.build.build_number,
            elapsed_seconds=health.elapsed_seconds,
        ))

    def start_rollback(self, error: DeployerError) -> None:
        """Record the original failure and move to rolling back."""
        self._record_error(error)
        self._transition_to(PipelineStage.ROLLING_BACK)
        self.add_event(RollbackStarted(
            run_id=self.id, job=self.job, reason=self.error_message,
        ))

    def complete_rollback(self, restored: BuildRecord) -> None:
        self.rollback_build_number = restored.build_number
        self._transition_to(PipelineStage.ROLLED_BACK)
        self.add_event(RollbackCompleted(
            run_id=self.id,
            job=self.job,
            restored_build_number=restored.build_number,
        ))
        self._emit_failed()

    def fail_rollback(self, error: DeployerError) -> None:
        """Rollback could not restore service; the original error is kept."""
        self.rollback_error = str(error)
        self.rollback_error_kind = error.kind
        self._transition_to(PipelineStage.ROLLBACK_FAILED)
        self.add_event(RollbackFailed(
            run_id=self.id, job=self.job, error_message=self.rollback_error,
        ))
        self._emit_failed()

    def fail(self, error: DeployerError) -> None:
        """End the run without rollback."""
        self._record_error(error)
        self._transition_to(PipelineStage.FAILED)
        self._emit_failed()

    def time_out(self, error: DeployerError) -> None:
        if self.error_kind is None:
            self._record_error(error)
        else:
            self.rollback_error = self.rollback_error or str(error)
        self._transition_to(PipelineStage.TIMED_OUT)
        self._emit_failed()

    def _record_error(self, error: DeployerError) -> None:
        self.error_kind = error.kind
        self.error_message = str(error)

    def _emit_failed(self) -> None:
        self.add_event(PipelineFailed(
            run_id=self.id,
            job=self.job,
            error_kind=self.error_kind.value if self.error_kind else "",
            error_message=self.error_message,
        ))

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def succeeded(self) -> bool:
        return self.stage == PipelineStage.SUCCEEDED

    @property
    def exit_code(self) -> int:
        """Process exit status for command-line callers."""
        if self.succeeded:
            return 0
        if self.error_kind == ErrorKind.CONNECTIVITY:
            return 255
        return 1


class InvalidStateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
