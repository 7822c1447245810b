"""Pipeline run domain events."""

from __future__ import annotations

from deployer.domain.models.base import DomainEvent


class PipelineStarted(DomainEvent):
    """Emitted when a run registers its pending build."""

    build_number: int
    branch: str = ""
    event_type: str = "pipeline.started"


class ApprovalRequested(DomainEvent):
    """Emitted when a production run suspends for approval."""

    environment: str
    event_type: str = "pipeline.approval_requested"


class PipelineApproved(DomainEvent):
    approved_by: str
    event_type: str = "pipeline.approved"


class DeploymentStarted(DomainEvent):
    environment: str
    host: str
    method: str
    event_type: str = "pipeline.deployment_started"


class PipelineSucceeded(DomainEvent):
    build_number: int
    elapsed_seconds: float = 0.0
    event_type: str = "pipeline.succeeded"


class RollbackStarted(DomainEvent):
    """Emitted when a failed deploy or probe triggers rollback."""

    reason: str
    event_type: str = "pipeline.rollback_started"


class RollbackCompleted(DomainEvent):
    restored_build_number: int
    event_type: str = "pipeline.rollback_completed"


class RollbackFailed(DomainEvent):
    error_message: str
    event_type: str = "pipeline.rollback_failed"


class PipelineFailed(DomainEvent):
    """Emitted for every run that does not end in success."""

    error_kind: str
    error_message: str
    event_type: str = "pipeline.failed"
