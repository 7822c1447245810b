"""Domain events package."""

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


__all__ = [
    "ApprovalRequested",
    "DeploymentStarted",
    "PipelineApproved",
    "PipelineFailed",
    "PipelineStarted",
    "PipelineSucceeded",
    "RollbackCompleted",
    "RollbackFailed",
    "RollbackStarted",
]
