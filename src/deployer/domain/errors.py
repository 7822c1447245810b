"""Error taxonomy for deployment, probing and rollback."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification recorded on a failed pipeline run."""

    CONNECTIVITY = "connectivity"
    DELIVERY = "delivery"
    CONFIGURATION = "configuration"
    HEALTH_TIMEOUT = "health_timeout"
    FORCED_FAILURE = "forced_failure"
    NO_PRIOR_BUILD = "no_prior_build"
    ROLLBACK = "rollback"
    RUN_TIMEOUT = "run_timeout"
    APPROVAL_REJECTED = "approval_rejected"


class DeployerError(Exception):
    """Base class for all classified pipeline errors."""

    kind: ErrorKind
    exit_code: int = 1


class ConnectivityError(DeployerError):
    """Transport to the remote host could not be established."""

    kind = ErrorKind.CONNECTIVITY
    exit_code = 255


class DeliveryError(DeployerError):
    """Copy, transfer or process start failed on the target."""

    kind = ErrorKind.DELIVERY


class ConfigurationError(DeployerError):
    """A required reference is missing or does not exist locally."""

    kind = ErrorKind.CONFIGURATION


class HealthTimeoutError(DeployerError):
    """The health probe never succeeded within its budget."""

    kind = ErrorKind.HEALTH_TIMEOUT


class ForcedFailureError(DeployerError):
    """Healthy run deliberately failed to exercise the rollback path."""

    kind = ErrorKind.FORCED_FAILURE


class NoPriorBuildError(DeployerError):
    """Rollback requested but no earlier successful build exists."""

    kind = ErrorKind.NO_PRIOR_BUILD


class RollbackError(DeployerError):
    """Redeploying the previous build failed."""

    kind = ErrorKind.ROLLBACK


class RunTimeoutError(DeployerError):
    """The run-wide wall-clock budget was exhausted."""

    kind = ErrorKind.RUN_TIMEOUT


class ApprovalRejectedError(DeployerError):
    """The production approval gate was rejected."""

    kind = ErrorKind.APPROVAL_REJECTED


class PipelineBusyError(Exception):
    """Another run of the same job is still active."""


class ApprovalNotPendingError(Exception):
    """Raised when approving or rejecting a run that is not at the gate."""
