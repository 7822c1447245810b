"""Domain models package."""

from deployer.domain.models.base import (
    AggregateRoot,
    DomainEntity,
    DomainEvent,
    generate_id,
    utc_now,
    ValueObject,
)
from deployer.domain.models.build import (
    BuildAlreadyFinishedError,
    BuildRecord,
    BuildResult,
)
from deployer.domain.models.environment import (
    ConnectionProfile,
    ContainerTransfer,
    DEFAULT_BRANCH_MAP,
    DEFAULT_ENVIRONMENT_PROFILES,
    DeliveryMethod,
    EnvironmentName,
    EnvironmentProfile,
)
from deployer.domain.models.health import HealthCheckResult, HealthOutcome
from deployer.domain.models.remote import CommandResult, RemoteCommand, StopOutcome
from deployer.domain.models.user import (
    Permission,
    Role,
    ROLE_PERMISSIONS,
    User,
)


__all__ = [
    "AggregateRoot",
    "BuildAlreadyFinishedError",
    "BuildRecord",
    "BuildResult",
    "CommandResult",
    "ConnectionProfile",
    "ContainerTransfer",
    "DEFAULT_BRANCH_MAP",
    "DEFAULT_ENVIRONMENT_PROFILES",
    "DeliveryMethod",
    "DomainEntity",
    "DomainEvent",
    "EnvironmentName",
    "EnvironmentProfile",
    "HealthCheckResult",
    "HealthOutcome",
    "Permission",
    "ROLE_PERMISSIONS",
    "RemoteCommand",
    "Role",
    "StopOutcome",
    "User",
    "ValueObject",
    "generate_id",
    "utc_now",
]
