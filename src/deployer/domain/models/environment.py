"""Environment and connection profile value objects."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from deployer.domain.models.base import ValueObject


class EnvironmentName(str, Enum):
    """Closed set of deployment environments."""

    TEST = "test"
    UAT = "uat"
    STAGE = "stage"
    PROD = "prod"


class DeliveryMethod(str, Enum):
    """How a new version gets running on the target."""

    JAR = "jar"
    CONTAINER = "container"


class ContainerTransfer(str, Enum):
    """Container delivery sub-strategies."""

    REGISTRY = "registry"
    IMAGE_TRANSFER = "image_transfer"


# Hosts served without ssh; an empty host means "this machine".
LOCAL_HOSTS = frozenset({"", "local", "localhost", "127.0.0.1", "::1"})


class EnvironmentProfile(ValueObject):
    """Static description of one environment's target host."""

    name: EnvironmentName
    host: str
    port: int = 8080
    ssh_port: int = 22
    principal: str = "deploy"
    deploy_method: DeliveryMethod = DeliveryMethod.JAR
    runtime_profile: str = ""
    requires_approval: bool = False


class ConnectionProfile(ValueObject):
    """Resolved, read-only target for a single pipeline run."""

    environment: EnvironmentName
    host: str
    port: int
    principal: str
    auth_handle: str = Field(default="", repr=False)
    ssh_port: int = 22
    deploy_method: DeliveryMethod = DeliveryMethod.JAR
    runtime_profile: str = ""
    requires_approval: bool = False

    @property
    def destination(self) -> str:
        return f"{self.principal}@{self.host}"

    @property
    def is_local(self) -> bool:
        """True when the target is the machine running the pipeline."""
        return self.host in LOCAL_HOSTS

    def health_url(self, path: str, host: str | None = None) -> str:
        """Build the service URL for ``path`` on this profile's port."""
        if not path.startswith("/"):
            path = f"/{path}"
        target = host or ("localhost" if self.is_local else self.host)
        return f"http://{target}:{self.port}{path}"


DEFAULT_BRANCH_MAP: dict[str, EnvironmentName] = {
    "main": EnvironmentName.PROD,
    "release": EnvironmentName.STAGE,
    "uat": EnvironmentName.UAT,
    "develop": EnvironmentName.TEST,
}

DEFAULT_ENVIRONMENT_PROFILES: dict[EnvironmentName, EnvironmentProfile] = {
    EnvironmentName.TEST: EnvironmentProfile(
        name=EnvironmentName.TEST, host="10.0.0.10", runtime_profile="dev",
    ),
    EnvironmentName.UAT: EnvironmentProfile(
        name=EnvironmentName.UAT, host="10.0.1.10", runtime_profile="uat",
    ),
    EnvironmentName.STAGE: EnvironmentProfile(
        name=EnvironmentName.STAGE, host="10.0.2.10", runtime_profile="staging",
        deploy_method=DeliveryMethod.CONTAINER,
    ),
    EnvironmentName.PROD: EnvironmentProfile(
        name=EnvironmentName.PROD, host="10.0.3.10", runtime_profile="prod",
        deploy_method=DeliveryMethod.CONTAINER, requires_approval=True,
    ),
}
