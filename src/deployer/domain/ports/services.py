"""Service port interfaces (hexagonal architecture)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from deployer.domain.models.build import BuildRecord
from deployer.domain.models.environment import ConnectionProfile
from deployer.domain.models.remote import CommandResult, RemoteCommand


Sleeper = Callable[[float], Awaitable[None]]


class RemoteCommandChannel(ABC):
    """Port for executing commands on, and copying files to, a target host."""

    @abstractmethod
    async def check(self, profile: ConnectionProfile) -> None:
        """Pre-flight round trip. Raises ConnectivityError when unreachable."""

    @abstractmethod
    async def run(self, profile: ConnectionProfile, command: RemoteCommand) -> CommandResult:
        """Run a command remotely. Raises ConnectivityError on transport failure."""

    @abstractmethod
    async def copy(self, profile: ConnectionProfile, local_path: Path, remote_path: str) -> None:
        """Copy a local file to the host. Raises DeliveryError on failure."""


class LocalCommandRunner(ABC):
    """Port for commands that run on the orchestrating host."""

    @abstractmethod
    async def run(self, argv: list[str]) -> CommandResult:
        """Run a local command and capture its output."""


class ArtifactArchive(ABC):
    """Port for the per-build artifact store, keyed by build number."""

    @abstractmethod
    async def store(self, record: BuildRecord) -> str:
        """Archive the record's artifact and return its locator."""

    @abstractmethod
    async def fetch(self, job: str, build_number: int) -> str:
        """Return a deployable reference for an archived build.

        Raises ConfigurationError when nothing is archived for that build.
        """


class HealthTransport(ABC):
    """Port for issuing one unauthenticated health read."""

    @abstractmethod
    async def read(self, url: str, timeout_seconds: float) -> tuple[bool, str]:
        """Return (is_2xx, body). Connection errors count as unhealthy."""


class ApprovalGate(ABC):
    """Port for the production human-approval signal."""

    @abstractmethod
    async def wait(self, run_id: str) -> str:
        """Suspend until approved and return the approver.

        Raises ApprovalRejectedError when the run is rejected.
        """

    @abstractmethod
    async def approve(self, run_id: str, approver: str) -> None:
        """Release a waiting run."""

    @abstractmethod
    async def reject(self, run_id: str, approver: str, reason: str = "") -> None:
        """Reject a waiting run."""

    @abstractmethod
    def is_waiting(self, run_id: str) -> bool:
        """Check whether a run is suspended at the gate."""


class CredentialProvider(ABC):
    """Port for resolving a ready-to-use authentication handle."""

    @abstractmethod
    def auth_handle_for(self, environment: str) -> str:
        """Return the auth handle (e.g. private key path) for an environment."""


class EventPublisher(ABC):
    """Port for publishing domain events."""

    @abstractmethod
    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        """Publish an event."""


class DistributedLock(ABC):
    """Port for job-level mutual exclusion.

    ``acquire`` hands back a holder token; only that token can extend or
    release the claim, so a holder whose claim expired cannot free its
    successor's.
    """

    @abstractmethod
    async def acquire(self, resource_id: str, ttl_seconds: int = 30) -> str | None:
        """Acquire a lock without waiting; None when it is held."""

    @abstractmethod
    async def release(self, resource_id: str, token: str) -> bool:
        """Release a lock if ``token`` still holds it."""

    @abstractmethod
    async def extend(self, resource_id: str, token: str, ttl_seconds: int = 30) -> bool:
        """Push the expiry of a held lock ``ttl_seconds`` into the future."""

    @abstractmethod
    async def is_locked(self, resource_id: str) -> bool:
        """Check if a resource is locked."""
