"""Repository port interfaces (hexagonal architecture)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from deployer.domain.models.build import BuildRecord
from deployer.domain.models.pipeline import PipelineRun
from deployer.domain.models.user import User


class BuildRecordRepository(ABC):
    """Port for the append-only build log of each job."""

    @abstractmethod
    async def append(self, record: BuildRecord) -> BuildRecord:
        """Append a new record. Raises DuplicateBuildError if the number exists."""

    @abstractmethod
    async def get(self, job: str, build_number: int) -> BuildRecord | None:
        """Retrieve a single record."""

    @abstractmethod
    async def update_result(self, record: BuildRecord) -> BuildRecord:
        """Persist the terminal result and locator of a record."""

    @abstractmethod
    async def latest_successful_below(self, job: str, build_number: int) -> BuildRecord | None:
        """Most recent successful record of ``job`` numbered below ``build_number``."""

    @abstractmethod
    async def next_build_number(self, job: str) -> int:
        """One more than the highest build number recorded for ``job``."""

    @abstractmethod
    async def list_by_job(self, job: str, limit: int = 50) -> list[BuildRecord]:
        """List records newest first."""


class PipelineRunRepository(ABC):
    """Port for pipeline run persistence."""

    @abstractmethod
    async def save(self, run: PipelineRun) -> PipelineRun:
        """Persist a run."""

    @abstractmethod
    async def get_by_id(self, run_id: str) -> PipelineRun | None:
        """Retrieve a run by ID."""

    @abstractmethod
    async def list_by_job(self, job: str, limit: int = 50) -> list[PipelineRun]:
        """List runs of a job, newest first."""

    @abstractmethod
    async def update(self, run: PipelineRun) -> PipelineRun:
        """Update an existing run."""


class UserRepository(ABC):
    """Port for user persistence."""

    @abstractmethod
    async def save(self, user: User) -> User:
        """Persist a user."""

    @abstractmethod
    async def get_by_username(self, username: str) -> User | None:
        """Retrieve a user by username."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> User | None:
        """Retrieve a user by id."""

    @abstractmethod
    async def count(self) -> int:
        """Number of registered users."""


class DuplicateBuildError(Exception):
    """Raised when a build number is appended twice for a job."""
