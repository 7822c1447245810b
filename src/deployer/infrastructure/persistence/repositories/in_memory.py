"""In-memory repository implementations for development and testing."""

from __future__ import annotations

import asyncio

from deployer.domain.models.build import BuildRecord, BuildResult
from deployer.domain.models.pipeline import PipelineRun
from deployer.domain.models.user import User
from deployer.domain.ports.repositories import (
    BuildRecordRepository,
    DuplicateBuildError,
    PipelineRunRepository,
    UserRepository,
)


# Module-level shared stores enable cross-instance access in the demo API
# while keeping a single clear point for test isolation.
_build_store: dict[tuple[str, int], BuildRecord] = {}
_run_store: dict[str, PipelineRun] = {}
_user_store: dict[str, User] = {}


class InMemoryBuildRecordRepository(BuildRecordRepository):
    """In-memory build log.

    Records are copied in and out so callers cannot edit history without
    going through ``update_result``.
    """

    def __init__(self) -> None:
        self._store = _build_store
        self._lock = asyncio.Lock()

    async def append(self, record: BuildRecord) -> BuildRecord:
        async with self._lock:
            key = (record.job, record.build_number)
            if key in self._store:
                raise DuplicateBuildError(
                    f"Build {record.job}#{record.build_number} already recorded"
                )
            self._store[key] = record.model_copy(deep=True)
        return record

    async def get(self, job: str, build_number: int) -> BuildRecord | None:
        record = self._store.get((job, build_number))
        return record.model_copy(deep=True) if record else None

    async def update_result(self, record: BuildRecord) -> BuildRecord:
        async with self._lock:
            key = (record.job, record.build_number)
            stored = self._store.get(key)
            if stored is None:
                raise KeyError(f"Build {record.job}#{record.build_number} not recorded")
            self._store[key] = stored.model_copy(update={
                "result": record.result,
                "locator": record.locator,
                "updated_at": record.updated_at,
            })
        return record

    async def latest_successful_below(self, job: str, build_number: int) -> BuildRecord | None:
        candidates = [
            r for (j, n), r in self._store.items()
            if j == job and n < build_number and r.result == BuildResult.SUCCESS
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.build_number).model_copy(deep=True)

    async def next_build_number(self, job: str) -> int:
        numbers = [n for (j, n) in self._store if j == job]
        return max(numbers, default=0) + 1

    async def list_by_job(self, job: str, limit: int = 50) -> list[BuildRecord]:
        items = [r for (j, _), r in self._store.items() if j == job]
        items.sort(key=lambda r: r.build_number, reverse=True)
        return [r.model_copy(deep=True) for r in items[:limit]]

    @classmethod
    def clear(cls) -> None:
        """Clear the shared store. Used by test fixtures for isolation."""
        _build_store.clear()


class InMemoryPipelineRunRepository(PipelineRunRepository):
    """In-memory pipeline run repository for testing and demo use."""

    def __init__(self) -> None:
        self._store = _run_store

    async def save(self, run: PipelineRun) -> PipelineRun:
        self._store[run.id] = run
        return run

    async def get_by_id(self, run_id: str) -> PipelineRun | None:
        return self._store.get(run_id)

    async def list_by_job(self, job: str, limit: int = 50) -> list[PipelineRun]:
        items = [r for r in self._store.values() if r.job == job]
        return sorted(items, key=lambda r: r.created_at, reverse=True)[:limit]

    async def update(self, run: PipelineRun) -> PipelineRun:
        self._store[run.id] = run
        return run

    @classmethod
    def clear(cls) -> None:
        """Clear the shared store. Used by test fixtures for isolation."""
        _run_store.clear()


class InMemoryUserRepository(UserRepository):
    """In-memory user repository for testing and demo use."""

    def __init__(self) -> None:
        self._store = _user_store

    async def save(self, user: User) -> User:
        self._store[user.id] = user
        return user

    async def get_by_id(self, user_id: str) -> User | None:
        return self._store.get(user_id)

    async def get_by_username(self, username: str) -> User | None:
        for user in self._store.values():
            if user.username == username:
                return user
        return None

    async def count(self) -> int:
        return len(self._store)

    @classmethod
    def clear(cls) -> None:
        """Clear the shared store. Used by test fixtures for isolation."""
        _user_store.clear()
