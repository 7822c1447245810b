"""Build log kept in a JSON file, for the command line."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import structlog

from deployer.domain.models.build import BuildRecord, BuildResult
from deployer.domain.ports.repositories import BuildRecordRepository, DuplicateBuildError


logger = structlog.get_logger(__name__)


class FileBuildRecordRepository(BuildRecordRepository):
    """Build log that survives between command line invocations.

    The whole log is one JSON document, rewritten through a temporary file
    and ``os.replace`` so a crash never leaves it half written. Writers in
    one process are serialized; separate processes must not run the same
    job at once (use the Redis lock for that).
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[tuple[str, int], BuildRecord]:
        if not self._path.exists():
            return {}
        document = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        records = [BuildRecord.model_validate(item) for item in document.get("builds", [])]
        return {(r.job, r.build_number): r for r in records}

    def _save(self, records: dict[tuple[str, int], BuildRecord]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        ordered = sorted(records.values(), key=lambda r: (r.job, r.build_number))
        document = {"builds": [r.model_dump(mode="json") for r in ordered]}
        staging = self._path.with_name(f".{self._path.name}.tmp")
        staging.write_text(json.dumps(document, indent=2), encoding="utf-8")
        os.replace(staging, self._path)

    async def _records(self) -> dict[tuple[str, int], BuildRecord]:
        return await asyncio.to_thread(self._load)

    async def append(self, record: BuildRecord) -> BuildRecord:
        async with self._lock:
            records = await self._records()
            key = (record.job, record.build_number)
            if key in records:
                raise DuplicateBuildError(
                    f"Build {record.job}#{record.build_number} already recorded"
                )
            records[key] = record.model_copy(deep=True)
            await asyncio.to_thread(self._save, records)
        logger.debug("build_appended", job=record.job, build_number=record.build_number)
        return record

    async def get(self, job: str, build_number: int) -> BuildRecord | None:
        return (await self._records()).get((job, build_number))

    async def update_result(self, record: BuildRecord) -> BuildRecord:
        async with self._lock:
            records = await self._records()
            key = (record.job, record.build_number)
            stored = records.get(key)
            if stored is None:
                raise KeyError(f"Build {record.job}#{record.build_number} not recorded")
            records[key] = stored.model_copy(update={
                "result": record.result,
                "locator": record.locator,
                "updated_at": record.updated_at,
            })
            await asyncio.to_thread(self._save, records)
        return record

    async def latest_successful_below(self, job: str, build_number: int) -> BuildRecord | None:
        candidates = [
            r for (j, n), r in (await self._records()).items()
            if j == job and n < build_number and r.result == BuildResult.SUCCESS
        ]
        return max(candidates, key=lambda r: r.build_number, default=None)

    async def next_build_number(self, job: str) -> int:
        numbers = [n for (j, n) in await self._records() if j == job]
        return max(numbers, default=0) + 1

    async def list_by_job(self, job: str, limit: int = 50) -> list[BuildRecord]:
        items = [r for (j, _), r in (await self._records()).items() if j == job]
        items.sort(key=lambda r: r.build_number, reverse=True)
        return items[:limit]
