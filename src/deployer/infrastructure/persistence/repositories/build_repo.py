"""Build record repository implementation."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from deployer.domain.models.build import BuildRecord, BuildResult
from deployer.domain.models.environment import DeliveryMethod
from deployer.domain.ports.repositories import BuildRecordRepository, DuplicateBuildError
from deployer.infrastructure.persistence.database import DatabaseManager
from deployer.infrastructure.persistence.models import BuildRecordORM


class SqlBuildRecordRepository(BuildRecordRepository):
    """SQLAlchemy implementation of BuildRecordRepository.

    Each operation runs in its own session. The (job, build_number) unique
    constraint makes ``append`` atomic across processes sharing the database.
    """

    def __init__(self, database: DatabaseManager) -> None:
        self._database = database

    async def append(self, record: BuildRecord) -> BuildRecord:
        try:
            async with self._database.session() as session:
                session.add(self._to_orm(record))
                await session.flush()
        except IntegrityError as exc:
            raise DuplicateBuildError(
                f"Build {record.job}#{record.build_number} already recorded"
            ) from exc
        return record

    async def get(self, job: str, build_number: int) -> BuildRecord | None:
        async with self._database.session() as session:
            result = await session.execute(
                select(BuildRecordORM).where(
                    BuildRecordORM.job == job,
                    BuildRecordORM.build_number == build_number,
                )
            )
            orm = result.scalar_one_or_none()
            return self._to_domain(orm) if orm else None

    async def update_result(self, record: BuildRecord) -> BuildRecord:
        async with self._database.session() as session:
            await session.execute(
                update(BuildRecordORM)
                .where(
                    BuildRecordORM.job == record.job,
                    BuildRecordORM.build_number == record.build_number,
                )
                .values(result=record.result.value, locator=record.locator)
            )
        return record

    async def latest_successful_below(self, job: str, build_number: int) -> BuildRecord | None:
        async with self._database.session() as session:
            result = await session.execute(
                select(BuildRecordORM)
                .where(
                    BuildRecordORM.job == job,
                    BuildRecordORM.result == BuildResult.SUCCESS.value,
                    BuildRecordORM.build_number < build_number,
                )
                .order_by(BuildRecordORM.build_number.desc())
                .limit(1)
            )
            orm = result.scalar_one_or_none()
            return self._to_domain(orm) if orm else None

    async def next_build_number(self, job: str) -> int:
        async with self._database.session() as session:
            result = await session.execute(
                select(func.max(BuildRecordORM.build_number)).where(BuildRecordORM.job == job)
            )
            return (result.scalar_one_or_none() or 0) + 1

    async def list_by_job(self, job: str, limit: int = 50) -> list[BuildRecord]:
        async with self._database.session() as session:
            result = await session.execute(
                select(BuildRecordORM)
                .where(BuildRecordORM.job == job)
                .order_by(BuildRecordORM.build_number.desc())
                .limit(limit)
            )
            return [self._to_domain(orm) for orm in result.scalars().all()]

    def _to_orm(self, record: BuildRecord) -> BuildRecordORM:
        return BuildRecordORM(
            id=record.id,
            job=record.job,
            build_number=record.build_number,
            commit_id=record.commit_id,
            artifact_reference=record.artifact_reference,
            method=record.method.value,
            locator=record.locator,
            result=record.result.value,
        )

    def _to_domain(self, orm: BuildRecordORM) -> BuildRecord:
        return BuildRecord(
            id=orm.id,
            job=orm.job,
            build_number=orm.build_number,
            commit_id=orm.commit_id or "",
            artifact_reference=orm.artifact_reference or "",
            method=DeliveryMethod(orm.method),
            locator=orm.locator or "",
            result=BuildResult(orm.result),
            created_at=orm.created_at,
            updated_at=orm.updated_at,
        )
