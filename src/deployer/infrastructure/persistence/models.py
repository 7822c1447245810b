"""SQLAlchemy ORM models."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    func,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class BuildRecordORM(Base):
    __tablename__ = "build_records"

    id = Column(String(36), primary_key=True)
    job = Column(String(255), nullable=False)
    build_number = Column(Integer, nullable=False)
    commit_id = Column(String(64), nullable=False, default="")
    artifact_reference = Column(Text, nullable=False, default="")
    method = Column(String(20), nullable=False)
    locator = Column(Text, nullable=False, default="")
    result = Column(String(20), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("job", "build_number", name="uq_build_records_job_number"),
        Index("ix_build_records_job_result_number", "job", "result", "build_number"),
    )
