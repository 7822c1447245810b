"""API schemas for pipeline endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from deployer.domain.errors import ErrorKind
from deployer.domain.models.build import BuildResult
from deployer.domain.models.environment import DeliveryMethod, EnvironmentName
from deployer.domain.models.health import HealthOutcome
from deployer.domain.models.pipeline import PipelineStage


class TriggerRunRequest(BaseModel):
    branch: str = ""
    artifact_reference: str = Field(..., min_length=1)
    commit_id: str = ""
    method: DeliveryMethod | None = None
    build_number: int | None = Field(default=None, ge=1)
    force_failure: bool = False


class RejectRunRequest(BaseModel):
    reason: str = Field(default="", max_length=1000)


class HealthResponse(BaseModel):
    checked_url: str
    elapsed_seconds: float
    outcome: HealthOutcome
    attempts: int


class PipelineRunResponse(BaseModel):
    id: str
    job: str
    branch: str
    build_number: int
    method: DeliveryMethod
    stage: PipelineStage
    environment: EnvironmentName | None = None
    host: str = ""
    force_failure: bool = False
    approved_by: str = ""
    health: HealthResponse | None = None
    error_kind: ErrorKind | None = None
    error_message: str = ""
    rollback_build_number: int | None = None
    rollback_error: str = ""
    created_at: datetime
    updated_at: datetime
    finished_at: datetime | None = None


class BuildRecordResponse(BaseModel):
    job: str
    build_number: int
    commit_id: str
    artifact_reference: str
    method: DeliveryMethod
    locator: str
    result: BuildResult
    created_at: datetime
