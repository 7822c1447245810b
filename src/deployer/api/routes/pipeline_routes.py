"""Pipeline API routes."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Path,
    Query,
    status,
)

from deployer.api.dependencies.auth import require_permission
from deployer.api.dependencies.services import get_service_container, ServiceContainer
from deployer.api.schemas.pipeline_schemas import (
    BuildRecordResponse,
    HealthResponse,
    PipelineRunResponse,
    RejectRunRequest,
    TriggerRunRequest,
)
from deployer.domain.errors import (
    ApprovalNotPendingError,
    ConfigurationError,
    PipelineBusyError,
)
from deployer.domain.models.build import BuildRecord, JOB_NAME_PATTERN
from deployer.domain.models.pipeline import PipelineRun
from deployer.domain.models.user import Permission, User
from deployer.infrastructure.observability.tracing import get_tracer


logger = structlog.get_logger(__name__)

router = APIRouter(tags=["pipelines"])


def _to_response(run: PipelineRun) -> PipelineRunResponse:
    """Map domain model to API response."""
    health = None
    if run.health:
        health = HealthResponse(
            checked_url=run.health.checked_url,
            elapsed_seconds=run.health.elapsed_seconds,
            outcome=run.health.outcome,
            attempts=run.health.attempts,
        )
    return PipelineRunResponse(
        id=run.id,
        job=run.job,
        branch=run.branch,
        build_number=run.build.build_number,
        method=run.build.method,
        stage=run.stage,
        environment=run.profile.environment if run.profile else None,
        host=run.profile.host if run.profile else "",
        force_failure=run.force_failure,
        approved_by=run.approved_by,
        health=health,
        error_kind=run.error_kind,
        error_message=run.error_message,
        rollback_build_number=run.rollback_build_number,
        rollback_error=run.rollback_error,
        created_at=run.created_at,
        updated_at=run.updated_at,
        finished_at=run.finished_at,
    )


def _build_response(record: BuildRecord) -> BuildRecordResponse:
    return BuildRecordResponse(
        job=record.job,
        build_number=record.build_number,
        commit_id=record.commit_id,
        artifact_reference=record.artifact_reference,
        method=record.method,
        locator=record.locator,
        result=record.result,
        created_at=record.created_at,
    )


async def _execute_traced(container: ServiceContainer, run: PipelineRun) -> None:
    with get_tracer().start_as_current_span("pipeline.run") as span:
        span.set_attribute("pipeline.job", run.job)
        span.set_attribute("pipeline.build_number", run.build.build_number)
        await container.orchestrator.execute(run)
        span.set_attribute("pipeline.stage", run.stage.value)


async def _get_run(container: ServiceContainer, run_id: str) -> PipelineRun:
    run = await container.run_repo.get_by_id(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return run


@router.post(
    "/pipelines/{job}/runs",
    response_model=PipelineRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_run(
    job: Annotated[str, Path(pattern=JOB_NAME_PATTERN)],
    request: TriggerRunRequest,
    user: Annotated[User, Depends(require_permission(Permission.PIPELINE_TRIGGER))],
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> PipelineRunResponse:
    """Start a pipeline run; it proceeds in the background."""
    try:
        run = await container.orchestrator.prepare(
            job,
            request.branch,
            request.artifact_reference,
            commit_id=request.commit_id,
            method=request.method,
            build_number=request.build_number,
            force_failure=request.force_failure,
        )
    except PipelineBusyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    logger.info("run_triggered", run_id=run.id, job=job, triggered_by=user.username)
    container.spawn(_execute_traced(container, run), name=f"pipeline-{run.id}")
    return _to_response(run)


@router.get("/runs/{run_id}", response_model=PipelineRunResponse)
async def get_run(
    run_id: str,
    _user: Annotated[User, Depends(require_permission(Permission.PIPELINE_READ))],
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> PipelineRunResponse:
    """Get the current state of a run."""
    return _to_response(await _get_run(container, run_id))


@router.get("/runs/{run_id}/events", response_model=list[str])
async def get_run_events(
    run_id: str,
    _user: Annotated[User, Depends(require_permission(Permission.PIPELINE_READ))],
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> list[str]:
    """Event types published for a run, oldest first."""
    await _get_run(container, run_id)
    return container.event_publisher.timeline(run_id)


@router.post("/runs/{run_id}/approve", response_model=PipelineRunResponse)
async def approve_run(
    run_id: str,
    user: Annotated[User, Depends(require_permission(Permission.PIPELINE_APPROVE))],
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> PipelineRunResponse:
    """Release a production run waiting at the approval gate."""
    run = await _get_run(container, run_id)
    try:
        await container.approval_gate.approve(run_id, user.username)
    except ApprovalNotPendingError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _to_response(run)


@router.post("/runs/{run_id}/reject", response_model=PipelineRunResponse)
async def reject_run(
    run_id: str,
    request: RejectRunRequest,
    user: Annotated[User, Depends(require_permission(Permission.PIPELINE_APPROVE))],
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> PipelineRunResponse:
    """Reject a production run waiting at the approval gate."""
    run = await _get_run(container, run_id)
    try:
        await container.approval_gate.reject(run_id, user.username, request.reason)
    except ApprovalNotPendingError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _to_response(run)


@router.get("/pipelines/{job}/runs", response_model=list[PipelineRunResponse])
async def list_runs(
    job: Annotated[str, Path(pattern=JOB_NAME_PATTERN)],
    _user: Annotated[User, Depends(require_permission(Permission.PIPELINE_READ))],
    container: Annotated[ServiceContainer, Depends(get_service_container)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[PipelineRunResponse]:
    """List recent runs of a job."""
    return [_to_response(r) for r in await container.run_repo.list_by_job(job, limit=limit)]


@router.get("/pipelines/{job}/builds", response_model=list[BuildRecordResponse])
async def list_builds(
    job: Annotated[str, Path(pattern=JOB_NAME_PATTERN)],
    _user: Annotated[User, Depends(require_permission(Permission.PIPELINE_READ))],
    container: Annotated[ServiceContainer, Depends(get_service_container)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[BuildRecordResponse]:
    """Build lineage of a job, newest first."""
    return [_build_response(r) for r in await container.build_repo.list_by_job(job, limit=limit)]
