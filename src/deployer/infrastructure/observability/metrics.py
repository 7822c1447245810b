"""Prometheus metrics configuration."""

from __future__ import annotations

from typing import Any

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
)


# Application info
APP_INFO = Info("deployer", "Branch deployer application info")
APP_INFO.info({
    "version": "1.0.0",
    "service": "branch-deployer",
})

# Pipeline metrics
PIPELINE_RUNS_TOTAL = Counter(
    "deployer_pipeline_runs_total",
    "Total number of finished pipeline runs",
    ["job", "outcome"],  # outcome: succeeded or the error kind
)

ACTIVE_RUNS = Gauge(
    "deployer_active_runs",
    "Number of pipeline runs in progress",
)

PENDING_APPROVALS = Gauge(
    "deployer_pending_approvals",
    "Number of runs waiting at the approval gate",
)

DEPLOYMENTS_STARTED = Counter(
    "deployer_deployments_started_total",
    "Deployments started, by environment and method",
    ["environment", "method"],
)

# Probe metrics
PROBE_ELAPSED = Histogram(
    "deployer_probe_elapsed_seconds",
    "Probe time until the service reported healthy",
    ["job"],
    buckets=[0, 5, 10, 30, 60, 120, 300],
)

# Rollback metrics
ROLLBACKS_TOTAL = Counter(
    "deployer_rollbacks_total",
    "Total number of rollbacks",
    ["job", "result"],  # result: started/completed/failed
)

# API metrics
API_REQUESTS_TOTAL = Counter(
    "deployer_api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status_code"],
)


async def record_pipeline_event(payload: dict[str, Any]) -> None:
    """Event handler translating pipeline events into metrics."""
    event_type = payload.get("event_type", "")
    job = payload.get("job", "")

    if event_type == "pipeline.started":
        ACTIVE_RUNS.inc()
    elif event_type == "pipeline.approval_requested":
        PENDING_APPROVALS.inc()
    elif event_type == "pipeline.approved":
        PENDING_APPROVALS.dec()
    elif event_type == "pipeline.deployment_started":
        DEPLOYMENTS_STARTED.labels(
            environment=payload.get("environment", ""), method=payload.get("method", ""),
        ).inc()
    elif event_type == "pipeline.succeeded":
        ACTIVE_RUNS.dec()
        PIPELINE_RUNS_TOTAL.labels(job=job, outcome="succeeded").inc()
        PROBE_ELAPSED.labels(job=job).observe(payload.get("elapsed_seconds", 0.0))
    elif event_type == "pipeline.failed":
        ACTIVE_RUNS.dec()
        if payload.get("error_kind") == "approval_rejected":
            PENDING_APPROVALS.dec()
        PIPELINE_RUNS_TOTAL.labels(job=job, outcome=payload.get("error_kind") or "unknown").inc()
    elif event_type == "pipeline.rollback_started":
        ROLLBACKS_TOTAL.labels(job=job, result="started").inc()
    elif event_type == "pipeline.rollback_completed":
        ROLLBACKS_TOTAL.labels(job=job, result="completed").inc()
    elif event_type == "pipeline.rollback_failed":
        ROLLBACKS_TOTAL.labels(job=job, result="failed").inc()


PIPELINE_EVENT_TYPES = (
    "pipeline.started",
    "pipeline.approval_requested",
    "pipeline.approved",
    "pipeline.deployment_started",
    "pipeline.succeeded",
    "pipeline.failed",
    "pipeline.rollback_started",
    "pipeline.rollback_completed",
    "pipeline.rollback_failed",
)
