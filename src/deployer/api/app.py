"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from deployer.api.dependencies.services import ServiceContainer
from deployer.api.middleware.correlation import CorrelationIdMiddleware
from deployer.api.middleware.rate_limiter import RateLimiterMiddleware
from deployer.api.routes import (
    auth_routes,
    health_routes,
    pipeline_routes,
)
from deployer.config import get_settings, Settings
from deployer.infrastructure.observability.metrics import API_REQUESTS_TOTAL
from deployer.infrastructure.observability.tracing import setup_tracing


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()
    logger.info(
        "application_starting",
        environment=settings.environment.value,
        debug=settings.debug,
    )
    setup_tracing(settings.observability)

    container = ServiceContainer.get_instance()
    await container.startup()

    yield

    logger.info("application_shutting_down")
    await container.shutdown()
    logger.info("application_shutdown_complete")


async def _count_requests(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    response = await call_next(request)
    route = request.scope.get("route")
    API_REQUESTS_TOTAL.labels(
        method=request.method,
        endpoint=getattr(route, "path", "unmatched"),
        status_code=str(response.status_code),
    ).inc()
    return response


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Branch Deployer",
        description="Branch-driven deployment pipeline with health probing and rollback",
        version="1.0.0",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    # Middleware (order matters - first added = outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(RateLimiterMiddleware, settings=settings.rate_limit)
    if settings.observability.metrics_enabled:
        app.middleware("http")(_count_requests)

    # Routes
    app.include_router(health_routes.router)
    app.include_router(auth_routes.router, prefix=settings.api_prefix)
    app.include_router(pipeline_routes.router, prefix=settings.api_prefix)

    return app
