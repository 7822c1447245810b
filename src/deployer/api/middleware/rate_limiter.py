"""Per-client token bucket rate limiting."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from deployer.config import RateLimitSettings


UNLIMITED_PREFIXES = ("/health", "/metrics")


@dataclass
class _Bucket:
    tokens: float
    refilled_at: float


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """Allows ``burst_size`` requests at once, refilled at ``requests_per_minute``.

    Probes and scrapes under ``/health`` and ``/metrics`` are never limited.
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: RateLimitSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(app)
        self._settings = settings or RateLimitSettings()
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}

    def _take(self, client: str) -> float:
        """Consume one token; returns 0 or the seconds until one is available."""
        capacity = float(self._settings.burst_size)
        per_second = self._settings.requests_per_minute / 60.0
        now = self._clock()
        bucket = self._buckets.setdefault(client, _Bucket(tokens=capacity, refilled_at=now))
        bucket.tokens = min(capacity, bucket.tokens + (now - bucket.refilled_at) * per_second)
        bucket.refilled_at = now
        if bucket.tokens < 1.0:
            return (1.0 - bucket.tokens) / per_second
        bucket.tokens -= 1.0
        return 0.0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path.startswith(UNLIMITED_PREFIXES):
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        wait = self._take(client)
        if wait:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Please retry later."},
                headers={"Retry-After": str(max(1, math.ceil(wait)))},
            )
        return await call_next(request)
