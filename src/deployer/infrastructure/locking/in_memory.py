"""Single-process lock for the command line and tests."""

from __future__ import annotations

import time
import uuid
from typing import NamedTuple

import structlog

from deployer.domain.ports.services import DistributedLock


logger = structlog.get_logger(__name__)


class _Claim(NamedTuple):
    token: str
    expires_at: float


class InMemoryDistributedLock(DistributedLock):
    """Non-blocking, TTL-bounded lock held in a dict.

    Only safe within one event loop; use RedisDistributedLock when several
    API workers share jobs.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._claims: dict[str, _Claim] = {}

    def _live(self, resource_id: str) -> _Claim | None:
        claim = self._claims.get(resource_id)
        if claim is None or claim.expires_at <= self._clock():
            return None
        return claim

    async def acquire(self, resource_id: str, ttl_seconds: int = 30) -> str | None:
        if self._live(resource_id) is not None:
            logger.debug("lock_not_acquired", resource_id=resource_id)
            return None
        token = str(uuid.uuid4())
        self._claims[resource_id] = _Claim(token, self._clock() + ttl_seconds)
        logger.debug("lock_acquired", resource_id=resource_id, ttl=ttl_seconds)
        return token

    async def release(self, resource_id: str, token: str) -> bool:
        claim = self._claims.get(resource_id)
        if claim is None or claim.token != token:
            logger.warning("lock_not_held", resource_id=resource_id)
            return False
        del self._claims[resource_id]
        logger.debug("lock_released", resource_id=resource_id)
        return True

    async def extend(self, resource_id: str, token: str, ttl_seconds: int = 30) -> bool:
        claim = self._live(resource_id)
        if claim is None or claim.token != token:
            return False
        self._claims[resource_id] = _Claim(token, self._clock() + ttl_seconds)
        return True

    async def is_locked(self, resource_id: str) -> bool:
        return self._live(resource_id) is not None
