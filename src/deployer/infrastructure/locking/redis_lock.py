"""Redis distributed lock implementation."""

from __future__ import annotations

import uuid

import redis.asyncio
import structlog

from deployer.config import RedisSettings
from deployer.domain.ports.services import DistributedLock


logger = structlog.get_logger(__name__)

# Both scripts act only while the key still holds the caller's token.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


def _key(resource_id: str) -> str:
    return f"lock:{resource_id}"


class RedisDistributedLock(DistributedLock):
    """Redis implementation of distributed locking using SET NX."""

    def __init__(self, client: redis.asyncio.Redis) -> None:
        self._client = client

    async def acquire(self, resource_id: str, ttl_seconds: int = 30) -> str | None:
        token = str(uuid.uuid4())
        if await self._client.set(_key(resource_id), token, nx=True, ex=ttl_seconds):
            logger.debug("lock_acquired", resource_id=resource_id, ttl=ttl_seconds)
            return token
        logger.debug("lock_not_acquired", resource_id=resource_id)
        return None

    async def release(self, resource_id: str, token: str) -> bool:
        if await self._client.eval(RELEASE_SCRIPT, 1, _key(resource_id), token):
            logger.debug("lock_released", resource_id=resource_id)
            return True
        logger.warning("lock_not_held", resource_id=resource_id)
        return False

    async def extend(self, resource_id: str, token: str, ttl_seconds: int = 30) -> bool:
        result = await self._client.eval(
            EXTEND_SCRIPT, 1, _key(resource_id), token, str(ttl_seconds)
        )
        return bool(result)

    async def is_locked(self, resource_id: str) -> bool:
        return bool(await self._client.exists(_key(resource_id)))


def create_redis_client(settings: RedisSettings) -> redis.asyncio.Redis:
    """Factory function to create a Redis client."""
    return redis.asyncio.Redis.from_url(
        settings.url,
        decode_responses=False,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
        retry_on_timeout=True,
    )
