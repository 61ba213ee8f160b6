"""Redis async client backing the tenant registry store.

Provides helper methods wrapping raw Redis commands so callers never need
to handle redis.exceptions directly. All connection/command errors are
caught and re-raised as RedisConnectionError.
"""

import json
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import RedisError

from tenantgate.core.config import settings
from tenantgate.core.exceptions import RedisConnectionError

logger = structlog.get_logger(__name__)

_client: Redis = redis_from_url(
    settings.redis_url,
    decode_responses=True,
    encoding="utf-8",
)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_redis() -> "RedisClient":
    """FastAPI dependency returning the singleton RedisClient wrapper."""
    return RedisClient(_client)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def close_redis() -> None:
    """Gracefully close the Redis connection pool."""
    logger.info("redis_shutdown")
    await _client.aclose()


# ---------------------------------------------------------------------------
# Helper wrapper
# ---------------------------------------------------------------------------

class RedisClient:
    """Thin wrapper over redis.asyncio.Redis with typed helpers.

    Every public method catches RedisError and re-raises as
    RedisConnectionError so the registry layer gets a structured error.
    """

    def __init__(self, client: Redis) -> None:
        self._r = client

    async def get(self, key: str) -> str | None:
        """GET a key. Returns None if the key does not exist."""
        try:
            return await self._r.get(name=key)
        except RedisError as e:
            logger.error("redis_get_failed", key=key, error=str(e))
            raise RedisConnectionError(f"Redis GET failed: {e}") from e

    async def put_if_absent(self, key: str, value: str) -> bool:
        """SET NX. Returns True if the key was written, False if it already existed."""
        try:
            return bool(await self._r.set(name=key, value=value, nx=True))
        except RedisError as e:
            logger.error("redis_setnx_failed", key=key, error=str(e))
            raise RedisConnectionError(f"Redis SET NX failed: {e}") from e

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Serialize value to JSON string and SET (optionally with TTL)."""
        payload = json.dumps(value)
        try:
            if ttl_seconds:
                await self._r.setex(name=key, time=ttl_seconds, value=payload)
            else:
                await self._r.set(name=key, value=payload)
        except RedisError as e:
            logger.error("redis_set_json_failed", key=key, error=str(e))
            raise RedisConnectionError(f"Redis SET JSON failed: {e}") from e

    async def get_json(self, key: str) -> Any | None:
        """GET a key and deserialize from JSON. Returns None if key missing or corrupt."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("redis_json_decode_failed", key=key)
            return None
