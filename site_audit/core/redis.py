"""
Redis connections for the job store.

The API process shares one connection pool; Celery tasks open a private
client per task because pooled asyncio connections are bound to the event
loop that opened them.
"""

from typing import Annotated

import redis.asyncio as aioredis
import structlog
from fastapi import Depends

from site_audit.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

_pool: aioredis.ConnectionPool | None = None


def _client_options() -> dict:
    return {
        "socket_timeout": settings.REDIS_SOCKET_TIMEOUT,
        "socket_connect_timeout": settings.REDIS_CONNECT_TIMEOUT,
        "retry_on_timeout": True,
        "decode_responses": True,
    }


def _shared_pool() -> aioredis.ConnectionPool:
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            str(settings.REDIS_DSN),
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            health_check_interval=30,
            **_client_options(),
        )
        logger.debug("Redis pool created", max_connections=settings.REDIS_MAX_CONNECTIONS)
    return _pool


async def get_redis_client() -> aioredis.Redis:
    """Client on the shared pool (API process)."""
    return aioredis.Redis(connection_pool=_shared_pool())


def create_redis_client() -> aioredis.Redis:
    """Standalone client with its own connections (one Celery task)."""
    return aioredis.Redis.from_url(str(settings.REDIS_DSN), **_client_options())


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


async def get_redis() -> aioredis.Redis:
    """FastAPI dependency for the job store connection."""
    return await get_redis_client()


RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]
