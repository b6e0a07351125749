# funnel/services/redis.py
"""Shared Redis client backing the session store."""
from __future__ import annotations

from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from funnel.core.config import settings
from funnel.core.exceptions import ServiceUnavailableError
from funnel.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

_client: Optional[redis.Redis] = None


def _build_client() -> redis.Redis:
    return redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry=Retry(backoff=ExponentialBackoff(), retries=3),
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
        health_check_interval=30,
        decode_responses=True,
    )


async def init_redis_pool() -> None:
    """Connect once and verify with a ping; raises ServiceUnavailableError."""
    global _client

    if _client is not None:
        return

    client = _build_client()
    try:
        await client.ping()
    except (redis.ConnectionError, redis.TimeoutError) as e:
        await client.aclose()
        logger.error("redis.connection_failed", error=str(e))
        raise ServiceUnavailableError(
            message="Session backend unavailable",
            details={"error": str(e)},
        ) from e

    _client = client
    logger.info("redis.connected", max_connections=settings.redis_max_connections)


async def get_redis_client() -> redis.Redis:
    if _client is None:
        await init_redis_pool()
    return _client


async def close_redis_pool() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("redis.connections_closed")


async def health_check() -> Dict[str, Any]:
    """Ping Redis and report its version."""
    try:
        client = await get_redis_client()
        info = await client.info("server")
    except (ServiceUnavailableError, redis.RedisError) as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "version": info.get("redis_version", "unknown")}
