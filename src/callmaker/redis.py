"""
Async Redis connector.

Redis backs the shared rate-limit counters in multi-instance deployments.
The client is built once by the app factory and injected where needed;
nothing here keeps module-level state.
"""

from __future__ import annotations

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from callmaker.logging import get_logger

logger = get_logger(__name__)

REDIS_SOCKET_TIMEOUT = 2.0
REDIS_MAX_CONNECTIONS = 50


def create_redis(url: str, *, max_connections: int = REDIS_MAX_CONNECTIONS) -> Redis:
    """Build an async client over a dedicated pool; no I/O happens here."""
    pool = ConnectionPool.from_url(
        url,
        max_connections=max_connections,
        socket_timeout=REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
        decode_responses=True,  # counters come back as str
    )
    return Redis(connection_pool=pool)


async def ping_redis(client: Redis) -> bool:
    """Health check ping; False instead of raising."""
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as e:
        logger.warning("redis_ping_failed", error=type(e).__name__)
        return False


async def close_redis(client: Redis) -> None:
    """Close the client and its pool (app shutdown / test teardown)."""
    await client.aclose()
    await client.connection_pool.disconnect()
