"""Redis connection management.

Redis is optional. It only provides the lock that keeps overlapping unlock
workers from running the same pass twice; enrollment state never lives there.
"""

import redis.asyncio as redis

from dripcourse.config import Settings
from dripcourse.core.logging import get_logger


logger = get_logger(__name__)


async def init_redis(settings: Settings) -> redis.Redis:
    """Create a Redis client and check the connection."""
    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        raise

    return client


async def shutdown_redis(client: redis.Redis | None) -> None:
    """Close a Redis client."""
    if client is not None:
        await client.aclose()
        logger.info("redis_disconnected")


def unlock_lock_key(app_name: str) -> str:
    """Key of the lock held while an unlock pass runs."""
    return f"{app_name}:locks:unlock_tick"
