"""Redis connection for live session/proposal state and notification pub/sub.

Durable records (orders, allocations, group P&L) go through PostgreSQL.
One pool per process, created lazily and closed on shutdown.
"""

import logging

import redis.asyncio as aioredis

from config.settings import settings

logger = logging.getLogger(__name__)

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Return the process-wide client, connecting and pinging it on first use."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        # Session documents are JSON text, so responses decode to str
        client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        await client.ping()
        logger.info("Connected to Redis at %s", settings.REDIS_URL.rsplit("@", 1)[-1])
        _redis_pool = client
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
