"""Redis client factory: used for notification and location pub/sub only.

NOT used for balances or escrow (those go through PostgreSQL row locks).
"""

import json
from typing import Any

import redis.asyncio as aioredis

from config.settings import settings

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Get or create the Redis connection pool."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.close()
        _redis_pool = None


async def publish_json(channel: str, payload: dict[str, Any]) -> int:
    """Publish a JSON payload; returns the number of subscribers that received it."""
    client = await get_redis()
    return int(await client.publish(channel, json.dumps(payload, default=str)))
