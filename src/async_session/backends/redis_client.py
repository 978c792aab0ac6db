import logging
from typing import Dict

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

redis_clients: Dict[str, aioredis.Redis] = {}


def get_redis_client(redis_url: str) -> aioredis.Redis:
    """Return the shared client for ``redis_url``, creating it on first use."""
    if redis_url not in redis_clients:
        logger.info("Creating new Redis client for sessions")
        redis_clients[redis_url] = aioredis.from_url(redis_url, decode_responses=True)
    return redis_clients[redis_url]


async def close_redis_clients() -> None:
    """Close every client created by :func:`get_redis_client`."""
    while redis_clients:
        _, client = redis_clients.popitem()
        await client.aclose()
