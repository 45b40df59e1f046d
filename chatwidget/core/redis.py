# file: chatwidget/core/redis.py

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from chatwidget.core.settings import Settings

logger = logging.getLogger("redis")

# ============================================================
# 🔌 Redis client (one per widget or app, never global)
# ============================================================


def build_redis(settings: Settings) -> aioredis.Redis:
    """
    Creates a Redis client from settings. Nothing connects until the
    first command is issued.
    """
    if settings.REDIS_URL:
        return aioredis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

    return aioredis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD or None,
        db=0,
        decode_responses=True,  # always str, the store speaks JSON
    )


# ============================================================
# 🧩 Cache helpers
# ============================================================

async def cache_set(redis: aioredis.Redis, key: str, value: str, ttl_seconds: int | None = None):
    """
    Saves a value with an optional TTL.
    """
    try:
        await redis.set(key, value)
        if ttl_seconds:
            await redis.expire(key, ttl_seconds)
        logger.debug(f"[redis] SET {key} ({len(value)} bytes, ttl={ttl_seconds})")

    except RedisError as e:
        logger.error(f"❌ cache_set({key}): {e}")


async def cache_get(redis: aioredis.Redis, key: str) -> str | None:
    try:
        value = await redis.get(key)
        logger.debug(f"[redis] GET {key} -> {'hit' if value else 'miss'}")
        return value
    except RedisError as e:
        logger.error(f"❌ cache_get({key}): {e}")
        return None


async def cache_delete(redis: aioredis.Redis, key: str):
    try:
        await redis.delete(key)
        logger.debug(f"[redis] DEL {key}")
    except RedisError as e:
        logger.error(f"❌ cache_delete({key}): {e}")
