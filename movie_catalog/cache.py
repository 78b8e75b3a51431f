"""Redis cache for single-movie reads with graceful degradation."""

import json
from typing import Any, Optional
from redis import asyncio as aioredis
from .config import settings
from .logger import logger

# ==================== Cache Key Utilities ====================

MOVIE_BY_ID_PREFIX = "movie:id"


def make_cache_key(prefix: str, identifier: Any) -> str:
    """Generate consistent cache key with namespace (e.g. "movie:id:123")."""
    return f"{prefix}:{identifier}"

# ==================== Cache Manager ====================


class CacheManager:
    """Manages the Redis connection and cache operations.

    If Redis is unavailable, operations log and return None/False so the
    request falls through to the database.
    """

    def __init__(self):
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self):
        """Connect and ping; leaves the manager disconnected if Redis is unreachable."""
        if self._redis is None:
            try:
                self._redis = aioredis.from_url(
                    settings.REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                )
                await self._redis.ping()
                logger.info("[cache] Connected to Redis")
            except (aioredis.RedisError, OSError) as e:
                logger.error(f"[cache] Failed to connect to Redis: {e}")
                self._redis = None

    async def disconnect(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("[cache] Disconnected from Redis")

    async def get(self, key: str) -> Optional[dict]:
        if not self._redis:
            return None

        try:
            value = await self._redis.get(key)
        except aioredis.RedisError as e:
            logger.error(f"[cache] Error getting key {key}: {e}")
            return None

        if value:
            logger.debug(f"[cache] HIT: {key}")
            return json.loads(value)
        logger.debug(f"[cache] MISS: {key}")
        return None

    async def set(
        self,
        key: str,
        value: dict,
        ttl: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """Store a JSON-serializable value; ttl defaults to CACHE_TTL.

        With only_if_absent (SET NX) an existing entry is kept and False is returned.
        """
        if not self._redis:
            return False

        try:
            ttl = ttl or settings.CACHE_TTL
            stored = await self._redis.set(key, json.dumps(value, default=str), ex=ttl, nx=only_if_absent)
        except aioredis.RedisError as e:
            logger.error(f"[cache] Error setting key {key}: {e}")
            return False

        if not stored:
            logger.debug(f"[cache] SKIP: {key} already cached")
            return False
        logger.debug(f"[cache] SET: {key} (TTL={ttl}s)")
        return True

    async def delete(self, key: str) -> bool:
        if not self._redis:
            return False

        try:
            await self._redis.delete(key)
            logger.debug(f"[cache] DELETE: {key}")
            return True
        except aioredis.RedisError as e:
            logger.error(f"[cache] Error deleting key {key}: {e}")
            return False

# ==================== Global Instance ====================

cache_manager = CacheManager()
