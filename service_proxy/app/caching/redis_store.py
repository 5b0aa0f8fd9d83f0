"""
Redis-backed key-value store for the response cache.
"""

from typing import Optional

import redis.asyncio as redis

from shared.logging import get_logger


class RedisStore:
    """Thin async wrapper exposing the store surface over Redis."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("proxy.cache.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    async def setex(self, key: str, seconds: int, value: str) -> None:
        redis_client = await self._get_redis()
        await redis_client.setex(key, seconds, value)

    async def get(self, key: str) -> Optional[str]:
        redis_client = await self._get_redis()
        value = await redis_client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def delete(self, key: str) -> None:
        redis_client = await self._get_redis()
        await redis_client.delete(key)

    async def ping(self) -> bool:
        """Check Redis health."""
        try:
            redis_client = await self._get_redis()
            await redis_client.ping()
            return True
        except Exception as e:
            self.logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis store closed")
