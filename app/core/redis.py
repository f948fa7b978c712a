import logging

from redis import asyncio as aioredis

from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Thin async wrapper used for short-lived cached values (API tokens)."""

    def __init__(self, url: str, password: str | None = None):
        self._client = aioredis.from_url(
            url,
            password=password or None,
            decode_responses=True,
        )

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except aioredis.RedisError as e:
            logger.warning(f"Redis GET {key} failed: {e}")
            return None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl if ttl and ttl > 0 else None)
        except aioredis.RedisError as e:
            logger.warning(f"Redis SET {key} failed: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except aioredis.RedisError as e:
            logger.warning(f"Redis DELETE {key} failed: {e}")

    async def close(self) -> None:
        await self._client.aclose()


redis_client = RedisClient(settings.REDIS_URL, settings.REDIS_PASSWORD)
