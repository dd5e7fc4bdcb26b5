"""
基于 Redis 的入站网关事件去重

仅作为第一道防线：Redis 不可用时放行，由交易账本的条件更新保证幂等。
"""
from __future__ import annotations

from redis.exceptions import RedisError

from core.logging_config import get_logger
from infrastructure.cache.redis_cache import RedisCache


logger = get_logger(__name__)


class RedisEventDeduplicator:
    def __init__(self, cache: RedisCache, prefix: str = "webhook") -> None:
        self._cache = cache
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def first_seen(self, key: str, ttl_seconds: int) -> bool:
        try:
            return await self._cache.add(self._key(key), 1, ttl_seconds)
        except RedisError as exc:
            logger.warning("event_dedupe_unavailable", key=key, error=str(exc))
            return True

    async def forget(self, key: str) -> None:
        try:
            await self._cache.delete(self._key(key))
        except RedisError as exc:
            logger.warning("event_dedupe_forget_failed", key=key, error=str(exc))
