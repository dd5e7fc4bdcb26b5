"""缓存层对外暴露的接口"""
from .redis_cache import (
    RedisCache,
    init_redis_cache,
    shutdown_redis_cache,
    get_redis_cache,
)
from .event_dedupe import RedisEventDeduplicator

__all__ = [
    "RedisCache",
    "RedisEventDeduplicator",
    "init_redis_cache",
    "shutdown_redis_cache",
    "get_redis_cache",
]
