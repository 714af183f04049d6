"""Cache store implementations."""

from labelcatalog.infrastructure.cache.redis_store import RedisCacheStore

__all__ = ["RedisCacheStore"]
