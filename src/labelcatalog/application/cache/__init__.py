"""Cache services built on the key-value store."""

from labelcatalog.application.cache.entity_cache import EntityCacheService
from labelcatalog.application.cache.popularity_history import PopularityHistory

__all__ = ["EntityCacheService", "PopularityHistory"]
