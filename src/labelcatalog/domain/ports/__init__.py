"""Domain ports (interfaces) for dependency inversion."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from labelcatalog.domain.entities import EntityKind


# Hey future me, ICacheStore is the contract the cache services depend on - NOT redis!
# The Redis implementation lives in infrastructure/cache/redis_store.py. Values are plain
# strings here; JSON encoding is the caller's job (the entity cache service does it).
# Implementations must raise CacheTypeMismatch for key/type collisions and RetryableError
# (or a subclass) for transient backend failures.
class ICacheStore(ABC):
    """Port for a command-style key-value store with string, set and sorted-set types."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get a string value, None when missing or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Set a string value with an optional TTL."""
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        pass

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on an existing key."""
        pass

    @abstractmethod
    async def keys(self, pattern: str = "*") -> list[str]:
        """List keys matching a glob pattern without blocking the store."""
        pass

    @abstractmethod
    async def members(self, set_key: str) -> set[str]:
        """Get all members of a set (empty set when missing)."""
        pass

    @abstractmethod
    async def add_to_set(
        self, set_key: str, *ids: str, ttl_seconds: int | None = None
    ) -> None:
        """Add members to a set."""
        pass

    @abstractmethod
    async def replace_set(
        self, set_key: str, ids: Iterable[str], ttl_seconds: int | None = None
    ) -> None:
        """Replace a set's members in one atomic swap."""
        pass

    @abstractmethod
    async def verify_type(self, key: str, expected_type: str) -> None:
        """Fail with CacheTypeMismatch if an existing key holds another type."""
        pass

    @abstractmethod
    async def add_sample(self, key: str, score: float, member: str) -> None:
        """Add a member to a sorted set."""
        pass

    @abstractmethod
    async def range_by_score(
        self, key: str, min_score: float | str, max_score: float | str
    ) -> list[tuple[str, float]]:
        """Get sorted-set members with scores in [min, max], ascending."""
        pass

    @abstractmethod
    async def remove_by_score(
        self, key: str, min_score: float | str, max_score: float | str
    ) -> int:
        """Remove sorted-set members with scores in [min, max]."""
        pass

    @abstractmethod
    async def clear_all(self) -> int:
        """Remove every key owned by this store."""
        pass


class IUpstreamCatalogClient(ABC):
    """Port for the upstream music-metadata API."""

    @abstractmethod
    async def get_access_token(self) -> str:
        """Get a client-credentials access token (cached for the client lifetime)."""
        pass

    @abstractmethod
    async def get_entity(self, kind: EntityKind, entity_id: str) -> dict[str, Any]:
        """Fetch one track, artist or album by id or URL."""
        pass

    @abstractmethod
    async def search_albums_by_label(self, label_name: str) -> list[dict[str, Any]]:
        """Find full album objects whose label matches the given name."""
        pass

    @abstractmethod
    async def get_artist_albums(
        self, artist_id: str, label_name: str | None = None
    ) -> list[dict[str, Any]]:
        """Fetch an artist's own releases as full album objects, optionally label-filtered."""
        pass

    @abstractmethod
    async def get_playlist_tracks(self, playlist_id: str) -> list[dict[str, Any]]:
        """Fetch all tracks of a playlist."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


__all__ = ["ICacheStore", "IUpstreamCatalogClient"]
