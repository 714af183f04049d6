"""Label-scoped entity cache over the key-value store.

Hey future me - this is the read-through cache in front of the rate-limited upstream API.

Key layout (all JSON strings unless noted):
    track:<id>, artist:<id>, album:<id>      cached projections with "cached_at" (epoch ms)
    search:<kind>:<query>                    search results
    label:<canonical label>:<kind>s          SET of entity ids (the label index)

Two different clocks apply to an entry:
- the store TTL (TTL_SECONDS) decides when Redis forgets it entirely
- the freshness window (FRESHNESS_SECONDS) decides when get_or_fetch() goes upstream again
An entry past its freshness window is still useful as a fallback when upstream is down.

Failure policy: cache trouble degrades to "miss" (logged), EXCEPT CacheTypeMismatch,
which is a bug and always propagates.
"""

import json
import logging
import re
import time
from collections.abc import Callable, Iterable
from typing import Any

from labelcatalog.domain.entities import CacheSource, EntityKind, FetchResult
from labelcatalog.domain.exceptions import (
    CacheTypeMismatch,
    ConfigurationError,
    RetryableError,
    UpstreamError,
)
from labelcatalog.domain.ports import ICacheStore, IUpstreamCatalogClient
from labelcatalog.domain.value_objects import normalize_label
from labelcatalog.infrastructure.integrations.spotify_client import (
    parse_spotify_reference,
)

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def _artwork_url(images: list[dict[str, Any]] | None) -> str | None:
    if not images:
        return None
    return max(images, key=lambda image: image.get("width") or 0).get("url")


def _artist_refs(artists: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    return [
        {"id": artist.get("id"), "name": artist.get("name")}
        for artist in artists or []
        if artist
    ]


def _track_matches(track: dict[str, Any], needle: str) -> bool:
    if not needle:
        return True
    album = track.get("album") or {}
    haystacks = [track.get("name"), album.get("name")]
    haystacks.extend(artist.get("name") for artist in track.get("artists") or [])
    return any(needle in text.casefold() for text in haystacks if text)


# =============================================================================
# FORMATTERS
# Project upstream objects onto the denormalized shape we cache. Unknown fields are
# dropped so the cache doesn't balloon with market lists and the like.
# =============================================================================


def format_track(raw: dict[str, Any]) -> dict[str, Any]:
    """Cached projection of an upstream track."""
    album = raw.get("album") or {}
    return {
        "id": raw.get("id"),
        "name": raw.get("name"),
        "artists": _artist_refs(raw.get("artists")),
        "album": {
            "id": album.get("id"),
            "name": album.get("name"),
            "release_date": album.get("release_date"),
            "artwork_url": _artwork_url(album.get("images")),
        }
        if album
        else None,
        "duration_ms": raw.get("duration_ms"),
        "track_number": raw.get("track_number"),
        "disc_number": raw.get("disc_number"),
        "explicit": bool(raw.get("explicit", False)),
        "popularity": raw.get("popularity"),
        "preview_url": raw.get("preview_url"),
        "isrc": (raw.get("external_ids") or {}).get("isrc"),
        "uri": raw.get("uri"),
        "spotify_url": (raw.get("external_urls") or {}).get("spotify"),
    }


def format_artist(raw: dict[str, Any]) -> dict[str, Any]:
    """Cached projection of an upstream artist."""
    return {
        "id": raw.get("id"),
        "name": raw.get("name"),
        "genres": list(raw.get("genres") or []),
        "popularity": raw.get("popularity"),
        "followers": (raw.get("followers") or {}).get("total"),
        "image_url": _artwork_url(raw.get("images")),
        "uri": raw.get("uri"),
        "spotify_url": (raw.get("external_urls") or {}).get("spotify"),
    }


def format_album(raw: dict[str, Any]) -> dict[str, Any]:
    """Cached projection of an upstream album."""
    tracks = (raw.get("tracks") or {}).get("items") or []
    return {
        "id": raw.get("id"),
        "name": raw.get("name"),
        "album_type": raw.get("album_type"),
        "label": raw.get("label"),
        "release_date": raw.get("release_date"),
        "release_date_precision": raw.get("release_date_precision"),
        "total_tracks": raw.get("total_tracks"),
        "artists": _artist_refs(raw.get("artists")),
        "artwork_url": _artwork_url(raw.get("images")),
        "popularity": raw.get("popularity"),
        "track_ids": [track["id"] for track in tracks if track and track.get("id")],
        "uri": raw.get("uri"),
        "spotify_url": (raw.get("external_urls") or {}).get("spotify"),
    }


FORMATTERS: dict[EntityKind, Callable[[dict[str, Any]], dict[str, Any]]] = {
    EntityKind.TRACK: format_track,
    EntityKind.ARTIST: format_artist,
    EntityKind.ALBUM: format_album,
}


class EntityCacheService:
    """Read-through cache for tracks, artists and albums, plus label indexes and search."""

    # Store TTLs (seconds). ONE table for every caller - no per-label overrides.
    TTL_SECONDS: dict[EntityKind, int] = {
        EntityKind.TRACK: 86400,  # 24 hours
        EntityKind.ARTIST: 604800,  # 7 days
        EntityKind.ALBUM: 604800,  # 7 days
    }
    SEARCH_TTL = 3600  # 1 hour

    # How old a cached copy may be before get_or_fetch() goes upstream
    FRESHNESS_SECONDS: dict[EntityKind, int] = {
        EntityKind.TRACK: 3600,
        EntityKind.ARTIST: 86400,
        EntityKind.ALBUM: 86400,
    }

    def __init__(
        self,
        store: ICacheStore,
        upstream: IUpstreamCatalogClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize cache service.

        Args:
            store: Key-value store
            upstream: Upstream catalog client used on misses
            clock: Seconds-since-epoch source (injectable for tests)
        """
        self.store = store
        self.upstream = upstream
        self._clock = clock

    def now_ms(self) -> int:
        """Current time in epoch milliseconds."""
        return int(self._clock() * 1000)

    # =========================================================================
    # KEYS
    # =========================================================================

    @staticmethod
    def _bare_id(entity_id: str) -> str:
        _, bare = parse_spotify_reference(entity_id)
        return bare

    def _make_entity_key(self, kind: EntityKind, entity_id: str) -> str:
        return f"{kind.value}:{self._bare_id(entity_id)}"

    def _make_label_key(self, kind: EntityKind, label: str) -> str:
        return f"label:{normalize_label(label)}:{kind.plural}"

    def _make_search_key(self, kind: EntityKind, query: str) -> str:
        normalized = _WHITESPACE_RE.sub(" ", query.lower()).strip()
        return f"search:{kind.value}:{normalized}"

    # =========================================================================
    # LOW LEVEL
    # =========================================================================

    async def _read(self, key: str) -> Any | None:
        """Read and decode a JSON value.

        Raises:
            CacheTypeMismatch: Key holds a non-string type
            RetryableError: Store unavailable
            ValueError: Value is not valid JSON
        """
        raw = await self.store.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def _write(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.store.set(key, json.dumps(value), ttl_seconds)

    def _stamp(self, entity: dict[str, Any]) -> dict[str, Any]:
        return {**entity, "cached_at": self.now_ms()}

    def format_entity(self, kind: EntityKind, raw: dict[str, Any]) -> dict[str, Any]:
        """Project an upstream object to its cached shape, stamped with cached_at."""
        return self._stamp(FORMATTERS[kind](raw))

    def is_fresh(self, kind: EntityKind, entity: dict[str, Any]) -> bool:
        """Check whether a cached entity is inside the kind's freshness window."""
        cached_at = entity.get("cached_at")
        if not isinstance(cached_at, int | float):
            return False
        return self.now_ms() - cached_at < self.FRESHNESS_SECONDS[kind] * 1000

    # =========================================================================
    # SINGLE ENTITIES
    # =========================================================================

    async def get_entity(self, kind: EntityKind, entity_id: str) -> dict[str, Any] | None:
        """Get a cached entity without going upstream.

        Returns:
            Cached entity, or None on miss / store trouble / undecodable value

        Raises:
            CacheTypeMismatch: If the key holds a non-string type
        """
        key = self._make_entity_key(kind, entity_id)
        try:
            return await self._read(key)
        except RetryableError as e:
            logger.warning("Cache read for %s failed, treating as miss: %s", key, e.message)
        except ValueError:
            logger.warning("Cache entry %s is not valid JSON, treating as miss", key)
        return None

    async def set_entity(
        self, kind: EntityKind, entity_id: str, entity: dict[str, Any]
    ) -> dict[str, Any]:
        """Cache an entity with the kind's TTL, refreshing its cached_at.

        Returns:
            The stored entity (with cached_at)
        """
        stored = self._stamp(entity)
        await self._write(
            self._make_entity_key(kind, entity_id), stored, self.TTL_SECONDS[kind]
        )
        return stored

    async def delete_entity(self, kind: EntityKind, entity_id: str) -> bool:
        """Delete a cached entity. Returns True if it existed."""
        return await self.store.delete(self._make_entity_key(kind, entity_id)) > 0

    # Listen up, this is the main read path. Three outcomes:
    #   fresh cached copy            -> source=cache
    #   miss/stale + upstream ok     -> source=upstream (and we cache it)
    #   miss/stale + upstream down   -> source=cache-fallback if ANY copy exists, else raise
#   (missing credentials count as "down")
    # A failed cache WRITE after a successful upstream fetch is logged and ignored; the
    # caller still gets fresh data.
    async def get_or_fetch(self, kind: EntityKind, entity_id: str) -> FetchResult:
        """Get an entity from cache, going upstream when missing or stale.

        Args:
            kind: Entity kind
            entity_id: Upstream id (or URI/URL)

        Returns:
            FetchResult with the entity and where it came from

        Raises:
            UpstreamError: Upstream failed and no cached copy exists
            ConfigurationError: Upstream credentials missing and no cached copy exists
            CacheTypeMismatch: The entity key holds a non-string type
        """
        cached = await self.get_entity(kind, entity_id)
        if cached is not None and self.is_fresh(kind, cached):
            return FetchResult(entity=cached, source=CacheSource.CACHE)

        try:
            raw = await self.upstream.get_entity(kind, self._bare_id(entity_id))
        except (UpstreamError, ConfigurationError) as e:
            if cached is not None:
                logger.warning(
                    "Upstream fetch for %s %s failed (%s), serving cached copy",
                    kind.value,
                    entity_id,
                    e.message,
                )
                return FetchResult(entity=cached, source=CacheSource.CACHE_FALLBACK)
            raise

        entity = self.format_entity(kind, raw)
        try:
            await self._write(
                self._make_entity_key(kind, entity_id), entity, self.TTL_SECONDS[kind]
            )
        except RetryableError as e:
            logger.warning(
                "Could not cache %s %s, returning uncached: %s",
                kind.value,
                entity_id,
                e.message,
            )
        return FetchResult(entity=entity, source=CacheSource.UPSTREAM)

    # =========================================================================
    # LABEL INDEXES
    # =========================================================================

    # Hey future me - set_for_label REPLACES the index (add_for_label merges). Entities go in
    # first, then the index swaps atomically (replace_set), so a reader never sees an id
    # whose entry hasn't been written yet by this call. Two concurrent rebuilds of one
    # label: last one wins.
    async def set_for_label(
        self, kind: EntityKind, label: str, entities: Iterable[dict[str, Any]]
    ) -> int:
        """Cache entities individually and replace the label's index with their ids.

        Args:
            kind: Entity kind
            label: Any label spelling (normalized for the key)
            entities: Entities with an "id" field; others are skipped

        Returns:
            Number of entities indexed
        """
        ids = await self._cache_entities(kind, label, entities)
        await self.store.replace_set(
            self._make_label_key(kind, label), ids, ttl_seconds=self.TTL_SECONDS[kind]
        )
        logger.info(
            "Indexed %d %s for label %s", len(ids), kind.plural, normalize_label(label)
        )
        return len(ids)

    async def add_for_label(
        self, kind: EntityKind, label: str, entities: Iterable[dict[str, Any]]
    ) -> int:
        """Cache entities individually and ADD their ids to the label's index.

        Unlike set_for_label() the existing members stay, so a partial import
        (one artist) can grow the index without knowing the rest of the label.

        Returns:
            Number of entities indexed
        """
        ids = await self._cache_entities(kind, label, entities)
        await self.store.add_to_set(
            self._make_label_key(kind, label), *ids, ttl_seconds=self.TTL_SECONDS[kind]
        )
        logger.info(
            "Added %d %s to label %s", len(ids), kind.plural, normalize_label(label)
        )
        return len(ids)

    async def _cache_entities(
        self, kind: EntityKind, label: str, entities: Iterable[dict[str, Any]]
    ) -> list[str]:
        ids: list[str] = []
        for entity in entities:
            entity_id = entity.get("id")
            if not entity_id:
                logger.warning("Skipping %s without id for label %r", kind.value, label)
                continue
            await self.set_entity(kind, entity_id, entity)
            ids.append(str(entity_id))
        return ids

    async def label_ids(self, kind: EntityKind, label: str) -> list[str]:
        """Sorted entity ids in a label index ([] when the store is unavailable).

        Raises:
            CacheTypeMismatch: If the index key is not a set
        """
        key = self._make_label_key(kind, label)
        try:
            return sorted(await self.store.members(key))
        except RetryableError as e:
            logger.warning("Label index %s unavailable, returning empty: %s", key, e.message)
            return []

    async def count_for_label(self, kind: EntityKind, label: str) -> int:
        """Number of ids in a label index."""
        return len(await self.label_ids(kind, label))

    async def get_for_label(
        self,
        kind: EntityKind,
        label: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Get a label's cached entities, ordered by id.

        Members whose entry can't be read (evicted, type mismatch, bad JSON, store
        hiccup) are soft misses: logged and left out.

        Args:
            kind: Entity kind
            label: Any label spelling
            limit: Page size (None for everything)
            offset: Ids to skip (applied to the sorted index)

        Returns:
            Cached entities

        Raises:
            CacheTypeMismatch: If the index key itself is not a set
        """
        ids = await self.label_ids(kind, label)
        page = ids[offset : offset + limit] if limit is not None else ids[offset:]
        return await self._read_many(kind, page)

    async def _read_many(self, kind: EntityKind, ids: Iterable[str]) -> list[dict[str, Any]]:
        """Read entities in order, leaving out soft misses."""
        entities: list[dict[str, Any]] = []
        for entity_id in ids:
            key = self._make_entity_key(kind, entity_id)
            try:
                entity = await self._read(key)
            except (CacheTypeMismatch, RetryableError, ValueError) as e:
                logger.warning("Soft miss on %s: %s", key, e)
                continue

            if entity is None:
                logger.debug("Soft miss on %s: entry missing", key)
                continue
            entities.append(entity)

        return entities

    async def delete_for_label(self, kind: EntityKind, label: str) -> bool:
        """Drop a label index (entries stay until their TTL)."""
        return await self.store.delete(self._make_label_key(kind, label)) > 0

    # =========================================================================
    # SEARCH
    # =========================================================================

    # Listen up - there is no search index behind this, it's a scan over cached track
    # projections: the label index when a label is given, every track:* key otherwise.
    # Fine for one label's catalog, slow for a store holding millions of tracks.
    async def search_tracks(
        self,
        query: str,
        label: str | None = None,
        min_popularity: int = 0,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Search cached tracks by title, artist name or album name.

        Args:
            query: Case-insensitive text matched as a substring of the track name,
                any artist name or the album name ("" matches everything)
            label: Only tracks in this label's index
            min_popularity: Only tracks with at least this popularity (unknown counts as 0)
            limit: Maximum number of results

        Returns:
            Matching tracks, most popular first, ties by name

        Raises:
            CacheTypeMismatch: If the label index key is not a set
        """
        needle = _WHITESPACE_RE.sub(" ", query.casefold()).strip()

        if label is not None:
            ids = await self.label_ids(EntityKind.TRACK, label)
        else:
            try:
                prefix = f"{EntityKind.TRACK.value}:"
                ids = sorted(key[len(prefix) :] for key in await self.store.keys(f"{prefix}*"))
            except RetryableError as e:
                logger.warning("Track scan failed, returning no results: %s", e.message)
                return []

        matches = [
            track
            for track in await self._read_many(EntityKind.TRACK, ids)
            if (track.get("popularity") or 0) >= min_popularity
            and _track_matches(track, needle)
        ]
        matches.sort(key=lambda track: (-(track.get("popularity") or 0), track.get("name") or ""))
        return matches[:limit]

    async def cache_search_results(
        self, kind: EntityKind, query: str, results: list[dict[str, Any]]
    ) -> None:
        """Cache search results for a query."""
        payload = {"query": query, "results": results, "cached_at": self.now_ms()}
        await self._write(self._make_search_key(kind, query), payload, self.SEARCH_TTL)

    async def get_search_results(
        self, kind: EntityKind, query: str
    ) -> list[dict[str, Any]] | None:
        """Get cached search results, None on miss."""
        key = self._make_search_key(kind, query)
        try:
            payload = await self._read(key)
        except (RetryableError, ValueError) as e:
            logger.warning("Search cache read for %s failed, treating as miss: %s", key, e)
            return None
        if not isinstance(payload, dict):
            return None
        return payload.get("results")

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def clear_all(self) -> int:
        """Drop every cached entry, index and series."""
        return await self.store.clear_all()
