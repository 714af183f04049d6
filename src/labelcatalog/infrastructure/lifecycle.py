"""Process-wide wiring of the catalog components.

CatalogContainer is the composition root: it builds the database, cache store,
upstream client and the services on top of them exactly once, and tears them down
again when the async context exits.
"""

import logging
from pathlib import Path
from types import TracebackType
from typing import Any

from sqlalchemy.engine import make_url

from labelcatalog.application.cache import EntityCacheService, PopularityHistory
from labelcatalog.application.services import AttributionService, LabelImportService
from labelcatalog.config import Settings, get_settings
from labelcatalog.domain.entities import (
    AttributedArtist,
    AttributedRelease,
    EntityKind,
    FetchResult,
    ImportResult,
    Page,
    PopularitySample,
)
from labelcatalog.domain.exceptions import ConfigurationError
from labelcatalog.domain.ports import ICacheStore, IUpstreamCatalogClient
from labelcatalog.infrastructure.cache import RedisCacheStore
from labelcatalog.infrastructure.integrations import SpotifyClient
from labelcatalog.infrastructure.observability import configure_logging
from labelcatalog.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


# Hey future me, this makes sure the SQLite parent directory exists BEFORE the engine is
# created. SQLite creates the .db file itself on first connect, but it won't create
# missing directories. Postgres URLs and in-memory databases are left alone.
def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite") or not url.database:
        return
    if url.database == ":memory:":
        return

    parent = Path(url.database).parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{parent}': {exc}. "
            "Update DATABASE_URL or adjust directory permissions."
        ) from exc


class CatalogContainer:
    """Owns every long-lived object and exposes the library-level operations.

    Usage:
        async with CatalogContainer() as catalog:
            result = await catalog.run_import("buildit-tech")
            page = await catalog.artists_for_label("buildit-tech")

    Collaborators can be injected (tests hand in a fakeredis-backed store and a
    stubbed upstream client); anything not injected is built from settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        database: Database | None = None,
        cache_store: ICacheStore | None = None,
        spotify_client: IUpstreamCatalogClient | None = None,
        configure_logs: bool = True,
    ) -> None:
        """Build the container.

        Args:
            settings: Settings to use (defaults to get_settings())
            database: Pre-built database (optional)
            cache_store: Pre-built cache store (optional)
            spotify_client: Pre-built upstream client (optional)
            configure_logs: Configure root logging from settings
        """
        self.settings = settings or get_settings()

        if configure_logs:
            configure_logging(
                log_level=self.settings.observability.level,
                json_format=self.settings.observability.json_format,
                app_name=self.settings.app_name,
            )

        if database is None:
            _ensure_sqlite_directory(self.settings.database.url)
            database = Database(self.settings.database)
        self.database = database
        self.cache_store = cache_store or RedisCacheStore.from_settings(self.settings.cache)
        self.spotify_client = spotify_client or SpotifyClient(self.settings.spotify)

        self.entity_cache = EntityCacheService(self.cache_store, self.spotify_client)
        self.popularity = PopularityHistory(self.cache_store)
        self.importer = LabelImportService(
            self.database, self.spotify_client, self.entity_cache
        )
        logger.info("Catalog container ready (database %s)", self.settings.database.url)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def close(self) -> None:
        """Release HTTP, cache and database resources.

        Every resource gets its close call even if an earlier one fails; the first
        failure is re-raised afterwards.
        """
        errors: list[Exception] = []
        for name, resource in (
            ("spotify client", self.spotify_client),
            ("cache store", self.cache_store),
            ("database", self.database),
        ):
            closer = getattr(resource, "close", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.exception("Failed to close %s", name)
                errors.append(e)
        logger.info("Catalog container closed")
        if errors:
            raise errors[0]

    async def __aenter__(self) -> "CatalogContainer":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # =========================================================================
    # CACHE OPERATIONS
    # =========================================================================

    async def get_entity(self, kind: EntityKind | str, entity_id: str) -> FetchResult:
        """Read-through fetch of one track, artist or album."""
        return await self.entity_cache.get_or_fetch(self._kind(kind), entity_id)

    async def get_for_label(
        self,
        kind: EntityKind | str,
        label: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Cached entities of one kind for a label."""
        return await self.entity_cache.get_for_label(
            self._kind(kind), label, limit=limit, offset=offset
        )

    async def set_for_label(
        self, kind: EntityKind | str, label: str, entities: list[dict[str, Any]]
    ) -> int:
        """Replace a label's cached entity index."""
        return await self.entity_cache.set_for_label(self._kind(kind), label, entities)

    async def search_tracks(
        self,
        query: str,
        label: str | None = None,
        min_popularity: int = 0,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Search cached tracks, optionally within one label and above a popularity."""
        return await self.entity_cache.search_tracks(
            query, label=label, min_popularity=min_popularity, limit=limit
        )

    async def clear_all(self) -> int:
        """Drop every cached key."""
        return await self.entity_cache.clear_all()

    async def record_popularity(self, track_id: str, popularity: int) -> PopularitySample:
        """Append a popularity sample for a track."""
        return await self.popularity.record(track_id, popularity)

    async def popularity_history(self, track_id: str) -> list[PopularitySample]:
        """All retained popularity samples for a track."""
        return await self.popularity.history(track_id)

    # =========================================================================
    # DATABASE OPERATIONS
    # =========================================================================

    async def artists_for_label(
        self, label: str, limit: int = 100, offset: int = 0
    ) -> Page[AttributedArtist]:
        """Artists attributed to a label."""
        async with self.database.session_scope() as session:
            return await AttributionService(session).artists_for_label(label, limit, offset)

    async def releases_for_label(
        self, label: str, limit: int = 50, offset: int = 0
    ) -> Page[AttributedRelease]:
        """A label's releases with credits, newest first."""
        async with self.database.session_scope() as session:
            return await AttributionService(session).releases_for_label(label, limit, offset)

    async def run_import(self, label: str) -> ImportResult:
        """Import a label's catalog from upstream."""
        return await self.importer.run_import(label)

    async def import_artist(self, artist_id: str, label: str) -> ImportResult:
        """Import one artist's releases on a label from upstream."""
        return await self.importer.import_artist(artist_id, label)

    @staticmethod
    def _kind(kind: EntityKind | str) -> EntityKind:
        return kind if isinstance(kind, EntityKind) else EntityKind.from_string(kind)
