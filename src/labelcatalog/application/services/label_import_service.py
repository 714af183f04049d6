"""Import a label's catalog from upstream into the database and cache."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from labelcatalog.application.cache.entity_cache import (
    EntityCacheService,
    format_album,
    format_artist,
    format_track,
)
from labelcatalog.domain.entities import EntityKind, ImportResult, ImportStatus
from labelcatalog.domain.exceptions import DomainException, ImportTransactionError
from labelcatalog.domain.ports import IUpstreamCatalogClient
from labelcatalog.domain.value_objects import (
    ArtistRole,
    LabelInfo,
    ReleaseType,
    infer_credit_role,
    resolve_label,
)
from labelcatalog.infrastructure.observability.logging import set_correlation_id
from labelcatalog.infrastructure.persistence.database import Database
from labelcatalog.infrastructure.persistence.models import ArtistModel, ImportLogModel
from labelcatalog.infrastructure.persistence.repositories import (
    ArtistRepository,
    CreditRepository,
    ImportLogRepository,
    LabelRepository,
    ReleaseRepository,
    TrackRepository,
)

logger = logging.getLogger(__name__)


class LabelImportService:
    """Runs label imports: search upstream, persist in one transaction, then cache.

    Hey future me - the import log lives in its OWN short transactions (create, finish).
    The catalog write phase is ONE big session_scope(): a single bad track rolls back
    every release of the run, and the log still gets its "failed" status because that
    update happens outside the rolled-back transaction.

    Run states: started -> completed | failed, one way (ImportLogModel.finish guards it).
    """

    def __init__(
        self,
        database: Database,
        spotify_client: IUpstreamCatalogClient,
        entity_cache: EntityCacheService | None = None,
    ) -> None:
        """Initialize import service.

        Args:
            database: Database used for the log and the write phase
            spotify_client: Upstream client
            entity_cache: Cache populated after a successful import (optional)
        """
        self.database = database
        self.spotify_client = spotify_client
        self.entity_cache = entity_cache

    # =========================================================================
    # IMPORT LOG
    # =========================================================================

    async def _start_log(self, info: LabelInfo, message: str) -> str:
        async with self.database.session_scope() as session:
            await LabelRepository(session).find_or_create(info)
            log = await ImportLogRepository(session).create(info.label_id, message)
            return log.id

    # Best effort: a failing log update is logged and swallowed so it never hides
    # the error that made us write "failed" in the first place.
    async def _finish_log(self, log_id: str, status: ImportStatus, message: str) -> None:
        try:
            async with self.database.session_scope() as session:
                log = await ImportLogRepository(session).get_by_id(log_id)
                if log is None:
                    logger.error("Import log %s vanished before it could be finished", log_id)
                    return
                log.finish(status, message)
        except Exception:
            logger.exception("Failed to update import log %s to %s", log_id, status.value)

    async def import_logs(self, label: str, limit: int = 20) -> list[ImportLogModel]:
        """Recent import logs for a label, newest first.

        Raises:
            InvalidLabelError: Unknown label
        """
        info = resolve_label(label)
        async with self.database.session_scope() as session:
            return await ImportLogRepository(session).list_for_label(info.label_id, limit)

    # =========================================================================
    # RUN
    # =========================================================================

    async def run_import(self, label: str) -> ImportResult:
        """Import every release upstream lists for a label.

        Args:
            label: Label slug, name, alias or raw id

        Returns:
            ImportResult with counts and the ids of persisted rows

        Raises:
            InvalidLabelError: Unknown label (no log row is written)
            UpstreamError: Label search failed (log marked failed)
            ConfigurationError: Upstream credentials missing (log marked failed)
            ImportTransactionError: Write phase failed and was rolled back (log marked failed)
        """
        info = resolve_label(label)
        log_id = await self._begin(info, f"Starting import for {info.display_name}")

        try:
            albums = await self.spotify_client.search_albums_by_label(info.spotify_label)
        except Exception as e:
            await self._fail_fetch(info, log_id, "Error searching for albums", e)
            raise

        if not albums:
            message = (
                f"No releases found on Spotify for {info.display_name}. "
                "This is expected for new labels."
            )
            logger.info(message)
            await self._finish_log(log_id, ImportStatus.COMPLETED, message)
            return ImportResult(
                label_id=info.label_id,
                status=ImportStatus.COMPLETED,
                message=message,
                import_log_id=log_id,
            )

        result, roster = await self._write(info, log_id, albums)
        await self._complete(
            result, log_id, f"Successfully imported {result.releases_imported} releases"
        )
        await self._populate_cache(info, albums, roster)
        return result

    # Hey future me - the per-artist flavour of run_import. Same log, same ONE write
    # transaction, same "cache after commit" rule. Differences: the artist row is written
    # even when none of their releases are on the label (it's an explicit request), and
    # the label indexes are MERGED into, since one artist is not the whole label.
    async def import_artist(self, artist_id: str, label: str) -> ImportResult:
        """Import one artist and their releases on a label.

        Args:
            artist_id: Upstream artist id, URI or URL
            label: Label slug, name, alias or raw id

        Returns:
            ImportResult with counts and the ids of persisted rows

        Raises:
            InvalidLabelError: Unknown label (no log row is written)
            UpstreamError: Artist or release fetch failed (log marked failed)
            ConfigurationError: Upstream credentials missing (log marked failed)
            ImportTransactionError: Write phase failed and was rolled back (log marked failed)
        """
        info = resolve_label(label)
        log_id = await self._begin(
            info, f"Starting artist import {artist_id} for {info.display_name}"
        )

        try:
            artist = await self.spotify_client.get_entity(EntityKind.ARTIST, artist_id)
            albums = await self.spotify_client.get_artist_albums(
                artist["id"], label_name=info.spotify_label
            )
        except Exception as e:
            await self._fail_fetch(info, log_id, "Error fetching artist releases", e)
            raise

        result, roster = await self._write(info, log_id, albums, lead_artist=artist)
        if albums:
            message = (
                f"Successfully imported {result.releases_imported} releases "
                f"for {artist['name']}"
            )
        else:
            message = f"No releases found on Spotify for {artist['name']} on {info.display_name}"
        await self._complete(result, log_id, message)
        await self._populate_cache(info, albums, roster, merge=True)
        return result

    async def _begin(self, info: LabelInfo, message: str) -> str:
        correlation_id = set_correlation_id()
        log_id = await self._start_log(info, message)
        logger.info("%s (log %s, correlation %s)", message, log_id, correlation_id)
        return log_id

    async def _fail_fetch(
        self, info: LabelInfo, log_id: str, prefix: str, error: Exception
    ) -> None:
        detail = error.message if isinstance(error, DomainException) else str(error)
        message = f"{prefix}: {detail}"
        logger.error("Import for %s failed: %s", info.display_name, message)
        await self._finish_log(log_id, ImportStatus.FAILED, message)

    async def _write(
        self,
        info: LabelInfo,
        log_id: str,
        albums: list[dict[str, Any]],
        lead_artist: dict[str, Any] | None = None,
    ) -> tuple[ImportResult, dict[str, dict[str, Any]]]:
        """Run the write phase in one transaction, failing the log on rollback.

        Raises:
            ImportTransactionError: Anything went wrong; nothing was written
        """
        result = ImportResult(
            label_id=info.label_id,
            status=ImportStatus.STARTED,
            message="",
            import_log_id=log_id,
            albums_found=len(albums),
        )
        roster: dict[str, dict[str, Any]] = {}

        try:
            async with self.database.session_scope() as session:
                await self._persist_albums(session, info, albums, result, roster, lead_artist)
        except Exception as e:
            message = f"Error importing releases: {e}"
            logger.exception("Import for %s rolled back", info.display_name)
            await self._finish_log(log_id, ImportStatus.FAILED, message)
            raise ImportTransactionError(info.label_id, str(e), log_id) from e

        return result, roster

    async def _complete(self, result: ImportResult, log_id: str, message: str) -> None:
        await self._finish_log(log_id, ImportStatus.COMPLETED, message)
        result.status = ImportStatus.COMPLETED
        result.message = message
        logger.info(
            "%s: %d releases (%d new), %d tracks new, %d artists new",
            message,
            result.releases_imported,
            result.releases_created,
            result.tracks_created,
            result.artists_created,
        )

    # =========================================================================
    # WRITE PHASE
    # =========================================================================

    async def _persist_albums(
        self,
        session: AsyncSession,
        info: LabelInfo,
        albums: list[dict[str, Any]],
        result: ImportResult,
        roster: dict[str, dict[str, Any]],
        lead_artist: dict[str, Any] | None = None,
    ) -> None:
        """Find-or-create releases, artists, tracks and credits for every album.

        Everything is keyed on upstream ids, so re-running with unchanged data
        creates nothing. ``roster`` collects the upstream artists that hold an
        attributable (primary) credit, for the label's cached artist index.
        ``lead_artist`` (per-artist imports) is written first and assigned to
        the label directly.
        """
        releases = ReleaseRepository(session)
        tracks = TrackRepository(session)
        artists = ArtistRepository(session)
        credits = CreditRepository(session)
        seen_artists: set[str] = set()

        async def upsert_artist(data: dict[str, Any], label_id: str | None) -> ArtistModel:
            artist, created = await artists.find_or_create(data, label_id=label_id)
            result.artists_created += int(created)
            if artist.id not in seen_artists:
                seen_artists.add(artist.id)
                result.artist_ids.append(artist.id)
            return artist

        if lead_artist is not None:
            lead = await upsert_artist(lead_artist, info.label_id)
            if lead.label_id == info.label_id:
                roster[lead_artist["id"]] = lead_artist

        for album in albums:
            release, created = await releases.find_or_create(album, info.label_id)
            result.releases_created += int(created)
            result.release_ids.append(release.id)
            is_compilation = ReleaseType(release.release_type).is_compilation

            # Release-level credits. On compilations the album artist is usually
            # "Various Artists" - credited as featured, never assigned to the label.
            for artist_data in album.get("artists") or []:
                if not artist_data or not artist_data.get("id"):
                    continue
                if is_compilation:
                    role = ArtistRole.FEATURED
                else:
                    role = infer_credit_role(album.get("name", ""), artist_data["name"])
                direct_label = info.label_id if role is ArtistRole.PRIMARY else None
                artist_id = (await upsert_artist(artist_data, direct_label)).id
                if await credits.link_release_artist(release.id, artist_id, role):
                    result.release_links_created += 1
                if role is ArtistRole.PRIMARY:
                    roster[artist_data["id"]] = artist_data

            for track_data in (album.get("tracks") or {}).get("items") or []:
                if not track_data or not track_data.get("id"):
                    continue
                track, created = await tracks.find_or_create(track_data, release.id)
                result.tracks_created += int(created)
                result.track_ids.append(track.id)

                for artist_data in track_data.get("artists") or []:
                    if not artist_data or not artist_data.get("id"):
                        continue
                    role = infer_credit_role(track_data.get("name", ""), artist_data["name"])
                    artist_id = (await upsert_artist(artist_data, None)).id
                    if await credits.link_track_artist(track.id, artist_id, role):
                        result.track_links_created += 1
                    if is_compilation and role is ArtistRole.PRIMARY:
                        roster[artist_data["id"]] = artist_data

    # =========================================================================
    # CACHE PHASE
    # =========================================================================

    # Runs AFTER the commit and outside any transaction: the cache may lag the database
    # until the next read-through. Cache trouble never fails an import that already
    # committed. merge=True adds to the label indexes instead of replacing them.
    async def _populate_cache(
        self,
        info: LabelInfo,
        albums: list[dict[str, Any]],
        roster: dict[str, dict[str, Any]],
        merge: bool = False,
    ) -> None:
        if self.entity_cache is None:
            return

        album_entities = [format_album(album) for album in albums]
        track_entities: list[dict[str, Any]] = []
        for album in albums:
            album_ref = {
                "id": album.get("id"),
                "name": album.get("name"),
                "release_date": album.get("release_date"),
                "images": album.get("images"),
            }
            for track in (album.get("tracks") or {}).get("items") or []:
                if track and track.get("id"):
                    track_entities.append(format_track({**track, "album": album_ref}))
        artist_entities = [format_artist(artist) for artist in roster.values()]

        index = self.entity_cache.add_for_label if merge else self.entity_cache.set_for_label
        try:
            await index(EntityKind.ALBUM, info.slug, album_entities)
            await index(EntityKind.TRACK, info.slug, track_entities)
            await index(EntityKind.ARTIST, info.slug, artist_entities)
            if not merge:
                await self.entity_cache.cache_search_results(
                    EntityKind.ALBUM, f'label:"{info.spotify_label}"', album_entities
                )
        except DomainException:
            logger.exception("Caching import results for %s failed", info.display_name)
