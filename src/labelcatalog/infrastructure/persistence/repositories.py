"""Repository implementations for catalog persistence."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from labelcatalog.domain.value_objects import ArtistRole, LabelInfo, ReleaseType

from .models import (
    ArtistModel,
    ImportLogModel,
    LabelModel,
    ReleaseArtistModel,
    ReleaseModel,
    TrackArtistModel,
    TrackModel,
)

logger = logging.getLogger(__name__)


def parse_release_date(value: str | None, precision: str | None = None) -> date | None:
    """Parse an upstream release date of day, month or year precision.

    "2021" -> 2021-01-01, "2021-06" -> 2021-06-01, "2021-06-18" -> 2021-06-18.
    Unparseable values give None rather than failing the import.
    """
    if not value:
        return None

    parts = value.split("-")
    if precision == "year":
        parts = parts[:1]
    elif precision == "month":
        parts = parts[:2]

    try:
        year = int(parts[0])
        month = int(parts[1]) if len(parts) > 1 else 1
        day = int(parts[2]) if len(parts) > 2 else 1
        return date(year, month, day)
    except (ValueError, IndexError):
        logger.warning("Unparseable release date %r (precision %s)", value, precision)
        return None


def largest_image_url(images: list[dict[str, Any]] | None) -> str | None:
    """Pick the widest image from an upstream images array."""
    if not images:
        return None
    best = max(images, key=lambda image: image.get("width") or 0)
    return best.get("url")


# Hey future me, these repositories follow one rule: they get an AsyncSession injected and
# NEVER commit. The caller (usually Database.session_scope()) owns the transaction. That's
# what makes the import write phase all-or-nothing.
class LabelRepository:
    """Labels table access."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_by_id(self, label_id: str) -> LabelModel | None:
        """Get a label by id."""
        return await self.session.get(LabelModel, label_id)

    async def find_or_create(self, info: LabelInfo) -> tuple[LabelModel, bool]:
        """Get the labels row for a known label, creating it if missing."""
        model = await self.get_by_id(info.label_id)
        if model is not None:
            return model, False

        model = LabelModel(
            id=info.label_id,
            name=info.spotify_label,
            display_name=info.display_name,
            slug=info.slug,
        )
        self.session.add(model)
        await self.session.flush()
        return model, True


class ArtistRepository:
    """Artists table access."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_by_id(self, artist_id: str) -> ArtistModel | None:
        """Get an artist by id."""
        return await self.session.get(ArtistModel, artist_id)

    async def get_by_spotify_id(self, spotify_id: str) -> ArtistModel | None:
        """Get an artist by upstream id."""
        stmt = select(ArtistModel).where(ArtistModel.spotify_id == spotify_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # Yo, label_id is only written when the row is CREATED. Importing a second label that
    # credits the same artist must not steal them from their home label.
    async def find_or_create(
        self, data: dict[str, Any], label_id: str | None = None
    ) -> tuple[ArtistModel, bool]:
        """Find an artist by upstream id or create it from an upstream artist object.

        Args:
            data: Upstream artist object (simplified or full)
            label_id: Direct label assignment for newly created artists

        Returns:
            Tuple of (artist, created)
        """
        spotify_id = data["id"]
        model = await self.get_by_spotify_id(spotify_id)
        if model is not None:
            return model, False

        model = ArtistModel(
            name=data["name"],
            display_name=data["name"],
            spotify_id=spotify_id,
            spotify_url=(data.get("external_urls") or {}).get("spotify"),
            profile_image_url=largest_image_url(data.get("images")),
            spotify_followers=(data.get("followers") or {}).get("total"),
            spotify_popularity=data.get("popularity"),
            label_id=label_id,
        )
        self.session.add(model)
        await self.session.flush()
        return model, True

    async def count_all(self) -> int:
        """Count all artists."""
        result = await self.session.execute(select(func.count(ArtistModel.id)))
        return int(result.scalar_one())


class ReleaseRepository:
    """Releases table access."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_by_spotify_id(self, spotify_id: str) -> ReleaseModel | None:
        """Get a release by upstream id."""
        stmt = select(ReleaseModel).where(ReleaseModel.spotify_id == spotify_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_or_create(
        self, album: dict[str, Any], label_id: str
    ) -> tuple[ReleaseModel, bool]:
        """Find a release by upstream id or create it from a full upstream album.

        Returns:
            Tuple of (release, created)
        """
        spotify_id = album["id"]
        model = await self.get_by_spotify_id(spotify_id)
        if model is not None:
            return model, False

        precision = album.get("release_date_precision")
        model = ReleaseModel(
            title=album["name"],
            spotify_id=spotify_id,
            release_type=ReleaseType.from_spotify(
                album.get("album_type"), album.get("total_tracks")
            ).value,
            release_date=parse_release_date(album.get("release_date"), precision),
            release_date_precision=precision,
            artwork_url=largest_image_url(album.get("images")),
            spotify_url=(album.get("external_urls") or {}).get("spotify"),
            label_id=label_id,
            spotify_popularity=album.get("popularity"),
            total_tracks=album.get("total_tracks"),
            upc=(album.get("external_ids") or {}).get("upc"),
        )
        self.session.add(model)
        await self.session.flush()
        return model, True

    async def count_all(self) -> int:
        """Count all releases."""
        result = await self.session.execute(select(func.count(ReleaseModel.id)))
        return int(result.scalar_one())


class TrackRepository:
    """Tracks table access."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_by_spotify_id(self, spotify_id: str) -> TrackModel | None:
        """Get a track by upstream id."""
        stmt = select(TrackModel).where(TrackModel.spotify_id == spotify_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_or_create(
        self, data: dict[str, Any], release_id: str
    ) -> tuple[TrackModel, bool]:
        """Find a track by upstream id or create it from an upstream track object.

        Returns:
            Tuple of (track, created)
        """
        spotify_id = data["id"]
        model = await self.get_by_spotify_id(spotify_id)
        if model is not None:
            return model, False

        model = TrackModel(
            title=data["name"],
            duration_ms=data.get("duration_ms"),
            preview_url=data.get("preview_url"),
            spotify_id=spotify_id,
            spotify_uri=data.get("uri"),
            spotify_url=(data.get("external_urls") or {}).get("spotify"),
            release_id=release_id,
            track_number=data.get("track_number"),
            disc_number=data.get("disc_number"),
            isrc=(data.get("external_ids") or {}).get("isrc"),
            spotify_popularity=data.get("popularity"),
            explicit=bool(data.get("explicit", False)),
        )
        self.session.add(model)
        await self.session.flush()
        return model, True

    async def count_all(self) -> int:
        """Count all tracks."""
        result = await self.session.execute(select(func.count(TrackModel.id)))
        return int(result.scalar_one())


class CreditRepository:
    """Release and track credit links."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def link_release_artist(
        self, release_id: str, artist_id: str, role: ArtistRole
    ) -> bool:
        """Link an artist to a release in a role. Returns True if the link is new."""
        stmt = select(ReleaseArtistModel.id).where(
            ReleaseArtistModel.release_id == release_id,
            ReleaseArtistModel.artist_id == artist_id,
            ReleaseArtistModel.role == role.value,
        )
        if (await self.session.execute(stmt)).first() is not None:
            return False

        self.session.add(
            ReleaseArtistModel(release_id=release_id, artist_id=artist_id, role=role.value)
        )
        await self.session.flush()
        return True

    async def link_track_artist(
        self, track_id: str, artist_id: str, role: ArtistRole
    ) -> bool:
        """Link an artist to a track in a role. Returns True if the link is new."""
        stmt = select(TrackArtistModel.id).where(
            TrackArtistModel.track_id == track_id,
            TrackArtistModel.artist_id == artist_id,
            TrackArtistModel.role == role.value,
        )
        if (await self.session.execute(stmt)).first() is not None:
            return False

        self.session.add(
            TrackArtistModel(track_id=track_id, artist_id=artist_id, role=role.value)
        )
        await self.session.flush()
        return True

    async def count_track_links(self) -> int:
        """Count all track credit links."""
        result = await self.session.execute(select(func.count(TrackArtistModel.id)))
        return int(result.scalar_one())


class ImportLogRepository:
    """Import log access."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def create(self, label_id: str, message: str) -> ImportLogModel:
        """Create a log row in status 'started'."""
        model = ImportLogModel(label_id=label_id, message=message)
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, log_id: str) -> ImportLogModel | None:
        """Get a log row by id."""
        return await self.session.get(ImportLogModel, log_id)

    async def list_for_label(self, label_id: str, limit: int = 20) -> list[ImportLogModel]:
        """List a label's logs, newest first."""
        stmt = (
            select(ImportLogModel)
            .where(ImportLogModel.label_id == label_id)
            .order_by(ImportLogModel.started_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
