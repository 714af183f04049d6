"""SQLAlchemy ORM models for the label catalog."""

import uuid
from datetime import UTC, date, datetime

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from labelcatalog.domain.entities import ImportStatus
from labelcatalog.domain.exceptions import InvalidStateException


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, labels use SHORT string ids ("1", "2", "3") - not UUIDs! Those ids predate
# this code base and show up in old URLs, so the label normalizer maps them too.
class LabelModel(Base):
    """A record label partitioning the catalog."""

    __tablename__ = "labels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    spotify_playlist_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


# Hey future me - label_id on an artist is the DIRECT assignment. It's only one of the
# ways an artist ends up on a label page; the others are derived from release credits
# at query time (see AttributionService). Don't "fix" missing label_ids by backfilling
# from releases - that would turn every one-off remixer into a label artist.
class ArtistModel(Base):
    """Artist known to the catalog."""

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    spotify_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    spotify_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    spotify_followers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    spotify_popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    label_id: Mapped[str | None] = mapped_column(
        ForeignKey("labels.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (Index("ix_artists_name_lower", func.lower(name)),)


class ReleaseModel(Base):
    """Release (single, EP, album or compilation) under a label."""

    __tablename__ = "releases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    spotify_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    # 'single', 'ep', 'album', 'compilation' (plain string for SQLite compatibility)
    release_type: Mapped[str] = mapped_column(String(20), nullable=False, default="album")
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # 'day', 'month' or 'year' - how much of release_date upstream actually knew
    release_date_precision: Mapped[str | None] = mapped_column(String(10), nullable=True)
    artwork_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    spotify_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    label_id: Mapped[str] = mapped_column(
        ForeignKey("labels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # 'draft', 'scheduled', 'published'
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="published")
    spotify_popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_tracks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    upc: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    artist_credits: Mapped[list["ReleaseArtistModel"]] = relationship(
        "ReleaseArtistModel", back_populates="release", cascade="all, delete-orphan"
    )
    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel", back_populates="release", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_releases_label_date", "label_id", "release_date"),
        Index("ix_releases_release_type", "release_type"),
    )


class TrackModel(Base):
    """Track on a release."""

    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    preview_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    spotify_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    spotify_uri: Mapped[str | None] = mapped_column(String(255), nullable=True)
    spotify_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    release_id: Mapped[str] = mapped_column(
        ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disc_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    isrc: Mapped[str | None] = mapped_column(String(32), nullable=True)
    spotify_popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    release: Mapped["ReleaseModel"] = relationship("ReleaseModel", back_populates="tracks")
    artist_credits: Mapped[list["TrackArtistModel"]] = relationship(
        "TrackArtistModel", back_populates="track", cascade="all, delete-orphan"
    )


# Hey future me - role is NULLABLE on purpose: rows written before roles existed have
# NULL, and NULL means primary. Every attribution predicate treats them the same.
# The unique constraint is on (parent, artist, role) so one artist can be both primary
# and remixer on the same release.
class ReleaseArtistModel(Base):
    """Credit linking an artist to a release in a role."""

    __tablename__ = "release_artists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    release_id: Mapped[str] = mapped_column(
        ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    artist_id: Mapped[str] = mapped_column(
        ForeignKey("artists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str | None] = mapped_column(String(20), nullable=True, default="primary")
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    release: Mapped["ReleaseModel"] = relationship(
        "ReleaseModel", back_populates="artist_credits"
    )
    artist: Mapped["ArtistModel"] = relationship("ArtistModel")

    __table_args__ = (
        UniqueConstraint("release_id", "artist_id", "role", name="uq_release_artist_role"),
    )


class TrackArtistModel(Base):
    """Credit linking an artist to a track in a role."""

    __tablename__ = "track_artists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    track_id: Mapped[str] = mapped_column(
        ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    artist_id: Mapped[str] = mapped_column(
        ForeignKey("artists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str | None] = mapped_column(String(20), nullable=True, default="primary")
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    track: Mapped["TrackModel"] = relationship(
        "TrackModel", back_populates="artist_credits"
    )
    artist: Mapped["ArtistModel"] = relationship("ArtistModel")

    __table_args__ = (
        UniqueConstraint("track_id", "artist_id", "role", name="uq_track_artist_role"),
    )


class ImportLogModel(Base):
    """One import run for a label: started -> completed | failed."""

    __tablename__ = "import_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    label_id: Mapped[str] = mapped_column(
        ForeignKey("labels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ImportStatus.STARTED.value
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_import_logs_label_started", "label_id", "started_at"),)

    @property
    def import_status(self) -> ImportStatus:
        """Status as enum."""
        return ImportStatus(self.status)

    def finish(self, status: ImportStatus, message: str) -> None:
        """Move the log to a terminal status, exactly once.

        Raises:
            ValueError: If status is not terminal
            InvalidStateException: If the log already reached a terminal status
        """
        if not status.is_terminal:
            raise ValueError(f"Import log can only finish as completed/failed, not {status.value}")
        if self.import_status.is_terminal:
            raise InvalidStateException(
                f"Import log {self.id} already {self.status}; cannot move to {status.value}"
            )
        self.status = status.value
        self.message = message
        self.completed_at = utc_now()
