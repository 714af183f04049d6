"""Domain entities."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Generic, TypeVar


# Hey future me, EntityKind doubles as the cache key namespace! "track" -> "track:<id>",
# "artist" -> "artist:<id>". Don't rename the values unless you also want to orphan every
# key in Redis.
class EntityKind(str, Enum):
    """Kind of upstream catalog entity."""

    TRACK = "track"
    ARTIST = "artist"
    ALBUM = "album"

    @property
    def plural(self) -> str:
        """Plural form used in label index keys and upstream paths."""
        return f"{self.value}s"

    @classmethod
    def from_string(cls, value: str) -> "EntityKind":
        """Parse a kind name, accepting singular or plural forms.

        Raises:
            ValueError: If the kind is unknown
        """
        normalized = value.lower().strip()
        if normalized.endswith("s"):
            normalized = normalized[:-1]
        for kind in cls:
            if kind.value == normalized:
                return kind
        raise ValueError(f"Unknown entity kind: {value!r}")


class CacheSource(str, Enum):
    """Where a read-through result came from."""

    CACHE = "cache"
    UPSTREAM = "upstream"
    # Upstream failed and we served a (possibly stale) cached copy instead
    CACHE_FALLBACK = "cache-fallback"


@dataclass(frozen=True)
class FetchResult:
    """Entity returned by a read-through lookup plus its provenance."""

    entity: dict[str, Any]
    source: CacheSource

    @property
    def is_fallback(self) -> bool:
        """True when the upstream call failed and a cached copy was served."""
        return self.source is CacheSource.CACHE_FALLBACK


@dataclass(frozen=True)
class PopularitySample:
    """One point of a track's popularity time series."""

    timestamp_ms: int
    popularity: int


class ImportStatus(str, Enum):
    """Lifecycle of an import run. Transitions are one-way out of STARTED."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is allowed."""
        return self is not ImportStatus.STARTED


@dataclass
class ImportResult:
    """Outcome of one label import run."""

    label_id: str
    status: ImportStatus
    message: str
    import_log_id: str | None = None
    albums_found: int = 0
    releases_created: int = 0
    tracks_created: int = 0
    artists_created: int = 0
    release_links_created: int = 0
    track_links_created: int = 0
    release_ids: list[str] = field(default_factory=list)
    track_ids: list[str] = field(default_factory=list)
    artist_ids: list[str] = field(default_factory=list)

    @property
    def releases_imported(self) -> int:
        """Number of releases touched by the run (created or already present)."""
        return len(self.release_ids)

    @property
    def links_created(self) -> int:
        """Total number of release and track credit links created."""
        return self.release_links_created + self.track_links_created


# =============================================================================
# ATTRIBUTION READ MODELS
# =============================================================================


@dataclass(frozen=True)
class AttributedArtist:
    """Artist as listed on a label page."""

    id: str
    name: str
    display_name: str | None = None
    spotify_id: str | None = None
    spotify_url: str | None = None
    profile_image_url: str | None = None
    label_id: str | None = None


@dataclass(frozen=True)
class ReleaseCredit:
    """Artist credited on a release, with the credit role."""

    artist_id: str
    artist_name: str
    role: str


@dataclass(frozen=True)
class AttributedRelease:
    """Release as listed on a label page."""

    id: str
    title: str
    label_id: str
    release_type: str
    release_date: date | None = None
    spotify_id: str | None = None
    spotify_url: str | None = None
    artwork_url: str | None = None
    total_tracks: int | None = None
    artists: list[ReleaseCredit] = field(default_factory=list)


T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of an ordered listing plus the total size of the listing."""

    items: list[T]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        """Check if another page exists after this one."""
        return self.offset + len(self.items) < self.total


__all__ = [
    "AttributedArtist",
    "AttributedRelease",
    "CacheSource",
    "EntityKind",
    "FetchResult",
    "ImportResult",
    "ImportStatus",
    "Page",
    "PopularitySample",
    "ReleaseCredit",
]
