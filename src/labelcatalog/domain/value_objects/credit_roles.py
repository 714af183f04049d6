"""Credit roles and release types.

Hey future me - the upstream catalog does NOT tell us who is a remixer! A track like
"Night Drive (Kolter Remix)" simply lists ["Alex Doe", "Kolter"] as artists. We infer
the role from the title: an artist named inside a "(... Remix)" part is a remixer,
one named after "feat."/"ft." is featured, everyone else is primary.

Roles matter for label attribution: pure remixers and featured-only artists do NOT
make it onto a label's artist roster (see AttributionService).
"""

import re
from enum import Enum


class ArtistRole(str, Enum):
    """Role an artist holds on a release or track.

    NULL in the database is treated as PRIMARY everywhere.
    """

    PRIMARY = "primary"
    FEATURED = "featured"
    REMIXER = "remixer"

    @classmethod
    def from_string(cls, value: str | None) -> "ArtistRole":
        """Parse string to enum, defaulting to PRIMARY for empty/unknown values."""
        if not value:
            return cls.PRIMARY

        normalized = value.lower().strip()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.PRIMARY


class ReleaseType(str, Enum):
    """Release format. Values match the releases.release_type column."""

    SINGLE = "single"
    EP = "ep"
    ALBUM = "album"
    COMPILATION = "compilation"

    @property
    def is_compilation(self) -> bool:
        """Check if artist attribution must use track-level credits."""
        return self is ReleaseType.COMPILATION

    @classmethod
    def from_spotify(
        cls, album_type: str | None, total_tracks: int | None = None
    ) -> "ReleaseType":
        """Map an upstream album_type to a release type.

        Upstream has no "ep" type; it files EPs under "single". A "single" with
        four or more tracks is treated as an EP.

        Args:
            album_type: Upstream album_type ("album", "single", "compilation")
            total_tracks: Track count of the release, if known

        Returns:
            Release type, ALBUM if the value is missing or unknown
        """
        normalized = (album_type or "").lower().strip()
        if normalized == "compilation":
            return cls.COMPILATION
        if normalized == "single":
            if total_tracks is not None and total_tracks >= 4:
                return cls.EP
            return cls.SINGLE
        if normalized == "ep":
            return cls.EP
        return cls.ALBUM


# "(Kolter Remix)", "[Kolter Rework]", "- Kolter Dub Mix"
_REMIX_CREDIT_RE = re.compile(
    r"(?:[\(\[]|\s-\s)(?P<credit>[^\(\)\[\]]+?)\s+"
    r"(?:remix|rework|re-?edit|edit|dub|dub mix|mix|bootleg|version)\s*(?:[\)\]]|$)",
    re.IGNORECASE,
)
# "feat. Someone", "(ft. Someone)", "featuring Someone"
_FEATURED_CREDIT_RE = re.compile(
    r"\b(?:feat\.?|ft\.?|featuring)\s+(?P<credit>[^\(\)\[\]]+?)\s*(?:[\)\]]|\s-\s|$)",
    re.IGNORECASE,
)
# "Kolter & Mira", "Kolter, Mira", "Kolter x Mira", "Kolter and Mira", "Kolter vs. Mira"
_CREDIT_SEPARATOR_RE = re.compile(r"\s*(?:&|,|\+|\s(?:x|and|vs\.?)\s)\s*", re.IGNORECASE)

# Words that describe the mix rather than name a person: "(Original Mix)", "(Extended Club Mix)"
MIX_QUALIFIERS = frozenset(
    {
        "original",
        "extended",
        "radio",
        "club",
        "dub",
        "instrumental",
        "vocal",
        "main",
        "short",
        "long",
        "album",
        "single",
        "live",
        "acoustic",
    }
)


def _credited_names(credit: str) -> list[str]:
    """Split a credit like "Kolter & Mira" into lowercased names."""
    return [name.casefold() for name in _CREDIT_SEPARATOR_RE.split(credit.strip()) if name]


def _is_mix_qualifier(credit: str) -> bool:
    words = credit.casefold().split()
    return bool(words) and all(word in MIX_QUALIFIERS for word in words)


def _mentions(credit: str, artist_name: str) -> bool:
    # Whole credit first: "Above & Beyond" is one act, not two
    name = artist_name.strip().casefold()
    return name == credit.strip().casefold() or name in _credited_names(credit)


def infer_credit_role(track_title: str, artist_name: str) -> ArtistRole:
    """Infer an artist's role on a track from the track title.

    Args:
        track_title: Title as reported upstream, e.g. "Night Drive (Kolter Remix)"
        artist_name: Name of one of the track's credited artists

    Returns:
        REMIXER if the artist is named in a remix part of the title,
        FEATURED if named after feat./ft., otherwise PRIMARY.

    Examples:
        >>> infer_credit_role("Night Drive (Kolter Remix)", "Kolter")
        <ArtistRole.REMIXER: 'remixer'>
        >>> infer_credit_role("Night Drive (feat. Mira)", "Mira")
        <ArtistRole.FEATURED: 'featured'>
        >>> infer_credit_role("Night Drive (Kolter Remix)", "Alex Doe")
        <ArtistRole.PRIMARY: 'primary'>
    """
    if not track_title or not artist_name:
        return ArtistRole.PRIMARY

    for match in _REMIX_CREDIT_RE.finditer(track_title):
        credit = match.group("credit")
        if not _is_mix_qualifier(credit) and _mentions(credit, artist_name):
            return ArtistRole.REMIXER

    for match in _FEATURED_CREDIT_RE.finditer(track_title):
        if _mentions(match.group("credit"), artist_name):
            return ArtistRole.FEATURED

    return ArtistRole.PRIMARY
