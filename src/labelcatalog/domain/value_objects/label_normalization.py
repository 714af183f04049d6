"""Label name normalization.

Hey future me - label names show up in MANY spellings! Upstream reports
"Build It Records", admins type "buildit records", old URLs use "buildit-records",
older DB rows use the numeric id "1", and people abbreviate to "BIR". All of these
must end up at ONE canonical label id, or the cache keys and attribution queries
silently split a label into several.

The trick is a "compact" form: lowercase, alphanumerics only. "Build-It Tech",
"build it tech" and "BUILDIT_TECH" all compact to "buildittech", which is what the
alias table is keyed on. Because the fallback slug has the same compact form as
its input, normalize(normalize(x)) == normalize(x) for every input.

Examples:
    >>> normalize_label("Build It Tech")
    'buildit-tech'
    >>> normalize_label("BuildIt Records")
    'buildit-records'
    >>> normalize_label("2")
    'buildit-tech'
    >>> normalize_label("  Some   Other Label ")
    'some-other-label'
"""

import re
from dataclasses import dataclass

from labelcatalog.domain.exceptions import InvalidLabelError


@dataclass(frozen=True)
class LabelInfo:
    """Known label identity.

    Attributes:
        label_id: Primary key of the labels table ("1", "2", ...)
        slug: Canonical label identifier returned by normalize_label()
        display_name: Human readable name
        spotify_label: Label string as the upstream catalog reports it
    """

    label_id: str
    slug: str
    display_name: str
    spotify_label: str


KNOWN_LABELS: dict[str, LabelInfo] = {
    "buildit-records": LabelInfo(
        label_id="1",
        slug="buildit-records",
        display_name="Build It Records",
        spotify_label="Build It Records",
    ),
    "buildit-tech": LabelInfo(
        label_id="2",
        slug="buildit-tech",
        display_name="Build It Tech",
        spotify_label="Build It Tech",
    ),
    "buildit-deep": LabelInfo(
        label_id="3",
        slug="buildit-deep",
        display_name="Build It Deep",
        spotify_label="Build It Deep",
    ),
}

# =============================================================================
# ALIAS TABLE
# Keys are COMPACT forms (see _compact). Raw numeric ids live here too so the
# attribution path accepts "2" the same way it accepts "buildit-tech".
# =============================================================================

LABEL_ALIASES: dict[str, str] = {
    # Build It Records
    "builditrecords": "buildit-records",
    "builditrecs": "buildit-records",
    "buildit": "buildit-records",
    "bir": "buildit-records",
    "1": "buildit-records",
    # Build It Tech
    "buildittech": "buildit-tech",
    "bit": "buildit-tech",
    "2": "buildit-tech",
    # Build It Deep
    "builditdeep": "buildit-deep",
    "bid": "buildit-deep",
    "3": "buildit-deep",
}

# Sub-label names that are only meaningful once the "build it" noise is gone
_SUBLABEL_ALIASES: dict[str, str] = {
    "records": "buildit-records",
    "recs": "buildit-records",
    "tech": "buildit-tech",
    "techno": "buildit-tech",
    "deep": "buildit-deep",
}

_NOISE_PREFIX = "buildit"
_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def _compact(value: str) -> str:
    return _NON_ALNUM_RE.sub("", value.lower())


def _slugify(value: str) -> str:
    return _NON_ALNUM_RE.sub("-", value.lower()).strip("-")


def normalize_label(value: str) -> str:
    """Map a free-form label name, slug, abbreviation or raw id to a canonical label id.

    Steps:
    1. lowercase + collapse whitespace
    2. look up the compact form in the alias table
    3. strip the "build it" noise prefix and look up the remaining sub-label name
    4. fall back to the hyphen slug of the input

    Pure function, no I/O. Idempotent.

    Args:
        value: Label name as typed by a user or reported upstream

    Returns:
        Canonical label id (e.g. "buildit-tech"), or a slug for unknown labels.
        Empty input returns "".
    """
    if not value:
        return ""

    normalized = _WHITESPACE_RE.sub(" ", value.lower()).strip()
    compact = _compact(normalized)
    if not compact:
        return ""

    if compact in LABEL_ALIASES:
        return LABEL_ALIASES[compact]

    if compact.startswith(_NOISE_PREFIX):
        remainder = compact[len(_NOISE_PREFIX) :]
        if remainder in _SUBLABEL_ALIASES:
            return _SUBLABEL_ALIASES[remainder]

    return _slugify(normalized)


def is_known_label(value: str) -> bool:
    """Check whether a label identifier resolves to one of the known labels."""
    return normalize_label(value) in KNOWN_LABELS


def resolve_label(value: str) -> LabelInfo:
    """Resolve a label identifier to its LabelInfo.

    Args:
        value: Any spelling accepted by normalize_label()

    Returns:
        The known label

    Raises:
        InvalidLabelError: If the identifier is not a known alias or raw id
    """
    slug = normalize_label(value)
    info = KNOWN_LABELS.get(slug)
    if info is None:
        raise InvalidLabelError(value)
    return info
