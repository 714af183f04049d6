"""Domain value objects."""

from labelcatalog.domain.value_objects.credit_roles import (
    ArtistRole,
    ReleaseType,
    infer_credit_role,
)
from labelcatalog.domain.value_objects.label_normalization import (
    KNOWN_LABELS,
    LabelInfo,
    is_known_label,
    normalize_label,
    resolve_label,
)

__all__ = [
    "KNOWN_LABELS",
    "ArtistRole",
    "LabelInfo",
    "ReleaseType",
    "infer_credit_role",
    "is_known_label",
    "normalize_label",
    "resolve_label",
]
