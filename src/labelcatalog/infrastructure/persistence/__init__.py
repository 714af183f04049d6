"""Persistence layer: database engine, ORM models and repositories."""

from labelcatalog.infrastructure.persistence.database import Database
from labelcatalog.infrastructure.persistence.models import (
    ArtistModel,
    Base,
    ImportLogModel,
    LabelModel,
    ReleaseArtistModel,
    ReleaseModel,
    TrackArtistModel,
    TrackModel,
)

__all__ = [
    "ArtistModel",
    "Base",
    "Database",
    "ImportLogModel",
    "LabelModel",
    "ReleaseArtistModel",
    "ReleaseModel",
    "TrackArtistModel",
    "TrackModel",
]
