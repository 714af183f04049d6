"""Label artist attribution.

Hey future me - "which artists belong to this label?" is NOT just artists.label_id! An
artist belongs to a label when ANY of these holds:

1. is_directly_assigned            artists.label_id = label
2. is_eligible_primary             primary (or NULL) credit on a non-compilation release
                                   of the label
3. is_remixer_with_primary_elsewhere
                                   remixer credit on a non-compilation release of the label
                                   AND a primary credit on some OTHER release (any label).
                                   Pure remixers fail this, that's the point.
4. is_eligible_on_compilation      primary (or NULL) TRACK credit on a compilation of the
                                   label. Release-level credits on compilations never count,
                                   otherwise every remixer on a various-artists comp would
                                   land on the roster.

Featured-only credits never qualify on their own.

Each rule is a standalone function returning a correlated SQL boolean (EXISTS against
the outer ArtistModel), so tests can check them one by one and the database does the
work. Attribution is computed fresh per query, never cached.
"""

import logging

from sqlalchemy import ColumnElement, and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from labelcatalog.domain.entities import (
    AttributedArtist,
    AttributedRelease,
    Page,
    ReleaseCredit,
)
from labelcatalog.domain.exceptions import AttributionQueryError
from labelcatalog.domain.value_objects import ArtistRole, ReleaseType, resolve_label
from labelcatalog.infrastructure.persistence.models import (
    ArtistModel,
    ReleaseArtistModel,
    ReleaseModel,
    TrackArtistModel,
    TrackModel,
)

logger = logging.getLogger(__name__)

COMPILATION = ReleaseType.COMPILATION.value

# =============================================================================
# PREDICATES
# =============================================================================


def primary_role(role_column: ColumnElement[str | None]) -> ColumnElement[bool]:
    """Role is primary, or unspecified (NULL counts as primary)."""
    return or_(role_column == ArtistRole.PRIMARY.value, role_column.is_(None))


def is_directly_assigned(label_id: str) -> ColumnElement[bool]:
    """Artist row is assigned to the label."""
    return ArtistModel.label_id == label_id


def is_eligible_primary(label_id: str) -> ColumnElement[bool]:
    """Artist has a primary credit on a non-compilation release of the label."""
    credit = aliased(ReleaseArtistModel)
    release = aliased(ReleaseModel)
    return (
        select(credit.id)
        .join(release, release.id == credit.release_id)
        .where(
            credit.artist_id == ArtistModel.id,
            release.label_id == label_id,
            release.release_type != COMPILATION,
            primary_role(credit.role),
        )
        .exists()
    )


def has_primary_credit_outside(
    artist_id: ColumnElement[str], release_id: ColumnElement[str]
) -> ColumnElement[bool]:
    """Artist holds a primary credit on any release other than ``release_id``.

    Both release-level credits and track-level credits on other releases count.
    """
    other_release_credit = aliased(ReleaseArtistModel)
    other_track_credit = aliased(TrackArtistModel)
    other_track = aliased(TrackModel)

    on_other_release = (
        select(other_release_credit.id)
        .where(
            other_release_credit.artist_id == artist_id,
            other_release_credit.release_id != release_id,
            primary_role(other_release_credit.role),
        )
        .exists()
    )
    on_other_track = (
        select(other_track_credit.id)
        .join(other_track, other_track.id == other_track_credit.track_id)
        .where(
            other_track_credit.artist_id == artist_id,
            other_track.release_id != release_id,
            primary_role(other_track_credit.role),
        )
        .exists()
    )
    return or_(on_other_release, on_other_track)


def is_remixer_with_primary_elsewhere(label_id: str) -> ColumnElement[bool]:
    """Artist remixed a non-compilation release of the label and is primary elsewhere."""
    credit = aliased(ReleaseArtistModel)
    release = aliased(ReleaseModel)
    return (
        select(credit.id)
        .join(release, release.id == credit.release_id)
        .where(
            credit.artist_id == ArtistModel.id,
            release.label_id == label_id,
            release.release_type != COMPILATION,
            credit.role == ArtistRole.REMIXER.value,
            has_primary_credit_outside(credit.artist_id, credit.release_id),
        )
        .exists()
    )


def is_eligible_on_compilation(label_id: str) -> ColumnElement[bool]:
    """Artist has a primary track credit on a compilation of the label."""
    credit = aliased(TrackArtistModel)
    track = aliased(TrackModel)
    release = aliased(ReleaseModel)
    return (
        select(credit.id)
        .join(track, track.id == credit.track_id)
        .join(release, release.id == track.release_id)
        .where(
            credit.artist_id == ArtistModel.id,
            release.label_id == label_id,
            release.release_type == COMPILATION,
            primary_role(credit.role),
        )
        .exists()
    )


def is_attributed_to_label(label_id: str) -> ColumnElement[bool]:
    """Combined attribution rule: any of the four predicates."""
    return or_(
        is_directly_assigned(label_id),
        is_eligible_primary(label_id),
        is_remixer_with_primary_elsewhere(label_id),
        is_eligible_on_compilation(label_id),
    )


def _check_page(limit: int, offset: int) -> None:
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")


class AttributionService:
    """Label artist and release listings."""

    DEFAULT_ARTIST_LIMIT = 100
    DEFAULT_RELEASE_LIMIT = 50

    def __init__(self, session: AsyncSession) -> None:
        """Initialize service with a database session."""
        self.session = session

    async def artists_for_label(
        self,
        label: str,
        limit: int = DEFAULT_ARTIST_LIMIT,
        offset: int = 0,
    ) -> Page[AttributedArtist]:
        """List the artists attributed to a label, ordered by name.

        Args:
            label: Label slug, name, alias or raw id
            limit: Page size
            offset: Rows to skip

        Returns:
            Page of artists plus the total number of attributed artists

        Raises:
            InvalidLabelError: Unknown label
            AttributionQueryError: Database failure
        """
        _check_page(limit, offset)
        info = resolve_label(label)
        predicate = is_attributed_to_label(info.label_id)

        # Selecting FROM artists with EXISTS predicates gives each artist once, no
        # matter how many qualifying credits they have.
        count_stmt = select(func.count()).select_from(ArtistModel).where(predicate)
        stmt = (
            select(ArtistModel)
            .where(predicate)
            .order_by(ArtistModel.name.asc(), ArtistModel.id.asc())
            .limit(limit)
            .offset(offset)
        )

        try:
            total = int((await self.session.execute(count_stmt)).scalar_one())
            models = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.exception("Artist attribution query failed for label %s", info.label_id)
            raise AttributionQueryError(info.label_id, str(e)) from e

        artists = [
            AttributedArtist(
                id=model.id,
                name=model.name,
                display_name=model.display_name,
                spotify_id=model.spotify_id,
                spotify_url=model.spotify_url,
                profile_image_url=model.profile_image_url,
                label_id=model.label_id,
            )
            for model in models
        ]
        return Page(items=artists, total=total, limit=limit, offset=offset)

    async def releases_for_label(
        self,
        label: str,
        limit: int = DEFAULT_RELEASE_LIMIT,
        offset: int = 0,
    ) -> Page[AttributedRelease]:
        """List a label's releases, newest first, with their credited artists.

        Raises:
            InvalidLabelError: Unknown label
            AttributionQueryError: Database failure
        """
        _check_page(limit, offset)
        info = resolve_label(label)

        count_stmt = (
            select(func.count())
            .select_from(ReleaseModel)
            .where(ReleaseModel.label_id == info.label_id)
        )
        stmt = (
            select(ReleaseModel)
            .where(ReleaseModel.label_id == info.label_id)
            .options(
                selectinload(ReleaseModel.artist_credits).selectinload(
                    ReleaseArtistModel.artist
                )
            )
            .order_by(
                ReleaseModel.release_date.desc().nulls_last(),
                ReleaseModel.title.asc(),
                ReleaseModel.id.asc(),
            )
            .limit(limit)
            .offset(offset)
        )

        try:
            total = int((await self.session.execute(count_stmt)).scalar_one())
            models = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.exception("Release listing query failed for label %s", info.label_id)
            raise AttributionQueryError(info.label_id, str(e)) from e

        releases = [
            AttributedRelease(
                id=model.id,
                title=model.title,
                label_id=model.label_id,
                release_type=model.release_type,
                release_date=model.release_date,
                spotify_id=model.spotify_id,
                spotify_url=model.spotify_url,
                artwork_url=model.artwork_url,
                total_tracks=model.total_tracks,
                artists=[
                    ReleaseCredit(
                        artist_id=credit.artist_id,
                        artist_name=credit.artist.name,
                        role=ArtistRole.from_string(credit.role).value,
                    )
                    for credit in model.artist_credits
                ],
            )
            for model in models
        ]
        return Page(items=releases, total=total, limit=limit, offset=offset)

    async def is_artist_attributed(self, label: str, artist_id: str) -> bool:
        """Check the attribution rule for a single artist.

        Raises:
            InvalidLabelError: Unknown label
            AttributionQueryError: Database failure
        """
        info = resolve_label(label)
        stmt = select(ArtistModel.id).where(
            and_(ArtistModel.id == artist_id, is_attributed_to_label(info.label_id))
        )
        try:
            return (await self.session.execute(stmt)).first() is not None
        except SQLAlchemyError as e:
            raise AttributionQueryError(info.label_id, str(e)) from e
