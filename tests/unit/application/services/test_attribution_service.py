"""Tests for label artist attribution."""

from collections.abc import AsyncGenerator
from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from labelcatalog.application.services import AttributionService
from labelcatalog.application.services.attribution_service import (
    is_directly_assigned,
    is_eligible_on_compilation,
    is_eligible_primary,
    is_remixer_with_primary_elsewhere,
)
from labelcatalog.domain.exceptions import AttributionQueryError, InvalidLabelError
from labelcatalog.domain.value_objects import KNOWN_LABELS
from labelcatalog.infrastructure.persistence import (
    ArtistModel,
    Database,
    ReleaseArtistModel,
    ReleaseModel,
    TrackArtistModel,
    TrackModel,
)
from labelcatalog.infrastructure.persistence.repositories import LabelRepository


class CatalogSeeder:
    """Inserts catalog rows directly, bypassing the importer."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def artist(self, name: str, label_id: str | None = None) -> ArtistModel:
        model = ArtistModel(name=name, label_id=label_id)
        self.session.add(model)
        await self.session.flush()
        return model

    async def release(
        self,
        title: str,
        label_id: str = "2",
        release_type: str = "single",
        release_date: date | None = None,
    ) -> ReleaseModel:
        model = ReleaseModel(
            title=title,
            label_id=label_id,
            release_type=release_type,
            release_date=release_date,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def track(self, release: ReleaseModel, title: str = "Track") -> TrackModel:
        model = TrackModel(title=title, release_id=release.id)
        self.session.add(model)
        await self.session.flush()
        return model

    async def credit(self, release: ReleaseModel, artist: ArtistModel, role: str = "primary") -> None:
        self.session.add(ReleaseArtistModel(release_id=release.id, artist_id=artist.id, role=role))
        await self.session.flush()

    async def track_credit(self, track: TrackModel, artist: ArtistModel, role: str = "primary") -> None:
        self.session.add(TrackArtistModel(track_id=track.id, artist_id=artist.id, role=role))
        await self.session.flush()


@pytest.fixture
async def session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Session with the known labels present."""
    async with database.session_scope() as session:
        for info in KNOWN_LABELS.values():
            await LabelRepository(session).find_or_create(info)
        yield session


@pytest.fixture
async def catalog(session: AsyncSession) -> dict[str, ArtistModel]:
    """A label-2 catalog covering every attribution rule.

    Label 2 ("Build It Tech"):
        "Night Drive"   single, 2024-03-01
        "Warehouse EP"  ep, 2024-05-10
        "Tech Vol. 1"   compilation, no date
    Label 1 ("Build It Records"):
        "Elsewhere"     single
    """
    seed = CatalogSeeder(session)
    night_drive = await seed.release("Night Drive", release_date=date(2024, 3, 1))
    warehouse = await seed.release("Warehouse EP", release_type="ep", release_date=date(2024, 5, 10))
    comp = await seed.release("Tech Vol. 1", release_type="compilation")
    elsewhere = await seed.release("Elsewhere", label_id="1")
    comp_track = await seed.track(comp, "Comp Opener")
    elsewhere_track = await seed.track(elsewhere, "Elsewhere Dub")

    artists = {
        name: await seed.artist(name)
        for name in (
            "Alex Primary",
            "Null Nick",
            "Pure Remixer",
            "Remixer Release",
            "Remixer Track",
            "Comp Release Credit",
            "Comp Track Primary",
            "Comp Track Featured",
            "Featured Only",
            "Other Label",
        )
    }
    artists["Direct Dan"] = await seed.artist("Direct Dan", label_id="2")

    await seed.credit(night_drive, artists["Alex Primary"])
    await seed.credit(warehouse, artists["Alex Primary"])
    await seed.credit(night_drive, artists["Null Nick"])
    await seed.credit(night_drive, artists["Pure Remixer"], "remixer")
    await seed.credit(night_drive, artists["Remixer Release"], "remixer")
    await seed.credit(elsewhere, artists["Remixer Release"])
    await seed.credit(night_drive, artists["Remixer Track"], "remixer")
    await seed.track_credit(elsewhere_track, artists["Remixer Track"])
    await seed.credit(comp, artists["Comp Release Credit"])
    await seed.track_credit(comp_track, artists["Comp Track Primary"])
    await seed.track_credit(comp_track, artists["Comp Track Featured"], "featured")
    await seed.credit(night_drive, artists["Featured Only"], "featured")
    await seed.credit(elsewhere, artists["Other Label"])

    # Older rows carry no role at all; those count as primary
    await session.execute(
        update(ReleaseArtistModel)
        .where(ReleaseArtistModel.artist_id == artists["Null Nick"].id)
        .values(role=None)
    )
    return artists


LABEL_2_ROSTER = [
    "Alex Primary",
    "Comp Track Primary",
    "Direct Dan",
    "Null Nick",
    "Remixer Release",
    "Remixer Track",
]


async def names_matching(session: AsyncSession, predicate) -> list[str]:
    result = await session.execute(
        select(ArtistModel.name).where(predicate).order_by(ArtistModel.name)
    )
    return list(result.scalars().all())


class TestPredicates:
    """Test each attribution rule on its own."""

    async def test_directly_assigned(self, session: AsyncSession, catalog: dict) -> None:
        """Test only artists with label_id set match."""
        assert await names_matching(session, is_directly_assigned("2")) == ["Direct Dan"]

    async def test_eligible_primary(self, session: AsyncSession, catalog: dict) -> None:
        """Test primary and NULL-role release credits on non-compilations match."""
        assert await names_matching(session, is_eligible_primary("2")) == [
            "Alex Primary",
            "Null Nick",
        ]

    async def test_remixer_with_primary_elsewhere(
        self, session: AsyncSession, catalog: dict
    ) -> None:
        """Test remixers need a primary credit on another release or track."""
        assert await names_matching(session, is_remixer_with_primary_elsewhere("2")) == [
            "Remixer Release",
            "Remixer Track",
        ]

    async def test_eligible_on_compilation(self, session: AsyncSession, catalog: dict) -> None:
        """Test only primary track credits count on compilations."""
        assert await names_matching(session, is_eligible_on_compilation("2")) == [
            "Comp Track Primary"
        ]


class TestArtistsForLabel:
    """Test the combined artist listing."""

    async def test_roster(self, session: AsyncSession, catalog: dict) -> None:
        """Test the roster is the union of all rules, each artist once, ordered by name."""
        page = await AttributionService(session).artists_for_label("buildit-tech")

        assert [artist.name for artist in page.items] == LABEL_2_ROSTER
        assert page.total == len(LABEL_2_ROSTER)
        assert not page.has_more

    async def test_excluded_artists(self, session: AsyncSession, catalog: dict) -> None:
        """Test pure remixers, featured-only and compilation release credits stay out."""
        page = await AttributionService(session).artists_for_label("2")
        names = {artist.name for artist in page.items}

        assert names.isdisjoint(
            {
                "Pure Remixer",
                "Comp Release Credit",
                "Comp Track Featured",
                "Featured Only",
                "Other Label",
            }
        )

    async def test_other_label(self, session: AsyncSession, catalog: dict) -> None:
        """Test credits on another label's releases attribute there, not here."""
        page = await AttributionService(session).artists_for_label("Build It Records")

        assert [artist.name for artist in page.items] == ["Other Label", "Remixer Release"]

    async def test_empty_label(self, session: AsyncSession, catalog: dict) -> None:
        """Test a label with no catalog gives an empty page."""
        page = await AttributionService(session).artists_for_label("buildit-deep")

        assert page.items == []
        assert page.total == 0

    async def test_pagination(self, session: AsyncSession, catalog: dict) -> None:
        """Test limit/offset slice the ordered roster and total stays the full count."""
        service = AttributionService(session)

        first = await service.artists_for_label("2", limit=4, offset=0)
        second = await service.artists_for_label("2", limit=4, offset=4)

        assert [a.name for a in first.items] == LABEL_2_ROSTER[:4]
        assert first.has_more
        assert [a.name for a in second.items] == LABEL_2_ROSTER[4:]
        assert second.total == len(LABEL_2_ROSTER)
        assert not second.has_more

    async def test_unknown_label(self, session: AsyncSession) -> None:
        """Test unknown labels are rejected before querying."""
        with pytest.raises(InvalidLabelError):
            await AttributionService(session).artists_for_label("not-a-label")

    @pytest.mark.parametrize(("limit", "offset"), [(0, 0), (10, -1)])
    async def test_bad_page(self, session: AsyncSession, limit: int, offset: int) -> None:
        """Test invalid paging arguments."""
        with pytest.raises(ValueError):
            await AttributionService(session).artists_for_label("2", limit=limit, offset=offset)

    async def test_database_error_wrapped(self, mocker: MagicMock) -> None:
        """Test driver errors surface as AttributionQueryError."""
        session = mocker.AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))

        with pytest.raises(AttributionQueryError) as exc_info:
            await AttributionService(session).artists_for_label("2")

        assert exc_info.value.label_id == "2"
        assert isinstance(exc_info.value.__cause__, OperationalError)


class TestReleasesForLabel:
    """Test the release listing."""

    async def test_newest_first_undated_last(self, session: AsyncSession, catalog: dict) -> None:
        """Test releases are ordered by date descending with undated ones last."""
        page = await AttributionService(session).releases_for_label("2")

        assert [release.title for release in page.items] == [
            "Warehouse EP",
            "Night Drive",
            "Tech Vol. 1",
        ]
        assert page.total == 3

    async def test_credits_with_roles(self, session: AsyncSession, catalog: dict) -> None:
        """Test credits come with roles and NULL roles read as primary."""
        page = await AttributionService(session).releases_for_label("2")
        night_drive = next(r for r in page.items if r.title == "Night Drive")
        roles = {credit.artist_name: credit.role for credit in night_drive.artists}

        assert roles == {
            "Alex Primary": "primary",
            "Null Nick": "primary",
            "Pure Remixer": "remixer",
            "Remixer Release": "remixer",
            "Remixer Track": "remixer",
            "Featured Only": "featured",
        }

    async def test_database_error_wrapped(self, mocker: MagicMock) -> None:
        """Test driver errors surface as AttributionQueryError."""
        session = mocker.AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))

        with pytest.raises(AttributionQueryError):
            await AttributionService(session).releases_for_label("buildit-tech")


class TestIsArtistAttributed:
    """Test single-artist checks."""

    async def test_single_artist(self, session: AsyncSession, catalog: dict) -> None:
        """Test the combined rule for individual artists."""
        service = AttributionService(session)

        assert await service.is_artist_attributed("2", catalog["Remixer Track"].id)
        assert not await service.is_artist_attributed("2", catalog["Pure Remixer"].id)
        assert not await service.is_artist_attributed("2", "missing-id")
