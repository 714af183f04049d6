"""Tests for catalog repositories and the import log state machine."""

from datetime import date
from typing import Any

import pytest

from labelcatalog.domain.entities import ImportStatus
from labelcatalog.domain.exceptions import InvalidStateException
from labelcatalog.domain.value_objects import KNOWN_LABELS, ArtistRole
from labelcatalog.infrastructure.persistence import Database, ImportLogModel
from labelcatalog.infrastructure.persistence.repositories import (
    ArtistRepository,
    CreditRepository,
    ImportLogRepository,
    LabelRepository,
    ReleaseRepository,
    TrackRepository,
    largest_image_url,
    parse_release_date,
)


class TestParseReleaseDate:
    """Test upstream release date parsing."""

    @pytest.mark.parametrize(
        ("value", "precision", "expected"),
        [
            ("2021-06-18", "day", date(2021, 6, 18)),
            ("2021-06", "month", date(2021, 6, 1)),
            ("2021", "year", date(2021, 1, 1)),
            ("2021-06-18", None, date(2021, 6, 18)),
            (None, None, None),
            ("0000", "year", None),
            ("garbage", None, None),
        ],
    )
    def test_precisions(self, value: str | None, precision: str | None, expected: date | None) -> None:
        """Test day, month and year precision plus bad input."""
        assert parse_release_date(value, precision) == expected

    def test_largest_image(self) -> None:
        """Test the widest image wins."""
        images = [{"url": "small", "width": 64}, {"url": "big", "width": 640}]
        assert largest_image_url(images) == "big"
        assert largest_image_url([]) is None


class TestFindOrCreate:
    """Test upstream-id keyed find-or-create."""

    async def test_release_track_artist_created_once(
        self, database: Database, payloads: Any
    ) -> None:
        """Test a second find_or_create returns the existing rows."""
        artist_data = payloads.artist("art1", "Alex Doe")
        track_data = payloads.track("trk1", "Night Drive", [artist_data])
        album = payloads.album("alb1", "Night Drive", [artist_data], [track_data])

        async with database.session_scope() as session:
            await LabelRepository(session).find_or_create(KNOWN_LABELS["buildit-tech"])
            release, created_release = await ReleaseRepository(session).find_or_create(album, "2")
            track, created_track = await TrackRepository(session).find_or_create(
                track_data, release.id
            )
            artist, created_artist = await ArtistRepository(session).find_or_create(
                artist_data, label_id="2"
            )
            assert (created_release, created_track, created_artist) == (True, True, True)
            assert release.release_type == "single"
            assert release.release_date == date(2024, 3, 1)
            assert release.artwork_url == "https://i.scdn.co/image/alb1-640"

        async with database.session_scope() as session:
            again, created = await ReleaseRepository(session).find_or_create(album, "2")
            assert not created
            assert again.id == release.id

            artist_again, created = await ArtistRepository(session).find_or_create(
                artist_data, label_id="1"
            )
            assert not created
            # label_id is only written on create
            assert artist_again.label_id == "2"

            assert await ReleaseRepository(session).count_all() == 1
            assert await TrackRepository(session).count_all() == 1
            assert await ArtistRepository(session).count_all() == 1

    async def test_label_find_or_create(self, database: Database) -> None:
        """Test label rows are seeded from the known labels."""
        async with database.session_scope() as session:
            label, created = await LabelRepository(session).find_or_create(
                KNOWN_LABELS["buildit-deep"]
            )
            assert created
            assert label.id == "3"
            assert label.slug == "buildit-deep"

            _, created = await LabelRepository(session).find_or_create(
                KNOWN_LABELS["buildit-deep"]
            )
            assert not created


class TestCreditRepository:
    """Test credit link creation."""

    async def test_links_are_unique_per_role(self, database: Database, payloads: Any) -> None:
        """Test one artist can hold several roles but each only once."""
        artist_data = payloads.artist("art1", "Kolter")
        track_data = payloads.track("trk1", "Night Drive (Kolter Remix)", [artist_data])
        album = payloads.album("alb1", "Night Drive", [artist_data], [track_data])

        async with database.session_scope() as session:
            await LabelRepository(session).find_or_create(KNOWN_LABELS["buildit-tech"])
            release, _ = await ReleaseRepository(session).find_or_create(album, "2")
            track, _ = await TrackRepository(session).find_or_create(track_data, release.id)
            artist, _ = await ArtistRepository(session).find_or_create(artist_data)
            credits = CreditRepository(session)

            assert await credits.link_release_artist(release.id, artist.id, ArtistRole.PRIMARY)
            assert await credits.link_release_artist(release.id, artist.id, ArtistRole.REMIXER)
            assert not await credits.link_release_artist(
                release.id, artist.id, ArtistRole.PRIMARY
            )

            assert await credits.link_track_artist(track.id, artist.id, ArtistRole.REMIXER)
            assert not await credits.link_track_artist(track.id, artist.id, ArtistRole.REMIXER)
            assert await credits.count_track_links() == 1


class TestImportLog:
    """Test the import log lifecycle."""

    def test_finish_once(self) -> None:
        """Test started -> completed sets the end time."""
        log = ImportLogModel(label_id="2", status=ImportStatus.STARTED.value, message="Starting")

        log.finish(ImportStatus.COMPLETED, "Successfully imported 3 releases")

        assert log.import_status is ImportStatus.COMPLETED
        assert log.message == "Successfully imported 3 releases"
        assert log.completed_at is not None

    def test_terminal_states_are_final(self) -> None:
        """Test a finished log cannot transition again."""
        log = ImportLogModel(label_id="2", status=ImportStatus.STARTED.value)
        log.finish(ImportStatus.FAILED, "Error searching for albums: boom")

        with pytest.raises(InvalidStateException):
            log.finish(ImportStatus.COMPLETED, "late success")

        assert log.import_status is ImportStatus.FAILED

    def test_cannot_finish_as_started(self) -> None:
        """Test finishing requires a terminal status."""
        log = ImportLogModel(label_id="2", status=ImportStatus.STARTED.value)

        with pytest.raises(ValueError):
            log.finish(ImportStatus.STARTED, "nope")

    async def test_repository_lists_newest_first(self, database: Database) -> None:
        """Test logs are stored with status started and listed newest first."""
        async with database.session_scope() as session:
            await LabelRepository(session).find_or_create(KNOWN_LABELS["buildit-tech"])
            repo = ImportLogRepository(session)
            first = await repo.create("2", "Starting import for Build It Tech")
            second = await repo.create("2", "Starting import for Build It Tech")
            assert first.status == ImportStatus.STARTED.value

        async with database.session_scope() as session:
            logs = await ImportLogRepository(session).list_for_label("2")

        assert [log.id for log in logs] == [second.id, first.id]
