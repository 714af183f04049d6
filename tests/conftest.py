"""Shared fixtures: fakeredis-backed store, SQLite database, upstream payload builders."""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
from fakeredis import FakeAsyncRedis

from labelcatalog.config.settings import CacheSettings, DatabaseSettings, SpotifySettings
from labelcatalog.infrastructure.cache import RedisCacheStore
from labelcatalog.infrastructure.persistence import Database
from labelcatalog.infrastructure.retry import RetryMetrics


@pytest.fixture(autouse=True)
def reset_retry_metrics() -> None:
    """Retry metrics are a process-wide singleton."""
    RetryMetrics.get_instance().reset()


# =============================================================================
# CACHE
# =============================================================================


@pytest.fixture
def cache_settings() -> CacheSettings:
    """Cache settings without backoff sleeps."""
    return CacheSettings(retry_attempts=3, retry_base_delay_seconds=0.0)


@pytest.fixture
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    """In-process Redis double."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache_store(redis_client: FakeAsyncRedis, cache_settings: CacheSettings) -> RedisCacheStore:
    """Cache store over fakeredis."""
    return RedisCacheStore(redis_client, cache_settings)


# =============================================================================
# DATABASE
# =============================================================================


# Hey future me - file-based on purpose: every aiosqlite connection to ":memory:" gets
# its OWN empty database, and the importer opens several sessions per run.
@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Fresh SQLite database with all tables."""
    db = Database(DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path}/catalog.db"))
    await db.create_tables()
    yield db
    await db.close()


# =============================================================================
# UPSTREAM
# =============================================================================


@pytest.fixture
def spotify_settings() -> SpotifySettings:
    """Spotify settings with credentials and no real waiting."""
    return SpotifySettings(
        client_id="test-client",
        client_secret="test-secret",
        token_url="https://accounts.spotify.com/api/token",
        api_base_url="https://api.spotify.com/v1",
        max_retries=3,
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        search_page_size=2,
        search_page_delay_seconds=0.0,
    )


class SpotifyPayloads:
    """Builders for upstream JSON objects (only the fields the code reads)."""

    @staticmethod
    def artist(artist_id: str, name: str, **extra: Any) -> dict[str, Any]:
        return {
            "id": artist_id,
            "name": name,
            "uri": f"spotify:artist:{artist_id}",
            "external_urls": {"spotify": f"https://open.spotify.com/artist/{artist_id}"},
            **extra,
        }

    @staticmethod
    def track(
        track_id: str,
        name: str,
        artists: list[dict[str, Any]],
        track_number: int = 1,
        **extra: Any,
    ) -> dict[str, Any]:
        return {
            "id": track_id,
            "name": name,
            "artists": artists,
            "duration_ms": 360000,
            "track_number": track_number,
            "disc_number": 1,
            "explicit": False,
            "uri": f"spotify:track:{track_id}",
            "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
            **extra,
        }

    @staticmethod
    def album(
        album_id: str,
        name: str,
        artists: list[dict[str, Any]],
        tracks: list[dict[str, Any]],
        label: str = "Build It Tech",
        album_type: str = "single",
        release_date: str = "2024-03-01",
        **extra: Any,
    ) -> dict[str, Any]:
        return {
            "id": album_id,
            "name": name,
            "album_type": album_type,
            "label": label,
            "artists": artists,
            "release_date": release_date,
            "release_date_precision": "day",
            "total_tracks": len(tracks),
            "images": [
                {"url": f"https://i.scdn.co/image/{album_id}-640", "width": 640},
                {"url": f"https://i.scdn.co/image/{album_id}-64", "width": 64},
            ],
            "uri": f"spotify:album:{album_id}",
            "external_urls": {"spotify": f"https://open.spotify.com/album/{album_id}"},
            "tracks": {"items": tracks, "total": len(tracks), "next": None},
            **extra,
        }


@pytest.fixture
def payloads() -> type[SpotifyPayloads]:
    """Upstream payload builders."""
    return SpotifyPayloads
