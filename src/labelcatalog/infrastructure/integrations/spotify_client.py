"""Spotify Web API client using the client-credentials flow."""

import asyncio
import base64
import logging
import re
from typing import Any, cast

import httpx

from labelcatalog.config.settings import SpotifySettings
from labelcatalog.domain.entities import EntityKind
from labelcatalog.domain.exceptions import ConfigurationError, UpstreamError
from labelcatalog.domain.ports import IUpstreamCatalogClient

logger = logging.getLogger(__name__)

_URI_RE = re.compile(r"^spotify:(?P<kind>track|artist|album|playlist):(?P<id>[A-Za-z0-9]+)$")
_URL_RE = re.compile(
    r"open\.spotify\.com/(?:intl-[a-zA-Z-]+/)?(?P<kind>track|artist|album|playlist)/"
    r"(?P<id>[A-Za-z0-9]+)"
)
_BARE_ID_RE = re.compile(r"^[A-Za-z0-9]+$")


def parse_spotify_reference(value: str) -> tuple[str | None, str]:
    """Split a Spotify id, URI or open.spotify.com URL into (kind, id).

    Args:
        value: "4uLU6hMCjMI75M1A2tKUQC", "spotify:track:4uLU...", or
            "https://open.spotify.com/track/4uLU...?si=abc"

    Returns:
        Tuple of kind ("track", "artist", "album", "playlist", or None for bare ids)
        and the id

    Raises:
        ValueError: If the value is none of the accepted forms
    """
    value = value.strip()
    match = _URI_RE.match(value) or _URL_RE.search(value)
    if match:
        return match.group("kind"), match.group("id")
    if _BARE_ID_RE.match(value):
        return None, value
    raise ValueError(f"Not a Spotify id, URI or URL: {value!r}")


class SpotifyClient(IUpstreamCatalogClient):
    """HTTP client for the Spotify Web API (app-level access, no user login)."""

    # Spotify refuses search offsets beyond this
    MAX_SEARCH_OFFSET = 1000
    PLAYLIST_PAGE_SIZE = 50
    ALBUM_TRACKS_PAGE_SIZE = 50
    ARTIST_ALBUMS_PAGE_SIZE = 50
    # Own releases only, no "appears_on"
    ARTIST_ALBUM_GROUPS = "album,single,compilation"

    # Hey future me, the HTTP client is NOT created here - it gets lazy-loaded in _get_client()
    # so constructing this object outside a running loop is fine. Build ONE instance per
    # process and inject it; the access token lives on the instance.
    def __init__(self, settings: SpotifySettings) -> None:
        """
        Initialize Spotify client.

        Args:
            settings: Spotify configuration settings
        """
        self.settings = settings
        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # AUTH
    # =========================================================================

    # Listen up - the token is cached for the LIFETIME of this client and never refreshed
    # on a timer. When it expires, the next call gets a 401 and _api_request re-authenticates
    # exactly once. Client-credentials tokens last an hour, so that's one extra round trip
    # per hour at most.
    async def get_access_token(self) -> str:
        """Get an app access token via the client-credentials grant.

        Returns:
            Bearer token

        Raises:
            ConfigurationError: If client id/secret are not configured
            UpstreamError: If the token endpoint rejects the request
        """
        if self._access_token is not None:
            return self._access_token

        if not self.settings.has_credentials:
            raise ConfigurationError(
                "Spotify client credentials are not configured "
                "(set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET)"
            )

        client = await self._get_client()
        credentials = f"{self.settings.client_id}:{self.settings.client_secret}"
        basic = base64.b64encode(credentials.encode()).decode()

        try:
            response = await client.post(
                self.settings.token_url,
                data={"grant_type": "client_credentials"},
                headers={
                    "Authorization": f"Basic {basic}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            )
        except httpx.HTTPError as e:
            raise UpstreamError(
                f"Spotify token request failed: {e}", url=self.settings.token_url
            ) from e

        if not response.is_success:
            raise UpstreamError(
                f"Spotify token request failed: {self._error_message(response)}",
                status=response.status_code,
                url=self.settings.token_url,
            )

        token = response.json().get("access_token")
        if not token:
            raise UpstreamError(
                "Spotify token response did not contain an access_token",
                status=response.status_code,
                url=self.settings.token_url,
            )

        self._access_token = cast(str, token)
        logger.info("Obtained Spotify access token")
        return self._access_token

    def invalidate_token(self) -> None:
        """Forget the cached token so the next call re-authenticates."""
        self._access_token = None

    # =========================================================================
    # REQUEST POLICY
    # =========================================================================

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the upstream error message from an error response."""
        try:
            payload = response.json()
        except ValueError:
            return response.text or response.reason_phrase

        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return str(payload.get("error_description") or error)
        return response.reason_phrase

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Seconds to wait before retrying a 429 or 503 response."""
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                return float(retry_after) if retry_after else 1.0
            except ValueError:
                return 1.0
        return min(
            self.settings.retry_base_delay_seconds * attempt,
            self.settings.retry_max_delay_seconds,
        )

    # Hey future me - ALL Spotify API calls go through here! The policy:
    # - 401 -> drop token, re-auth, re-issue ONCE (a second 401 is an error)
    # - 503 -> back off base*attempt seconds, capped at retry_max_delay_seconds
    # - 429 -> wait exactly what Retry-After says
    # - anything else non-2xx -> UpstreamError right away, no retry
    # - timeouts/transport errors -> UpstreamError right away (status None)
    # 503/429 share max_retries (total attempts, not extra ones).
    async def _api_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated API request with the retry policy applied.

        Args:
            method: HTTP method
            path: API path ("/albums/xyz") or absolute URL
            params: Query parameters

        Returns:
            Decoded JSON body ({} for empty bodies)

        Raises:
            UpstreamError: On any failure the policy does not recover from
        """
        url = path if path.startswith("http") else f"{self.settings.api_base_url}{path}"
        client = await self._get_client()
        max_attempts = self.settings.max_retries
        attempt = 0
        reauthenticated = False

        while True:
            attempt += 1
            token = await self.get_access_token()

            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.TimeoutException as e:
                raise UpstreamError(f"Spotify request timed out: {url}", url=url) from e
            except httpx.HTTPError as e:
                raise UpstreamError(f"Spotify request failed: {e}", url=url) from e

            if response.is_success:
                return cast(dict[str, Any], response.json()) if response.content else {}

            status = response.status_code

            if status == 401 and not reauthenticated:
                logger.info("Spotify token rejected (401), re-authenticating once")
                reauthenticated = True
                self.invalidate_token()
                attempt -= 1
                continue

            if status in (429, 503) and attempt < max_attempts:
                delay = self._retry_delay(response, attempt)
                logger.warning(
                    "Spotify %d (attempt %d/%d), retrying %s in %.1fs",
                    status,
                    attempt,
                    max_attempts,
                    url,
                    delay,
                )
                await asyncio.sleep(delay)
                continue

            message = self._error_message(response)
            logger.error("Spotify API error %d for %s: %s", status, url, message)
            raise UpstreamError(
                f"Spotify API error {status}: {message}", status=status, url=url
            )

    # =========================================================================
    # ENTITIES
    # =========================================================================

    async def get_entity(self, kind: EntityKind, entity_id: str) -> dict[str, Any]:
        """Fetch one track, artist or album.

        Args:
            kind: Entity kind
            entity_id: Bare id, spotify: URI or open.spotify.com URL

        Returns:
            Full upstream object

        Raises:
            ValueError: If a URI/URL points at a different kind
            UpstreamError: On API failure
        """
        ref_kind, ref_id = parse_spotify_reference(entity_id)
        if ref_kind is not None and ref_kind != kind.value:
            raise ValueError(f"Expected a {kind.value} reference, got {ref_kind}: {entity_id}")
        return await self._api_request("GET", f"/{kind.plural}/{ref_id}")

    async def get_track(self, track_id: str) -> dict[str, Any]:
        """Get a track."""
        return await self.get_entity(EntityKind.TRACK, track_id)

    async def get_artist(self, artist_id: str) -> dict[str, Any]:
        """Get an artist."""
        return await self.get_entity(EntityKind.ARTIST, artist_id)

    async def get_album(self, album_id: str) -> dict[str, Any]:
        """Get an album with its embedded first page of tracks."""
        return await self.get_entity(EntityKind.ALBUM, album_id)

    async def get_album_tracks(self, album_id: str, offset: int = 0) -> list[dict[str, Any]]:
        """Get all (simplified) tracks of an album starting at an offset."""
        tracks: list[dict[str, Any]] = []
        while True:
            data = await self._api_request(
                "GET",
                f"/albums/{album_id}/tracks",
                params={"limit": self.ALBUM_TRACKS_PAGE_SIZE, "offset": offset},
            )
            items = [item for item in data.get("items") or [] if item]
            tracks.extend(items)
            offset += len(items)
            if not items or not data.get("next"):
                return tracks

    async def _complete_album_tracks(self, album: dict[str, Any]) -> dict[str, Any]:
        """Fill in album tracks beyond the first embedded page."""
        page = album.get("tracks") or {}
        items = list(page.get("items") or [])
        total = page.get("total") or len(items)
        if page.get("next") and len(items) < total:
            items.extend(await self.get_album_tracks(album["id"], offset=len(items)))
            album["tracks"] = {**page, "items": items, "next": None}
        return album

    # =========================================================================
    # LABEL SEARCH
    # =========================================================================

    @staticmethod
    def label_matches(album_label: str | None, label_name: str) -> bool:
        """Case-insensitive substring match of an album's label against a label name."""
        if not album_label or not label_name:
            return False
        return label_name.strip().lower() in album_label.lower()

    # Hey future me - the search API can't filter on label EXACTLY. `label:"Build It Tech"`
    # also returns albums from "Build It Techno Collective" and friends, and search results
    # don't even include the label field. So: page through search, fetch every album in full,
    # keep the ones whose label contains the name. One album failing to load is logged and
    # skipped; the search request itself failing propagates.
    async def search_albums_by_label(self, label_name: str) -> list[dict[str, Any]]:
        """Find full album objects released under a label.

        Args:
            label_name: Label name as upstream reports it (e.g. "Build It Tech")

        Returns:
            Full album objects (with all tracks) whose label field matches

        Raises:
            UpstreamError: If a search page request fails
        """
        page_size = self.settings.search_page_size
        offset = 0
        seen: set[str] = set()
        albums: list[dict[str, Any]] = []

        while True:
            data = await self._api_request(
                "GET",
                "/search",
                params={
                    "q": f'label:"{label_name}"',
                    "type": "album",
                    "limit": page_size,
                    "offset": offset,
                },
            )
            page = data.get("albums") or {}
            items = page.get("items") or []
            total = int(page.get("total") or 0)

            for item in items:
                album_id = (item or {}).get("id")
                if not album_id or album_id in seen:
                    continue
                seen.add(album_id)

                try:
                    album = await self.get_album(album_id)
                    album = await self._complete_album_tracks(album)
                except UpstreamError as e:
                    logger.warning(
                        "Skipping album %s while searching label %r: %s",
                        album_id,
                        label_name,
                        e.message,
                    )
                    continue

                if self.label_matches(album.get("label"), label_name):
                    albums.append(album)
                else:
                    logger.debug(
                        "Album %s label %r does not match %r",
                        album_id,
                        album.get("label"),
                        label_name,
                    )

            offset += len(items)
            if not items or offset >= total or offset >= self.MAX_SEARCH_OFFSET:
                break
            await asyncio.sleep(self.settings.search_page_delay_seconds)

        logger.info(
            "Label search %r: %d matching albums out of %d candidates",
            label_name,
            len(albums),
            len(seen),
        )
        return albums

    # =========================================================================
    # ARTIST RELEASES
    # =========================================================================

    async def get_artist_albums(
        self, artist_id: str, label_name: str | None = None
    ) -> list[dict[str, Any]]:
        """Get an artist's releases as full album objects.

        Same partial-failure rule as search_albums_by_label(): an album that fails
        to load is logged and skipped, a failing listing page propagates.

        Args:
            artist_id: Bare id, spotify: URI or open.spotify.com URL
            label_name: Keep only albums whose label matches (None keeps all)

        Returns:
            Full album objects (with all tracks), in listing order

        Raises:
            UpstreamError: If a listing page request fails
        """
        _, artist_id = parse_spotify_reference(artist_id)
        album_ids: list[str] = []
        offset = 0

        while True:
            data = await self._api_request(
                "GET",
                f"/artists/{artist_id}/albums",
                params={
                    "include_groups": self.ARTIST_ALBUM_GROUPS,
                    "limit": self.ARTIST_ALBUMS_PAGE_SIZE,
                    "offset": offset,
                },
            )
            items = data.get("items") or []
            for item in items:
                album_id = (item or {}).get("id")
                if album_id and album_id not in album_ids:
                    album_ids.append(album_id)

            offset += len(items)
            if not items or not data.get("next"):
                break

        albums: list[dict[str, Any]] = []
        for album_id in album_ids:
            try:
                album = await self._complete_album_tracks(await self.get_album(album_id))
            except UpstreamError as e:
                logger.warning(
                    "Skipping album %s of artist %s: %s", album_id, artist_id, e.message
                )
                continue
            if label_name is None or self.label_matches(album.get("label"), label_name):
                albums.append(album)

        logger.info(
            "Artist %s: %d albums kept out of %d listed", artist_id, len(albums), len(album_ids)
        )
        return albums

    # =========================================================================
    # PLAYLISTS
    # =========================================================================

    async def get_playlist_tracks(self, playlist_id: str) -> list[dict[str, Any]]:
        """Get every track of a playlist.

        Args:
            playlist_id: Bare id, spotify: URI or open.spotify.com URL

        Returns:
            Full track objects in playlist order (removed/local tracks skipped)
        """
        _, playlist_id = parse_spotify_reference(playlist_id)
        tracks: list[dict[str, Any]] = []
        offset = 0

        while True:
            data = await self._api_request(
                "GET",
                f"/playlists/{playlist_id}/tracks",
                params={"limit": self.PLAYLIST_PAGE_SIZE, "offset": offset},
            )
            items = data.get("items") or []
            for item in items:
                track = (item or {}).get("track")
                if track and track.get("id"):
                    tracks.append(track)

            offset += len(items)
            total = int(data.get("total") or 0)
            if not items or offset >= total:
                return tracks

    async def __aenter__(self) -> "SpotifyClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
