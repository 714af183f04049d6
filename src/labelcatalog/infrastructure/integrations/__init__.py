"""Upstream API integrations."""

from labelcatalog.infrastructure.integrations.spotify_client import (
    SpotifyClient,
    parse_spotify_reference,
)

__all__ = ["SpotifyClient", "parse_spotify_reference"]
