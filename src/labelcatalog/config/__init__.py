"""Configuration module for labelcatalog."""

from .settings import (
    CacheSettings,
    DatabaseSettings,
    ObservabilitySettings,
    Settings,
    SpotifySettings,
    get_settings,
)

__all__ = [
    "CacheSettings",
    "DatabaseSettings",
    "ObservabilitySettings",
    "Settings",
    "SpotifySettings",
    "get_settings",
]
