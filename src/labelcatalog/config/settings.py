"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpotifySettings(BaseSettings):
    """Spotify Web API credentials and request policy.

    Hey future me - credentials are OPTIONAL at load time! We only fail (with
    ConfigurationError) when a token is actually needed. That lets tests and
    cache-only tooling boot without secrets in the environment.
    """

    model_config = SettingsConfigDict(env_prefix="SPOTIFY_", extra="ignore")

    client_id: str = ""
    client_secret: str = ""
    token_url: str = "https://accounts.spotify.com/api/token"  # nosec B105
    api_base_url: str = "https://api.spotify.com/v1"

    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    # 503 backoff never sleeps longer than this
    retry_max_delay_seconds: float = Field(default=3.0, ge=0)

    search_page_size: int = Field(default=50, ge=1, le=50)
    search_page_delay_seconds: float = Field(default=0.1, ge=0)

    @property
    def has_credentials(self) -> bool:
        """Check whether both client credentials are configured."""
        return bool(self.client_id and self.client_secret)


class CacheSettings(BaseSettings):
    """Redis cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")

    redis_url: str = "redis://localhost:6379/0"
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=0.1, ge=0)
    key_prefix: str = ""

    @field_validator("key_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        # "app:" and "app" both end up as "app:"
        value = value.strip()
        if value and not value.endswith(":"):
            value = f"{value}:"
        return value


class DatabaseSettings(BaseSettings):
    """Relational database configuration."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    url: str = "sqlite+aiosqlite:///./labelcatalog.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # Pool options are only applied for PostgreSQL URLs
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = "INFO"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


class Settings(BaseSettings):
    """Top-level settings aggregating every configuration domain."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "labelcatalog"
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


# Yo, settings are read ONCE per process. Tests that need different values should
# build Settings(...) directly instead of poking the environment and calling this.
@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
