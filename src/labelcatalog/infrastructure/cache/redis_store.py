"""Redis-backed key-value cache store."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from labelcatalog.config.settings import CacheSettings
from labelcatalog.domain.exceptions import (
    CacheTypeMismatch,
    CacheUnavailableError,
    FatalError,
)
from labelcatalog.domain.ports import ICacheStore
from labelcatalog.infrastructure.retry import execute_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Redis TYPE command answers
STRING = "string"
SET = "set"
ZSET = "zset"
NONE = "none"

# Staging keys live at most this long if a swap dies half way
STAGING_TTL_SECONDS = 300


class RedisCacheStore(ICacheStore):
    """Key-value store over redis.asyncio with type checks and selective retry.

    Hey future me - every command goes through _run(), which does two things:
    1. translates redis exceptions into OUR taxonomy (connection/timeout ->
       CacheUnavailableError which is retryable; WRONGTYPE -> CacheTypeMismatch;
       other ResponseErrors -> FatalError)
    2. retries ONLY the retryable ones, base_delay * 2^attempt between attempts

    The client MUST be created with decode_responses=True - this class deals in str.
    """

    def __init__(
        self, client: aioredis.Redis, settings: CacheSettings | None = None
    ) -> None:
        """Initialize store.

        Args:
            client: redis.asyncio client (decode_responses=True)
            settings: Cache settings (retry policy, key prefix)
        """
        self.settings = settings or CacheSettings()
        self._client = client
        self._prefix = self.settings.key_prefix

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "RedisCacheStore":
        """Create a store with a client built from settings.redis_url."""
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        return cls(client, settings)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _unprefix(self, key: str) -> str:
        return key[len(self._prefix) :] if self._prefix else key

    async def _run(
        self,
        description: str,
        operation: Callable[[], Awaitable[T]],
        key: str | None = None,
        expected_type: str | None = None,
    ) -> T:
        async def guarded() -> T:
            try:
                return await operation()
            except (RedisConnectionError, RedisTimeoutError) as e:
                raise CacheUnavailableError(
                    f"Cache backend unavailable during {description}: {e}"
                ) from e
            except ResponseError as e:
                if str(e).startswith("WRONGTYPE") and key is not None:
                    actual = await self._client.type(self._key(key))
                    raise CacheTypeMismatch(
                        key, expected_type or "unknown", actual
                    ) from e
                raise FatalError(f"Cache command {description} failed: {e}") from e

        return await execute_with_retry(
            guarded,
            max_attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay_seconds,
            description=f"cache {description}",
        )

    # =========================================================================
    # TYPE CHECKS
    # =========================================================================

    async def key_type(self, key: str) -> str:
        """Get the Redis type of a key ("none" when missing)."""
        return await self._run("type", lambda: self._client.type(self._key(key)))

    # Listen up - Redis is schemaless, SET happily overwrites a set with a string and
    # nobody notices until the label page goes empty. Call this before typed writes.
    # Missing keys always pass.
    async def verify_type(self, key: str, expected_type: str) -> None:
        """Fail fast if an existing key holds another type.

        Args:
            key: Cache key (without prefix)
            expected_type: "string", "set" or "zset"

        Raises:
            CacheTypeMismatch: If the key exists with a different type
        """
        actual = await self.key_type(key)
        if actual not in (NONE, expected_type):
            raise CacheTypeMismatch(key, expected_type, actual)

    # =========================================================================
    # STRINGS
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Get a string value, None when missing or expired."""
        return await self._run(
            f"get {key}",
            lambda: self._client.get(self._key(key)),
            key=key,
            expected_type=STRING,
        )

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Set a string value with an optional TTL in seconds."""
        await self.verify_type(key, STRING)
        await self._run(
            f"set {key}",
            lambda: self._client.set(self._key(key), value, ex=ttl_seconds),
            key=key,
            expected_type=STRING,
        )

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        if not keys:
            return 0
        full_keys = [self._key(k) for k in keys]
        return int(await self._run("delete", lambda: self._client.delete(*full_keys)))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on an existing key. Returns False if the key is missing."""
        return bool(
            await self._run(
                f"expire {key}",
                lambda: self._client.expire(self._key(key), ttl_seconds),
            )
        )

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-1 no expiry, -2 missing)."""
        return int(await self._run(f"ttl {key}", lambda: self._client.ttl(self._key(key))))

    async def keys(self, pattern: str = "*") -> list[str]:
        """List keys matching a glob pattern using SCAN (never blocking KEYS)."""

        async def scan() -> list[str]:
            return [
                self._unprefix(k)
                async for k in self._client.scan_iter(match=self._key(pattern))
            ]

        return await self._run(f"scan {pattern}", scan)

    # =========================================================================
    # SETS
    # =========================================================================

    async def members(self, set_key: str) -> set[str]:
        """Get all members of a set (empty when missing)."""
        result = await self._run(
            f"smembers {set_key}",
            lambda: self._client.smembers(self._key(set_key)),
            key=set_key,
            expected_type=SET,
        )
        return set(result)

    async def add_to_set(
        self, set_key: str, *ids: str, ttl_seconds: int | None = None
    ) -> None:
        """Add members to a set, optionally refreshing the set TTL."""
        if not ids:
            return
        await self.verify_type(set_key, SET)
        full_key = self._key(set_key)

        async def sadd() -> None:
            await self._client.sadd(full_key, *ids)
            if ttl_seconds:
                await self._client.expire(full_key, ttl_seconds)

        await self._run(f"sadd {set_key}", sadd, key=set_key, expected_type=SET)

    # Hey future me - this is the STAGED SWAP for label indexes. We build the new set under
    # a throwaway key and RENAME it over the real one; RENAME is atomic, so readers see either
    # the old index or the new one, never a half-filled one. RENAME keeps the staging key's
    # TTL, hence the PERSIST when no TTL was asked for.
    async def replace_set(
        self, set_key: str, ids: Iterable[str], ttl_seconds: int | None = None
    ) -> None:
        """Replace a set's members in one atomic swap. Empty ids delete the set."""
        unique_ids = list(dict.fromkeys(ids))
        await self.verify_type(set_key, SET)
        full_key = self._key(set_key)

        if not unique_ids:
            await self.delete(set_key)
            return

        async def swap() -> None:
            staging = f"{full_key}:staging:{uuid.uuid4().hex}"
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.sadd(staging, *unique_ids)
                pipe.expire(staging, ttl_seconds or STAGING_TTL_SECONDS)
                pipe.rename(staging, full_key)
                if not ttl_seconds:
                    pipe.persist(full_key)
                await pipe.execute()

        await self._run(f"replace {set_key}", swap, key=set_key, expected_type=SET)

    # =========================================================================
    # SORTED SETS (time series)
    # =========================================================================

    async def add_sample(self, key: str, score: float, member: str) -> None:
        """Add a member to a sorted set."""
        await self.verify_type(key, ZSET)
        await self._run(
            f"zadd {key}",
            lambda: self._client.zadd(self._key(key), {member: score}),
            key=key,
            expected_type=ZSET,
        )

    async def range_by_score(
        self, key: str, min_score: float | str, max_score: float | str
    ) -> list[tuple[str, float]]:
        """Get members with scores in [min, max], ascending by score."""
        result = await self._run(
            f"zrangebyscore {key}",
            lambda: self._client.zrangebyscore(
                self._key(key), min_score, max_score, withscores=True
            ),
            key=key,
            expected_type=ZSET,
        )
        return [(member, float(score)) for member, score in result]

    async def remove_by_score(
        self, key: str, min_score: float | str, max_score: float | str
    ) -> int:
        """Remove members with scores in [min, max]. Returns the removed count."""
        return int(
            await self._run(
                f"zremrangebyscore {key}",
                lambda: self._client.zremrangebyscore(
                    self._key(key), min_score, max_score
                ),
                key=key,
                expected_type=ZSET,
            )
        )

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def clear_all(self) -> int:
        """Remove every key owned by this store.

        With a key prefix only the prefixed keys go; without one the whole
        logical database is flushed.

        Returns:
            Number of keys removed
        """
        if self._prefix:
            owned = await self.keys("*")
            removed = await self.delete(*owned) if owned else 0
        else:

            async def flush() -> int:
                size = await self._client.dbsize()
                await self._client.flushdb()
                return int(size)

            removed = await self._run("flushdb", flush)

        logger.info("Cleared cache (%d keys removed)", removed)
        return removed

    async def ping(self) -> bool:
        """Check backend connectivity."""
        return bool(await self._run("ping", lambda: self._client.ping()))

    async def close(self) -> None:
        """Close the underlying client connection pool."""
        await self._client.aclose()
