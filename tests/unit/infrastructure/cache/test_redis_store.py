"""Tests for the Redis cache store (fakeredis backend)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakeredis import FakeAsyncRedis
from redis.exceptions import ConnectionError as RedisConnectionError

from labelcatalog.config.settings import CacheSettings
from labelcatalog.domain.exceptions import CacheTypeMismatch, CacheUnavailableError
from labelcatalog.infrastructure.cache import RedisCacheStore


class TestStrings:
    """Test string get/set."""

    async def test_set_and_get(self, cache_store: RedisCacheStore) -> None:
        """Test a value round-trips with its TTL."""
        await cache_store.set("track:abc", '{"id": "abc"}', ttl_seconds=60)

        assert await cache_store.get("track:abc") == '{"id": "abc"}'
        assert 0 < await cache_store.ttl("track:abc") <= 60

    async def test_value_gone_after_ttl(
        self, cache_store: RedisCacheStore, redis_client: FakeAsyncRedis
    ) -> None:
        """Test an expired value reads as missing."""
        await cache_store.set("track:abc", '{"id": "abc"}', ttl_seconds=60)
        await redis_client.pexpire("track:abc", 1)
        await asyncio.sleep(0.05)

        assert await cache_store.get("track:abc") is None
        assert await cache_store.ttl("track:abc") == -2

    async def test_get_missing(self, cache_store: RedisCacheStore) -> None:
        """Test missing keys give None."""
        assert await cache_store.get("track:missing") is None

    async def test_set_without_ttl(self, cache_store: RedisCacheStore) -> None:
        """Test values without TTL never expire."""
        await cache_store.set("k", "v")

        assert await cache_store.ttl("k") == -1

    async def test_delete_counts_existing(self, cache_store: RedisCacheStore) -> None:
        """Test delete returns how many keys existed."""
        await cache_store.set("a", "1")
        await cache_store.set("b", "2")

        assert await cache_store.delete("a", "b", "c") == 2
        assert await cache_store.delete() == 0

    async def test_expire_missing_key(self, cache_store: RedisCacheStore) -> None:
        """Test expire on a missing key reports False."""
        assert await cache_store.expire("missing", 10) is False


class TestTypeChecks:
    """Test key/type collision detection."""

    async def test_set_over_a_set_raises(
        self, cache_store: RedisCacheStore, redis_client: FakeAsyncRedis
    ) -> None:
        """Test a string write never silently replaces a set."""
        await redis_client.sadd("label:buildit-tech:tracks", "t1")

        with pytest.raises(CacheTypeMismatch) as exc_info:
            await cache_store.set("label:buildit-tech:tracks", "oops")

        assert exc_info.value.expected == "string"
        assert exc_info.value.actual == "set"
        assert await redis_client.smembers("label:buildit-tech:tracks") == {"t1"}

    async def test_get_on_a_set_raises(
        self, cache_store: RedisCacheStore, redis_client: FakeAsyncRedis
    ) -> None:
        """Test WRONGTYPE from the backend becomes CacheTypeMismatch."""
        await redis_client.sadd("track:abc", "x")

        with pytest.raises(CacheTypeMismatch) as exc_info:
            await cache_store.get("track:abc")

        assert exc_info.value.actual == "set"

    async def test_members_on_a_string_raises(
        self, cache_store: RedisCacheStore, redis_client: FakeAsyncRedis
    ) -> None:
        """Test reading an index that holds a string fails fast."""
        await redis_client.set("label:buildit-tech:tracks", "oops")

        with pytest.raises(CacheTypeMismatch):
            await cache_store.members("label:buildit-tech:tracks")

    async def test_verify_type_missing_key_passes(self, cache_store: RedisCacheStore) -> None:
        """Test missing keys pass any type check."""
        await cache_store.verify_type("nothing", "zset")


class TestSets:
    """Test set operations and the staged swap."""

    async def test_add_to_set(self, cache_store: RedisCacheStore) -> None:
        """Test adding members and refreshing the TTL."""
        await cache_store.add_to_set("s", "a", "b", ttl_seconds=100)
        await cache_store.add_to_set("s", "b", "c")

        assert await cache_store.members("s") == {"a", "b", "c"}
        assert 0 < await cache_store.ttl("s") <= 100

    async def test_members_missing(self, cache_store: RedisCacheStore) -> None:
        """Test missing sets are empty."""
        assert await cache_store.members("nope") == set()

    async def test_replace_set_replaces_members(self, cache_store: RedisCacheStore) -> None:
        """Test the swap drops old members and keeps no staging keys."""
        await cache_store.add_to_set("label:x:tracks", "a", "b", "c")

        await cache_store.replace_set("label:x:tracks", ["c", "d", "d"], ttl_seconds=3600)

        assert await cache_store.members("label:x:tracks") == {"c", "d"}
        assert 0 < await cache_store.ttl("label:x:tracks") <= 3600
        assert await cache_store.keys("*") == ["label:x:tracks"]

    async def test_replace_set_without_ttl_persists(self, cache_store: RedisCacheStore) -> None:
        """Test the staging TTL does not leak onto the final key."""
        await cache_store.replace_set("label:x:tracks", ["a"])

        assert await cache_store.ttl("label:x:tracks") == -1

    async def test_replace_set_empty_deletes(self, cache_store: RedisCacheStore) -> None:
        """Test replacing with nothing removes the index."""
        await cache_store.add_to_set("label:x:tracks", "a")

        await cache_store.replace_set("label:x:tracks", [])

        assert await cache_store.key_type("label:x:tracks") == "none"

    async def test_replace_set_over_string_raises(
        self, cache_store: RedisCacheStore, redis_client: FakeAsyncRedis
    ) -> None:
        """Test the swap refuses to overwrite a different type."""
        await redis_client.set("label:x:tracks", "oops")

        with pytest.raises(CacheTypeMismatch):
            await cache_store.replace_set("label:x:tracks", ["a"])


class TestSortedSets:
    """Test sorted-set time series primitives."""

    async def test_range_and_remove(self, cache_store: RedisCacheStore) -> None:
        """Test range by score and exclusive removal bound."""
        for ts in (100, 200, 300):
            await cache_store.add_sample("ts:popularity:track:a", ts, f"{ts}:50")

        assert await cache_store.range_by_score("ts:popularity:track:a", 150, "+inf") == [
            ("200:50", 200.0),
            ("300:50", 300.0),
        ]

        removed = await cache_store.remove_by_score("ts:popularity:track:a", "-inf", "(200")
        assert removed == 1
        remaining = await cache_store.range_by_score("ts:popularity:track:a", "-inf", "+inf")
        assert [member for member, _ in remaining] == ["200:50", "300:50"]


class TestMaintenance:
    """Test clear_all and connectivity."""

    async def test_clear_all_without_prefix_flushes(self, cache_store: RedisCacheStore) -> None:
        """Test clear_all empties the database and counts keys."""
        await cache_store.set("a", "1")
        await cache_store.add_to_set("b", "x")

        assert await cache_store.clear_all() == 2
        assert await cache_store.keys("*") == []

    async def test_clear_all_with_prefix_only_owned_keys(
        self, redis_client: FakeAsyncRedis
    ) -> None:
        """Test a prefixed store leaves foreign keys alone."""
        store = RedisCacheStore(
            redis_client, CacheSettings(key_prefix="app", retry_base_delay_seconds=0.0)
        )
        await store.set("track:a", "1")
        await redis_client.set("other", "keep")

        assert await store.clear_all() == 1
        assert await redis_client.get("other") == "keep"
        assert await redis_client.exists("app:track:a") == 0

    async def test_ping(self, cache_store: RedisCacheStore) -> None:
        """Test ping."""
        assert await cache_store.ping() is True


class TestUnavailableBackend:
    """Test connection failures."""

    async def test_connection_errors_retried_then_raised(
        self, cache_settings: CacheSettings, mocker: MagicMock
    ) -> None:
        """Test connection errors become CacheUnavailableError after all attempts."""
        client = mocker.MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        store = RedisCacheStore(client, cache_settings)

        with pytest.raises(CacheUnavailableError, match="Connection refused"):
            await store.get("track:abc")

        assert client.get.await_count == cache_settings.retry_attempts

    async def test_recovers_after_transient_error(
        self, cache_settings: CacheSettings, mocker: MagicMock
    ) -> None:
        """Test a single dropped connection is absorbed by the retry."""
        client = mocker.MagicMock()
        client.get = AsyncMock(side_effect=[RedisConnectionError("reset"), "value"])
        store = RedisCacheStore(client, cache_settings)

        assert await store.get("k") == "value"
