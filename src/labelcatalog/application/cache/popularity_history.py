"""Per-track popularity time series with a rolling 30-day window."""

import logging
import time
from collections.abc import Callable

from labelcatalog.domain.entities import PopularitySample
from labelcatalog.domain.ports import ICacheStore

logger = logging.getLogger(__name__)


class PopularityHistory:
    """Popularity samples stored in a sorted set per track.

    Hey future me - score = sample timestamp (epoch ms), member = "<ts>:<popularity>".
    The timestamp is part of the member so two samples with the same popularity at
    different times don't collapse into one. Every write prunes everything older than
    now - 30 days; pruning twice removes nothing the second time.
    """

    RETENTION_SECONDS = 30 * 86400

    def __init__(
        self, store: ICacheStore, clock: Callable[[], float] = time.time
    ) -> None:
        """Initialize history.

        Args:
            store: Key-value store with sorted-set support
            clock: Seconds-since-epoch source (injectable for tests)
        """
        self.store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _make_key(self, track_id: str) -> str:
        return f"ts:popularity:track:{track_id}"

    async def record(
        self, track_id: str, popularity: int, timestamp_ms: int | None = None
    ) -> PopularitySample:
        """Append a sample and prune the series to the retention window.

        Args:
            track_id: Upstream track id
            popularity: Popularity score, 0-100
            timestamp_ms: Sample time (defaults to now)

        Returns:
            The recorded sample

        Raises:
            ValueError: If popularity is outside 0-100
        """
        if isinstance(popularity, bool) or not 0 <= popularity <= 100:
            raise ValueError(f"Popularity must be between 0 and 100, got {popularity!r}")

        timestamp = self._now_ms() if timestamp_ms is None else int(timestamp_ms)
        key = self._make_key(track_id)

        await self.store.add_sample(key, timestamp, f"{timestamp}:{popularity}")
        await self.prune(track_id)
        await self.store.expire(key, self.RETENTION_SECONDS)
        return PopularitySample(timestamp_ms=timestamp, popularity=popularity)

    async def prune(self, track_id: str) -> int:
        """Drop samples older than the retention window. Returns the removed count."""
        cutoff = self._now_ms() - self.RETENTION_SECONDS * 1000
        removed = await self.store.remove_by_score(
            self._make_key(track_id), "-inf", f"({cutoff}"
        )
        if removed:
            logger.debug("Pruned %d popularity samples for track %s", removed, track_id)
        return removed

    async def history(
        self,
        track_id: str,
        from_ts: int | str = "-",
        to_ts: int | str = "+",
    ) -> list[PopularitySample]:
        """Get samples between two timestamps (inclusive), oldest first.

        Args:
            track_id: Upstream track id
            from_ts: Lower bound in epoch ms, "-" for open
            to_ts: Upper bound in epoch ms, "+" for open

        Returns:
            Samples ordered by timestamp
        """
        lower = "-inf" if from_ts == "-" else from_ts
        upper = "+inf" if to_ts == "+" else to_ts

        rows = await self.store.range_by_score(self._make_key(track_id), lower, upper)
        samples: list[PopularitySample] = []
        for member, score in rows:
            _, _, popularity = member.rpartition(":")
            samples.append(PopularitySample(timestamp_ms=int(score), popularity=int(popularity)))
        return samples
