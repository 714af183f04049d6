# Hey future me - this is the SELECTIVE retry helper!
#
# Only RetryableError is retried (connection drops, timeouts, resets). Anything else,
# FatalError and CacheTypeMismatch included, propagates on the first attempt.
#
# Callers translate backend exceptions (redis.ConnectionError, ...) into RetryableError
# INSIDE the wrapped operation, so this module stays backend-agnostic.
#
# USAGE:
#   result = await execute_with_retry(lambda: client.get(key), max_attempts=3)
"""Retry utilities with exponential backoff for transient failures."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar, TypeVar

from labelcatalog.domain.exceptions import RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryMetrics:
    """Process-wide counters for everything that goes through the retry helper.

    One instance per process (get_instance()); tests reset it between cases.
    ``gave_up`` counts give-ups per operation description (e.g. "redis GET"),
    which tells a flaky cache apart from one failing call site.
    """

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    retries: int = 0
    total_wait_time_ms: float = 0.0
    last_failure_at: float | None = None
    gave_up: Counter[str] = field(default_factory=Counter)

    _instance: ClassVar[RetryMetrics | None] = None

    @classmethod
    def get_instance(cls) -> RetryMetrics:
        """Process-wide instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_attempt(self) -> None:
        self.attempts += 1

    def record_success(self, wait_time_ms: float = 0.0) -> None:
        self.successes += 1
        self.total_wait_time_ms += wait_time_ms

    def record_failure(self, description: str = "operation") -> None:
        self.failures += 1
        self.gave_up[description] += 1
        self.last_failure_at = time.time()

    def record_retry(self) -> None:
        self.retries += 1

    def get_stats(self) -> dict[str, Any]:
        """Counters as a plain dict, plus the derived failure rate."""
        stats = asdict(self)
        stats["gave_up"] = dict(self.gave_up)
        stats["total_wait_time_ms"] = round(self.total_wait_time_ms, 2)
        stats["failure_rate"] = round(self.failures / self.attempts, 4) if self.attempts else 0.0
        return stats

    def reset(self) -> None:
        """Zero every counter in place."""
        fresh = RetryMetrics()
        for f in fields(self):
            setattr(self, f.name, getattr(fresh, f.name))


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before retry number ``attempt + 1``: base * 2^attempt."""
    return base_delay * (2**attempt)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.1,
    description: str = "operation",
    track_metrics: bool = True,
) -> T:
    """Execute an async operation, retrying only on RetryableError.

    Args:
        operation: Zero-argument callable returning an awaitable
        max_attempts: Total attempts including the first one
        base_delay: Base delay in seconds; attempt n waits base * 2^n
        description: Name used in log messages
        track_metrics: Whether to record RetryMetrics

    Returns:
        Result of the operation

    Raises:
        RetryableError: The last transient error once attempts are exhausted
        Exception: Any non-retryable error, immediately
    """
    metrics = RetryMetrics.get_instance() if track_metrics else None
    total_wait_ms = 0.0

    if metrics:
        metrics.record_attempt()

    for attempt in range(max_attempts):
        try:
            result = await operation()
        except RetryableError as e:
            if attempt >= max_attempts - 1:
                logger.error(
                    "%s failed after %d attempts, giving up: %s",
                    description,
                    max_attempts,
                    e.message,
                )
                if metrics:
                    metrics.record_failure(description)
                raise

            delay = backoff_delay(base_delay, attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                description,
                attempt + 1,
                max_attempts,
                delay,
                e.message,
            )
            if metrics:
                metrics.record_retry()
            await asyncio.sleep(delay)
            total_wait_ms += delay * 1000
        except Exception:
            if metrics:
                metrics.record_failure(description)
            raise
        else:
            if metrics:
                metrics.record_success(total_wait_ms)
            return result

    raise RuntimeError("Unexpected state in execute_with_retry")
