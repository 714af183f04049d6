"""Domain exceptions.

Every exception carries an ``http_status`` class attribute so a route layer can
translate it into a response without an isinstance ladder.
"""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    http_status: int = 500

    # Hey future me, message is stored as an attribute so callers can inspect it without
    # parsing str(exception). Don't raise this directly - use a specific subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


# =============================================================================
# RETRY CLASSIFICATION
# Retry loops only ever retry RetryableError. Everything else fails fast.
# =============================================================================


class RetryableError(DomainException):
    """Transient failure (network drop, timeout, connection reset) worth retrying."""

    http_status = 503


class FatalError(DomainException):
    """Deterministic failure that will fail again on retry."""

    http_status = 500


class CacheTypeMismatch(FatalError):
    """Raised when a cache key holds a different data type than the operation expects.

    Example: a label index key that somebody overwrote with a plain string. Retrying
    can never fix that, so this is fatal and surfaces immediately.
    """

    def __init__(self, key: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Cache key {key!r} holds type {actual!r}, expected {expected!r}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual


class CacheUnavailableError(RetryableError):
    """Raised when the cache store stays unreachable after all retry attempts."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


# =============================================================================
# UPSTREAM
# =============================================================================


class UpstreamError(DomainException):
    """Raised when the upstream catalog API fails after the request policy gives up.

    Attributes:
        status: HTTP status of the last response, None for transport failures
        url: Request URL (without credentials)
    """

    http_status = 502

    def __init__(
        self,
        message: str,
        status: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class ConfigurationError(DomainException):
    """Raised when required configuration (e.g. client credentials) is missing."""

    http_status = 503


# =============================================================================
# LABELS / ATTRIBUTION / IMPORT
# =============================================================================


class InvalidLabelError(DomainException):
    """Raised when a label identifier does not resolve to a known label."""

    http_status = 400

    def __init__(self, label: str) -> None:
        super().__init__(f"Invalid label ID: {label!r}")
        self.label = label


class AttributionQueryError(DomainException):
    """Raised when the database fails while resolving label attribution."""

    def __init__(self, label_id: str, message: str) -> None:
        super().__init__(f"Attribution query for label {label_id} failed: {message}")
        self.label_id = label_id


class ImportTransactionError(DomainException):
    """Raised when the transactional write phase of an import fails.

    The transaction is rolled back in full before this is raised; the original
    error is chained as ``__cause__``.
    """

    def __init__(
        self, label_id: str, message: str, import_log_id: str | None = None
    ) -> None:
        super().__init__(f"Import for label {label_id} failed: {message}")
        self.label_id = label_id
        self.import_log_id = import_log_id


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: finishing an import log that already reached a terminal status.
    """

    http_status = 409


__all__ = [
    "AttributionQueryError",
    "CacheTypeMismatch",
    "CacheUnavailableError",
    "ConfigurationError",
    "DomainException",
    "FatalError",
    "ImportTransactionError",
    "InvalidLabelError",
    "InvalidStateException",
    "RetryableError",
    "UpstreamError",
]
