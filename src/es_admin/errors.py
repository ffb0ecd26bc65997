# ABOUTME: Exception hierarchy for the Elasticsearch admin client
# ABOUTME: Separates build, decode and application-level failures from transport errors

"""
Structured errors raised by the admin client.

Transport failures are NOT wrapped: they stay ``httpx.HTTPError`` instances
so callers can tell "the cluster said no" apart from "the cluster never
answered". Everything defined here means the request was either never sent
or was answered with something the caller must not treat as success.
"""

from __future__ import annotations


class ElasticsearchAdminError(Exception):
    """
    Base class for admin client errors.

    USAGE:
    ------
    try:
        client.do_synchronized_flush()
    except ElasticsearchAdminError as e:
        print(f"Error {e.code}: {e.message}")
    """

    def __init__(self, code: int, message: str, details: str | None = None) -> None:
        """
        Initialize admin error.

        Args:
            code: HTTP status code, or 0 when no response was received
            message: Primary error message
            details: Additional error details (optional)
        """
        self.code = code
        self.message = message
        self.details = details
        super().__init__(str(self))

    def __str__(self) -> str:
        base = f"Elasticsearch admin error ({self.code}): {self.message}"
        if self.details:
            base += f" - {self.details}"
        return base


class RequestBuildError(ElasticsearchAdminError):
    """The request could not be built, so no HTTP attempt was made."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(0, message, details)


class NotAcknowledgedError(ElasticsearchAdminError):
    """The cluster answered 200 but did not acknowledge the change."""


class SyncedFlushError(ElasticsearchAdminError):
    """A synced flush left shards unflushed."""

    def __init__(self, code: int, failed_shards: int) -> None:
        self.failed_shards = failed_shards
        super().__init__(
            code,
            f"Failed to flush {failed_shards} shards in preparation for cluster restart",
        )


class DecodeError(ValueError):
    """A decoded response did not contain the expected value."""

    def __init__(self, path: str, expected: str, actual: object) -> None:
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"{path}: expected {expected}, got {actual!r}")
