"""Domain-specific exceptions.

These represent failures of the sync pipeline's collaborators. The service layer
catches them and degrades (stale data, empty collection) instead of surfacing
them to page renderers.
"""

from __future__ import annotations


class BookmarksSyncError(Exception):
    """Base exception for all bookmark sync errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ObjectStoreError(BookmarksSyncError):
    """Raised when the durable object store cannot be read or written.

    A missing key is not an error; reads of absent keys return ``None``.
    """

    def __init__(self, message: str, *, key: str | None = None, operation: str | None = None):
        super().__init__(message, details={"key": key, "operation": operation})
        self.key = key
        self.operation = operation


class CorruptDataError(ObjectStoreError):
    """Raised when a stored document exists but cannot be decoded."""


class BookmarkSourceError(BookmarksSyncError):
    """Raised when the external bookmark source fails."""


class BookmarkSourceConfigError(BookmarkSourceError):
    """Raised when the external source is not configured (list id, token or URL missing)."""


class BookmarkSourceRetryableError(BookmarkSourceError):
    """Transient source failure that may succeed on retry."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


class EnrichmentError(BookmarksSyncError):
    """Raised for a single bookmark's OpenGraph or logo failure."""


class RefreshError(BookmarksSyncError):
    """Raised when a refresh cycle aborts unexpectedly."""
