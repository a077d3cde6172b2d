"""Sanity checks applied to a fetched dataset before it may replace stored data."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import urlparse

from bookmarks_sync.bookmarks.models import Bookmark

logger = logging.getLogger(__name__)

SINGLE_TEST_BOOKMARK_REASON = "Single test bookmark detected"
ALL_MISSING_URLS_REASON = "All bookmarks missing URLs"

_TEST_TITLE_RE = re.compile(r"\btest bookmark\b", re.IGNORECASE)
_TEST_HOSTS = frozenset({"test.com", "www.test.com"})


@dataclass(frozen=True)
class DatasetValidation:
    is_valid: bool
    reason: str | None = None


def is_placeholder_test_bookmark(bookmark: Bookmark) -> bool:
    if _TEST_TITLE_RE.search(bookmark.title or ""):
        return True
    try:
        host = (urlparse(bookmark.url).hostname or "").lower()
    except ValueError:
        return False
    return host in _TEST_HOSTS


def validate_bookmarks_dataset(bookmarks: Sequence[Bookmark]) -> DatasetValidation:
    """Reject degenerate payloads a broken source tends to return.

    Rules apply in order: a lone placeholder entry, then a dataset where no
    entry has a URL. An empty dataset is valid here; callers decide what an
    empty fetch means.
    """
    if len(bookmarks) == 1 and is_placeholder_test_bookmark(bookmarks[0]):
        logger.error(
            "bookmarks_validation_failed",
            extra={"reason": SINGLE_TEST_BOOKMARK_REASON, "bookmark_id": bookmarks[0].id},
        )
        return DatasetValidation(False, f"{SINGLE_TEST_BOOKMARK_REASON}: {bookmarks[0].title}")

    if bookmarks and all(not (bookmark.url or "").strip() for bookmark in bookmarks):
        logger.error(
            "bookmarks_validation_failed",
            extra={"reason": ALL_MISSING_URLS_REASON, "count": len(bookmarks)},
        )
        return DatasetValidation(False, ALL_MISSING_URLS_REASON)

    return DatasetValidation(True)
