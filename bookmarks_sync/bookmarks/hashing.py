from __future__ import annotations

import hashlib
from collections.abc import Sequence

from bookmarks_sync.bookmarks.models import Bookmark, BookmarksIndex
from bookmarks_sync.core.time_utils import iso_to_ms


def _modified_stamp(bookmark: Bookmark) -> str:
    return bookmark.modified_at or bookmark.source_updated_at or bookmark.date_bookmarked or ""


def latest_modified_at(bookmarks: Sequence[Bookmark]) -> str | None:
    stamps = [stamp for stamp in map(_modified_stamp, bookmarks) if stamp]
    if not stamps:
        return None
    return max(stamps, key=lambda stamp: iso_to_ms(stamp) or 0)


def calculate_bookmarks_checksum(bookmarks: Sequence[Bookmark]) -> str:
    """Content hash of a dataset.

    Covers the entry count, the newest modification time and every
    ``id:modifiedAt`` pair (sorted, so source ordering does not matter).
    Enrichment fields are excluded so re-enriching never looks like a change.
    """
    pairs = sorted(f"{bookmark.id}:{_modified_stamp(bookmark)}" for bookmark in bookmarks)
    payload = "\n".join([str(len(bookmarks)), latest_modified_at(bookmarks) or "", *pairs])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def has_bookmarks_changed(
    bookmarks: Sequence[Bookmark], index: BookmarksIndex | None, checksum: str | None = None
) -> bool:
    if index is None or not index.checksum:
        return True
    if index.count != len(bookmarks):
        return True
    return (checksum or calculate_bookmarks_checksum(bookmarks)) != index.checksum
