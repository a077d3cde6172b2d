"""Page slicing, navigation metadata and per-tag grouping.

Slicing happens exactly once, in ``paginate_rows``. Everything downstream
(renderers, persisted pages) receives an already-sliced page and uses it as is.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from bookmarks_sync.bookmarks.models import Bookmark, BookmarksIndex, TagIndex
from bookmarks_sync.core.time_utils import utc_now

T = TypeVar("T")


@dataclass(frozen=True)
class PaginationMeta:
    section: str
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_more: bool
    has_prev: bool

    @property
    def start_index(self) -> int:
        """Zero-based offset of the first row on this page."""
        return (self.page - 1) * self.page_size

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "page": self.page,
            "limit": self.page_size,
            "total": self.total_items,
            "totalPages": self.total_pages,
            "hasNext": self.has_more,
            "hasPrev": self.has_prev,
        }


def total_pages_for(total_items: int, page_size: int) -> int:
    if page_size <= 0:
        msg = f"page_size must be positive, got {page_size}"
        raise ValueError(msg)
    return math.ceil(max(0, total_items) / page_size)


def paginate_rows(rows: Sequence[T], page: int, page_size: int) -> list[T]:
    """Return page ``page`` (1-indexed); out-of-range pages are empty."""
    if page_size <= 0:
        msg = f"page_size must be positive, got {page_size}"
        raise ValueError(msg)
    if page < 1:
        return []
    start = (page - 1) * page_size
    return list(rows[start : start + page_size])


def calculate_pagination_meta(
    section: str, total_items: int, page: int, page_size: int
) -> PaginationMeta:
    """Navigation metadata with ``page`` clamped into ``[1, total_pages]``.

    An empty collection reports ``total_pages == 0`` and page 1.
    """
    total_pages = total_pages_for(total_items, page_size)
    clamped = min(max(1, page), max(1, total_pages))
    return PaginationMeta(
        section=section,
        page=clamped,
        page_size=page_size,
        total_items=max(0, total_items),
        total_pages=total_pages,
        has_more=clamped < total_pages,
        has_prev=clamped > 1,
    )


def _default_row_formatter(row: object) -> str:
    if isinstance(row, Bookmark):
        return f"{row.title} <{row.url}>"
    return str(row)


def build_paginated_section_lines(
    page_rows: Sequence[T],
    meta: PaginationMeta,
    *,
    format_row: Callable[[T], str] | None = None,
) -> list[str]:
    """Render one already-paginated page as text lines.

    ``page_rows`` is rendered in full. Row numbers continue from the page
    offset, but the offset is never used to index into ``page_rows``.
    """
    formatter = format_row or _default_row_formatter
    lines = [
        f"{meta.section} (page {meta.page} of {max(1, meta.total_pages)}, "
        f"{meta.total_items} total)"
    ]
    for position, row in enumerate(page_rows, start=meta.start_index + 1):
        lines.append(f"{position}. {formatter(row)}")
    if not page_rows:
        lines.append("(no entries)")
    if meta.has_prev:
        lines.append(f"Previous page: {meta.page - 1}")
    if meta.has_more:
        lines.append(f"Next page: {meta.page + 1}")
    return lines


def build_page_slices(rows: Sequence[T], page_size: int) -> list[list[T]]:
    """Split ``rows`` into consecutive pages; an empty input yields no pages."""
    return [
        paginate_rows(rows, page, page_size)
        for page in range(1, total_pages_for(len(rows), page_size) + 1)
    ]


def build_bookmarks_index(
    bookmarks: Sequence[Bookmark],
    *,
    page_size: int,
    checksum: str | None,
    change_detected: bool,
    fetched_at: int | None,
    attempted_at: int,
) -> BookmarksIndex:
    return BookmarksIndex(
        count=len(bookmarks),
        total_pages=total_pages_for(len(bookmarks), page_size),
        page_size=page_size,
        last_modified=utc_now().isoformat(),
        last_fetched_at=fetched_at,
        last_attempted_at=attempted_at,
        checksum=checksum,
        change_detected=change_detected,
    )


@dataclass
class TagBucket:
    slug: str
    name: str
    bookmarks: list[Bookmark]


def group_by_tag(bookmarks: Sequence[Bookmark]) -> dict[str, TagBucket]:
    """Group bookmarks by tag slug, keeping collection order inside each group."""
    buckets: dict[str, TagBucket] = {}
    for bookmark in bookmarks:
        for tag in bookmark.tags:
            bucket = buckets.get(tag.slug)
            if bucket is None:
                bucket = buckets[tag.slug] = TagBucket(tag.slug, tag.name, [])
            if not bucket.bookmarks or bucket.bookmarks[-1] is not bookmark:
                bucket.bookmarks.append(bookmark)
    return buckets


def select_top_tags(buckets: dict[str, TagBucket], limit: int) -> list[TagBucket]:
    """Most frequent tags first; ties break on slug for stable output."""
    counts = Counter({slug: len(bucket.bookmarks) for slug, bucket in buckets.items()})
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [buckets[slug] for slug, _ in ordered[: max(0, limit)]]


def build_tag_index(
    bucket: TagBucket, *, page_size: int, fetched_at: int | None
) -> TagIndex:
    return TagIndex(
        tag=bucket.name,
        count=len(bucket.bookmarks),
        total_pages=total_pages_for(len(bucket.bookmarks), page_size),
        page_size=page_size,
        last_modified=utc_now().isoformat(),
        last_fetched_at=fetched_at,
    )
