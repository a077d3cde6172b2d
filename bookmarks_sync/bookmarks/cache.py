"""Process-local cache of the bookmark collection and its derived pages.

Entries are replaced wholesale and never mutated in place. The cache is never
authoritative: a cold process always confirms against the durable store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from bookmarks_sync.bookmarks.models import Bookmark, TagBookmarksResult
from bookmarks_sync.core.time_utils import now_ms

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_FAILURE_TTL_SECONDS = 60 * 60
DEFAULT_REVALIDATION_SECONDS = 60 * 60


@dataclass(frozen=True)
class CacheEntry:
    bookmarks: tuple[Bookmark, ...]
    last_fetched_at: int | None
    last_attempted_at: int
    cached_at: int
    ttl_ms: int

    def is_expired(self, now: int) -> bool:
        return now - self.cached_at > self.ttl_ms


@dataclass
class _Slot:
    value: Any
    cached_at: int
    bookmark_ids: frozenset[str] = field(default_factory=frozenset)


class BookmarksCache:
    def __init__(
        self,
        *,
        success_ttl_seconds: int = DEFAULT_SUCCESS_TTL_SECONDS,
        failure_ttl_seconds: int = DEFAULT_FAILURE_TTL_SECONDS,
        revalidation_seconds: int = DEFAULT_REVALIDATION_SECONDS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._success_ttl_ms = success_ttl_seconds * 1000
        self._failure_ttl_ms = failure_ttl_seconds * 1000
        self._revalidation_ms = revalidation_seconds * 1000
        self._clock = clock
        self._entry: CacheEntry | None = None
        self._pages: dict[int, _Slot] = {}
        self._tag_pages: dict[tuple[str, int], _Slot] = {}
        self._hits = 0
        self._misses = 0

    # Full collection

    def get_bookmarks(self) -> CacheEntry | None:
        entry = self._entry
        if entry is None:
            self._misses += 1
            return None
        if entry.is_expired(self._clock()):
            logger.debug("bookmarks_cache_expired", extra={"cached_at": entry.cached_at})
            self._entry = None
            self._misses += 1
            return None
        self._hits += 1
        return entry

    def peek(self) -> CacheEntry | None:
        """Current entry without touching hit/miss counters or expiry."""
        return self._entry

    def set_bookmarks(
        self,
        bookmarks: Sequence[Bookmark],
        *,
        is_failure: bool = False,
        fetched_at: int | None = None,
    ) -> CacheEntry:
        """Replace the cached collection.

        A failed attempt keeps the previous bookmarks and ``last_fetched_at`` and
        only advances ``last_attempted_at``, using the shorter failure TTL.
        """
        now = self._clock()
        previous = self._entry
        if is_failure:
            entry = CacheEntry(
                bookmarks=previous.bookmarks if previous else tuple(bookmarks),
                last_fetched_at=previous.last_fetched_at if previous else None,
                last_attempted_at=now,
                cached_at=now,
                ttl_ms=self._failure_ttl_ms,
            )
        else:
            entry = CacheEntry(
                bookmarks=tuple(bookmarks),
                last_fetched_at=fetched_at if fetched_at is not None else now,
                last_attempted_at=now,
                cached_at=now,
                ttl_ms=self._success_ttl_ms,
            )
            self._pages.clear()
            self._tag_pages.clear()
        self._entry = entry
        logger.debug(
            "bookmarks_cache_set",
            extra={"count": len(entry.bookmarks), "is_failure": is_failure},
        )
        return entry

    def should_refresh_bookmarks(self) -> bool:
        entry = self._entry
        if entry is None or not entry.bookmarks or entry.last_fetched_at is None:
            return True
        return self._clock() - entry.last_fetched_at > self._revalidation_ms

    def clear_bookmarks(self) -> None:
        self._entry = None
        self._pages.clear()
        self._tag_pages.clear()
        logger.info("bookmarks_cache_cleared")

    # Derived pages

    def _get_slot(self, slots: dict[Any, _Slot], key: Any) -> Any | None:
        slot = slots.get(key)
        if slot is None:
            self._misses += 1
            return None
        if self._clock() - slot.cached_at > self._success_ttl_ms:
            del slots[key]
            self._misses += 1
            return None
        self._hits += 1
        return slot.value

    def get_page(self, page: int) -> list[Bookmark] | None:
        value = self._get_slot(self._pages, page)
        return list(value) if value is not None else None

    def set_page(self, page: int, bookmarks: Sequence[Bookmark]) -> None:
        self._pages[page] = _Slot(
            value=tuple(bookmarks),
            cached_at=self._clock(),
            bookmark_ids=frozenset(b.id for b in bookmarks),
        )

    def get_tag_page(self, tag_slug: str, page: int) -> TagBookmarksResult | None:
        return self._get_slot(self._tag_pages, (tag_slug, page))

    def set_tag_page(self, tag_slug: str, page: int, result: TagBookmarksResult) -> None:
        self._tag_pages[(tag_slug, page)] = _Slot(
            value=result,
            cached_at=self._clock(),
            bookmark_ids=frozenset(b.id for b in result.bookmarks),
        )

    def invalidate_tag(self, tag_slug: str) -> int:
        keys = [key for key in self._tag_pages if key[0] == tag_slug]
        for key in keys:
            del self._tag_pages[key]
        logger.info("bookmarks_tag_cache_invalidated", extra={"tag": tag_slug, "entries": len(keys)})
        return len(keys)

    def invalidate_bookmark(self, bookmark_id: str) -> int:
        """Drop every derived page that contains ``bookmark_id``."""
        removed = 0
        for slots in (self._pages, self._tag_pages):
            for key in [k for k, slot in slots.items() if bookmark_id in slot.bookmark_ids]:
                del slots[key]
                removed += 1
        logger.info(
            "bookmarks_item_cache_invalidated",
            extra={"bookmark_id": bookmark_id, "entries": removed},
        )
        return removed

    def get_stats(self) -> dict[str, Any]:
        entry = self._entry
        keys = len(self._pages) + len(self._tag_pages) + (1 if entry else 0)
        return {
            "hits": self._hits,
            "misses": self._misses,
            "keys": keys,
            "bookmarks": len(entry.bookmarks) if entry else 0,
            "pages": len(self._pages),
            "tagPages": len(self._tag_pages),
            "lastFetchedAt": entry.last_fetched_at if entry else None,
            "lastAttemptedAt": entry.last_attempted_at if entry else None,
        }
