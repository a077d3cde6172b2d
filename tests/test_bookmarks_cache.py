"""Tests for the process-local bookmarks cache."""

from __future__ import annotations

import unittest

from bookmarks_sync.bookmarks.cache import BookmarksCache
from bookmarks_sync.bookmarks.models import TagBookmarksResult
from tests.conftest import make_bookmark, make_bookmarks


class _Clock:
    def __init__(self, now: int = 10_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _cache(clock: _Clock) -> BookmarksCache:
    return BookmarksCache(
        success_ttl_seconds=600,
        failure_ttl_seconds=60,
        revalidation_seconds=300,
        clock=clock,
    )


class TestCollectionEntry(unittest.TestCase):
    def test_empty_cache_needs_refresh(self):
        cache = _cache(_Clock())
        assert cache.get_bookmarks() is None
        assert cache.should_refresh_bookmarks() is True

    def test_set_and_get(self):
        """A successful set records fetch and attempt times."""
        clock = _Clock()
        cache = _cache(clock)
        cache.set_bookmarks(make_bookmarks(3))

        entry = cache.get_bookmarks()
        assert entry is not None
        assert [b.id for b in entry.bookmarks] == ["bm-1", "bm-2", "bm-3"]
        assert entry.last_fetched_at == clock.now
        assert entry.last_attempted_at == clock.now
        assert cache.should_refresh_bookmarks() is False

    def test_revalidation_window(self):
        """Data becomes stale after the revalidation interval, not the TTL."""
        clock = _Clock()
        cache = _cache(clock)
        cache.set_bookmarks(make_bookmarks(1))

        clock.now += 300_001
        assert cache.should_refresh_bookmarks() is True
        assert cache.get_bookmarks() is not None

    def test_explicit_fetched_at_drives_staleness(self):
        """Entries loaded from the store keep the stored fetch time."""
        clock = _Clock()
        cache = _cache(clock)
        cache.set_bookmarks(make_bookmarks(1), fetched_at=0)

        assert cache.should_refresh_bookmarks() is True

    def test_entry_expires_after_success_ttl(self):
        clock = _Clock()
        cache = _cache(clock)
        cache.set_bookmarks(make_bookmarks(1))

        clock.now += 600_001
        assert cache.get_bookmarks() is None
        assert cache.peek() is None

    def test_failure_keeps_previous_bookmarks(self):
        """A failed attempt advances last_attempted_at but keeps data and fetch time."""
        clock = _Clock()
        cache = _cache(clock)
        cache.set_bookmarks(make_bookmarks(2))
        fetched_at = clock.now

        clock.now += 1_000
        entry = cache.set_bookmarks([], is_failure=True)

        assert len(entry.bookmarks) == 2
        assert entry.last_fetched_at == fetched_at
        assert entry.last_attempted_at == clock.now
        assert entry.ttl_ms == 60_000

    def test_failure_on_empty_cache(self):
        cache = _cache(_Clock())
        entry = cache.set_bookmarks([], is_failure=True)

        assert entry.bookmarks == ()
        assert entry.last_fetched_at is None
        assert cache.should_refresh_bookmarks() is True

    def test_clear(self):
        cache = _cache(_Clock())
        cache.set_bookmarks(make_bookmarks(1))
        cache.set_page(1, make_bookmarks(1))

        cache.clear_bookmarks()

        assert cache.peek() is None
        assert cache.get_page(1) is None


class TestDerivedPages(unittest.TestCase):
    def test_new_collection_drops_derived_pages(self):
        """Pages built from an older collection are never served after a set."""
        cache = _cache(_Clock())
        cache.set_page(1, make_bookmarks(2))
        cache.set_tag_page("python", 1, TagBookmarksResult(bookmarks=make_bookmarks(1)))

        cache.set_bookmarks(make_bookmarks(5))

        assert cache.get_page(1) is None
        assert cache.get_tag_page("python", 1) is None

    def test_failure_keeps_derived_pages(self):
        cache = _cache(_Clock())
        cache.set_page(1, make_bookmarks(2))

        cache.set_bookmarks([], is_failure=True)

        assert cache.get_page(1) is not None

    def test_invalidate_tag(self):
        cache = _cache(_Clock())
        for page in (1, 2):
            cache.set_tag_page("python", page, TagBookmarksResult())
        cache.set_tag_page("rust", 1, TagBookmarksResult())

        assert cache.invalidate_tag("python") == 2
        assert cache.get_tag_page("python", 1) is None
        assert cache.get_tag_page("rust", 1) is not None

    def test_invalidate_bookmark_drops_pages_containing_it(self):
        cache = _cache(_Clock())
        cache.set_page(1, [make_bookmark("a"), make_bookmark("b")])
        cache.set_page(2, [make_bookmark("c")])
        cache.set_tag_page("python", 1, TagBookmarksResult(bookmarks=[make_bookmark("b")]))

        assert cache.invalidate_bookmark("b") == 2
        assert cache.get_page(1) is None
        assert cache.get_page(2) is not None

    def test_stats_count_hits_and_misses(self):
        cache = _cache(_Clock())
        cache.get_bookmarks()
        cache.set_bookmarks(make_bookmarks(2))
        cache.get_bookmarks()
        cache.set_page(1, make_bookmarks(2))

        stats = cache.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["bookmarks"] == 2
        assert stats["pages"] == 1
        assert stats["keys"] == 2
