"""Tests for read-through access in BookmarksService."""

from __future__ import annotations

import unittest

from bookmarks_sync.bookmarks.cache import BookmarksCache
from bookmarks_sync.bookmarks.models import BookmarkContent
from bookmarks_sync.bookmarks.pagination import build_bookmarks_index, group_by_tag
from bookmarks_sync.bookmarks.persistence import BookmarksRepository
from bookmarks_sync.bookmarks.refresh import RefreshEngine
from bookmarks_sync.bookmarks.service import BookmarksService, strip_image_data
from bookmarks_sync.bookmarks.source import StaticBookmarkSource
from bookmarks_sync.config import SyncConfig
from bookmarks_sync.core.async_utils import BackgroundTasks
from bookmarks_sync.core.time_utils import now_ms
from bookmarks_sync.domain.exceptions import ObjectStoreError
from bookmarks_sync.infrastructure.lock import DistributedLock
from bookmarks_sync.infrastructure.storage.memory import MemoryObjectStore
from bookmarks_sync.infrastructure.storage.paths import BookmarkPaths
from tests.conftest import make_bookmark, make_bookmarks

PATHS = BookmarkPaths()


class _UnreadableStore(MemoryObjectStore):
    async def read_json(self, key):
        msg = "AccessDenied"
        raise ObjectStoreError(msg, key=key, operation="read_json")


class ServiceTestCase(unittest.IsolatedAsyncioTestCase):
    source_bookmarks = make_bookmarks(3)

    def setUp(self) -> None:
        self.store = MemoryObjectStore()
        self._build()

    def _build(self) -> None:
        cfg = SyncConfig(page_size=2)
        self.source = StaticBookmarkSource(self.source_bookmarks)
        self.background = BackgroundTasks("test")
        self.repository = BookmarksRepository(self.store, PATHS)
        self.cache = BookmarksCache()
        engine = RefreshEngine(
            repository=self.repository,
            cache=self.cache,
            lock=DistributedLock(self.store, lock_key=PATHS.lock, instance_id="test"),
            sync_cfg=cfg,
            source=self.source,
            background=self.background,
        )
        self.service = BookmarksService(
            repository=self.repository,
            cache=self.cache,
            engine=engine,
            sync_cfg=cfg,
            background=self.background,
        )

    async def asyncTearDown(self) -> None:
        await self.service.shutdown(timeout=5)

    async def _seed(self, bookmarks, *, fetched_at: int | None = None) -> None:
        fetched_at = now_ms() if fetched_at is None else fetched_at
        await self.repository.write_dataset(bookmarks)
        await self.repository.write_pages(bookmarks, 2)
        await self.repository.write_index(
            build_bookmarks_index(
                bookmarks,
                page_size=2,
                checksum="seeded",
                change_detected=False,
                fetched_at=fetched_at,
                attempted_at=fetched_at,
            )
        )


# ---------------------------------------------------------------------------
# get_bookmarks
# ---------------------------------------------------------------------------


class TestGetBookmarks(ServiceTestCase):
    async def test_stored_snapshot_read_once(self):
        """Repeated reads without external fetch hit the store once, then memory."""
        await self._seed(make_bookmarks(2))

        first = await self.service.get_bookmarks(skip_external_fetch=True)
        second = await self.service.get_bookmarks(skip_external_fetch=True)

        assert [b.id for b in first] == ["bm-1", "bm-2"]
        assert first == second
        assert self.store.count("read_json", PATHS.dataset) == 1
        assert self.source.calls == 0

    async def test_empty_store_without_external_fetch(self):
        assert await self.service.get_bookmarks(skip_external_fetch=True) == []
        assert self.source.calls == 0

    async def test_cold_start_fetches_source(self):
        bookmarks = await self.service.get_bookmarks()

        assert [b.id for b in bookmarks] == ["bm-1", "bm-2", "bm-3"]
        assert self.source.calls == 1
        assert len(await self.repository.read_dataset()) == 3

    async def test_stale_snapshot_served_while_refreshing(self):
        await self._seed(make_bookmarks(1), fetched_at=0)

        bookmarks = await self.service.get_bookmarks()
        assert [b.id for b in bookmarks] == ["bm-1"]

        await self.background.drain(timeout=5)
        assert self.source.calls == 1
        assert len(await self.repository.read_dataset()) == 3

    async def test_store_failure_reads_empty(self):
        self.store = _UnreadableStore()
        self._build()

        assert await self.service.get_bookmarks(skip_external_fetch=True) == []

    async def test_image_data_can_be_stripped(self):
        await self._seed([make_bookmark("a", og_image="https://img/a.png", logo_url="https://l/a.png")])

        bookmarks = await self.service.get_bookmarks(skip_external_fetch=True, include_image_data=False)

        assert bookmarks[0].og_image is None
        assert bookmarks[0].logo_url is None

    def test_strip_image_data_clears_content_image(self):
        bookmark = make_bookmark(
            "a", content=BookmarkContent(url="https://a", image_url="https://img/a.png")
        )
        stripped = strip_image_data(bookmark)
        assert stripped.content.image_url is None
        assert bookmark.content.image_url == "https://img/a.png"


# ---------------------------------------------------------------------------
# Pages and tags
# ---------------------------------------------------------------------------


class TestPagesAndTags(ServiceTestCase):
    async def test_page_from_store(self):
        await self._seed(make_bookmarks(3))

        page = await self.service.get_bookmarks_page(2)

        assert [b.id for b in page] == ["bm-3"]
        assert self.cache.get_page(2) == page

    async def test_page_out_of_range(self):
        await self._seed(make_bookmarks(3))
        assert await self.service.get_bookmarks_page(0) == []
        assert await self.service.get_bookmarks_page(5) == []

    async def test_page_derived_from_collection(self):
        await self.repository.write_dataset(make_bookmarks(3))
        await self.repository.write_index(
            build_bookmarks_index(
                make_bookmarks(3),
                page_size=2,
                checksum="c",
                change_detected=False,
                fetched_at=now_ms(),
                attempted_at=now_ms(),
            )
        )

        page = await self.service.get_bookmarks_page(2)

        assert [b.id for b in page] == ["bm-3"]

    async def test_tag_from_durable_pages(self):
        bookmarks = make_bookmarks(3, tags=["Data Science"])
        await self._seed(bookmarks)
        await self.repository.write_tag_pages(
            list(group_by_tag(bookmarks).values()), page_size=2, fetched_at=1
        )

        result = await self.service.get_bookmarks_by_tag("Data Science", 2)

        assert result.from_cache
        assert result.total_count == 3
        assert result.total_pages == 2
        assert [b.id for b in result.bookmarks] == ["bm-3"]

    async def test_demoted_tag_pages_are_removed(self):
        """Tags missing from the latest tag set lose their durable pages and fall back to filtering."""
        earlier = [
            make_bookmark("a", tags=["Rust"]),
            make_bookmark("b", tags=["Go"]),
            make_bookmark("old", tags=["Go"]),
        ]
        await self.repository.write_tag_pages(
            list(group_by_tag(earlier).values()), page_size=2, fetched_at=1
        )
        current = [make_bookmark("a", tags=["Rust"]), make_bookmark("b", tags=["Go"])]
        await self._seed(current)

        await self.repository.write_tag_pages(
            [group_by_tag(current)["rust"]], page_size=2, fetched_at=2
        )

        assert PATHS.tag_index("go") not in self.store.keys()
        assert PATHS.tag_page("go", 1) not in self.store.keys()
        assert PATHS.tag_index("rust") in self.store.keys()
        result = await self.service.get_bookmarks_by_tag("go")
        assert not result.from_cache
        assert [b.id for b in result.bookmarks] == ["b"]

    async def test_tag_filter_over_collection(self):
        await self._seed(
            [
                make_bookmark("a", tags=["Rust"]),
                make_bookmark("b", tags=["Go"]),
                make_bookmark("c", tags=["rust"]),
            ]
        )

        result = await self.service.get_bookmarks_by_tag("rust")
        again = await self.service.get_bookmarks_by_tag("rust")

        assert [b.id for b in result.bookmarks] == ["a", "c"]
        assert result.total_count == 2
        assert result.current_page == 1
        assert not result.from_cache
        assert again.from_cache

    async def test_unknown_tag(self):
        await self._seed(make_bookmarks(2))
        result = await self.service.get_bookmarks_by_tag("nothing")
        assert result.bookmarks == []
        assert result.total_pages == 0


# ---------------------------------------------------------------------------
# Status and refresh scheduling
# ---------------------------------------------------------------------------


class TestStatus(ServiceTestCase):
    async def test_fresh_index(self):
        await self._seed(make_bookmarks(2))

        status = await self.service.status()

        assert status["needsRefresh"] is False
        assert status["bookmarksCount"] == 2
        assert status["isRefreshing"] is False

    async def test_empty_store_needs_refresh(self):
        status = await self.service.status(detailed=True)

        assert status["needsRefresh"] is True
        assert status["lastRun"] is None
        assert status["lock"] is None
        assert "hits" in status["cache"]

    async def test_schedule_refresh_runs_in_background(self):
        assert self.service.schedule_refresh(force=True, trigger="test")

        await self.background.drain(timeout=5)

        assert self.source.calls == 1
        last_run = await self.repository.read_last_run()
        assert last_run.trigger == "test"

    async def test_index_fallback_from_collection(self):
        await self.repository.write_dataset(make_bookmarks(3))

        index = await self.service.get_bookmarks_index()

        assert index.count == 3
        assert index.total_pages == 2
