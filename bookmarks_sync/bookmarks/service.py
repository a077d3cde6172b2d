"""Read-through access to the bookmark collection.

Reads are served from the in-memory cache, then the durable snapshot, then
the external source. Read paths never raise: failures are logged and an
empty collection is returned so page rendering stays non-fatal.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from typing import Any

from bookmarks_sync.bookmarks.cache import BookmarksCache
from bookmarks_sync.bookmarks.models import Bookmark, BookmarksIndex, TagBookmarksResult
from bookmarks_sync.bookmarks.pagination import (
    calculate_pagination_meta,
    paginate_rows,
    total_pages_for,
)
from bookmarks_sync.bookmarks.persistence import BookmarksRepository
from bookmarks_sync.bookmarks.refresh import RefreshEngine, RefreshResult
from bookmarks_sync.bookmarks.source import BookmarkSource
from bookmarks_sync.bookmarks.tags import tag_to_slug
from bookmarks_sync.config import SyncConfig
from bookmarks_sync.core.async_utils import BackgroundTasks, raise_if_cancelled
from bookmarks_sync.core.time_utils import now_ms
from bookmarks_sync.domain.exceptions import ObjectStoreError

logger = logging.getLogger(__name__)


def strip_image_data(bookmark: Bookmark) -> Bookmark:
    """Copy of ``bookmark`` without image URLs, for payload-sensitive consumers."""
    content = bookmark.content
    if content is not None and content.image_url is not None:
        content = content.model_copy(update={"image_url": None})
    return bookmark.model_copy(update={"og_image": None, "logo_url": None, "content": content})


class BookmarksService:
    def __init__(
        self,
        *,
        repository: BookmarksRepository,
        cache: BookmarksCache,
        engine: RefreshEngine,
        sync_cfg: SyncConfig | None = None,
        background: BackgroundTasks | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.engine = engine
        self._cfg = sync_cfg or SyncConfig()
        self.background = background or BackgroundTasks("bookmarks")
        self._clock = clock

    @property
    def page_size(self) -> int:
        return self._cfg.page_size

    def set_refresh_source(self, source: BookmarkSource | None) -> None:
        """Swap the external source used by subsequent refreshes."""
        self.engine.source = source
        logger.info(
            "bookmarks_source_set",
            extra={"source": type(source).__name__ if source is not None else None},
        )

    # Collection

    async def get_bookmarks(
        self, skip_external_fetch: bool = False, *, include_image_data: bool = True
    ) -> list[Bookmark]:
        try:
            bookmarks = await self._read_through(skip_external_fetch)
        except Exception as exc:
            raise_if_cancelled(exc)
            logger.error(
                "bookmarks_read_failed",
                exc_info=True,
                extra={"error": str(exc), "skip_external_fetch": skip_external_fetch},
            )
            return []
        if include_image_data:
            return bookmarks
        return [strip_image_data(bookmark) for bookmark in bookmarks]

    async def _read_through(self, skip_external_fetch: bool) -> list[Bookmark]:
        entry = self.cache.get_bookmarks()
        if entry is not None and entry.bookmarks:
            if not skip_external_fetch and self.cache.should_refresh_bookmarks():
                self.schedule_refresh(trigger="stale-cache")
            return list(entry.bookmarks)

        stored = await self.repository.read_dataset()
        if stored:
            index = await self.repository.read_index()
            fetched_at = index.last_fetched_at if index and index.last_fetched_at else 0
            self.cache.set_bookmarks(stored, fetched_at=fetched_at)
            logger.info("bookmarks_loaded_from_store", extra={"count": len(stored)})
            if not skip_external_fetch and self.cache.should_refresh_bookmarks():
                self.schedule_refresh(trigger="stale-store")
            return stored

        if skip_external_fetch:
            return []

        result = await self.engine.refresh(trigger="cold-start")
        return result.bookmarks

    async def get_bookmarks_index(self) -> BookmarksIndex:
        try:
            index = await self.repository.read_index()
        except ObjectStoreError as exc:
            logger.error("bookmarks_index_read_failed", extra={"error": exc.message})
            index = None
        if index is not None:
            return index
        bookmarks = await self.get_bookmarks(skip_external_fetch=True)
        entry = self.cache.peek()
        return BookmarksIndex(
            count=len(bookmarks),
            total_pages=total_pages_for(len(bookmarks), self.page_size),
            page_size=self.page_size,
            last_fetched_at=entry.last_fetched_at if entry else None,
            last_attempted_at=entry.last_attempted_at if entry else None,
        )

    async def get_bookmarks_page(self, page: int) -> list[Bookmark]:
        """One prebuilt page of ``page_size`` bookmarks; out-of-range pages are empty."""
        if page < 1:
            return []
        cached = self.cache.get_page(page)
        if cached is not None:
            return cached

        rows: list[Bookmark] | None
        try:
            rows = await self.repository.read_page(page)
        except ObjectStoreError as exc:
            logger.warning("bookmarks_page_read_failed", extra={"page": page, "error": exc.message})
            rows = None
        if rows is None:
            rows = paginate_rows(await self.get_bookmarks(), page, self.page_size)
        if rows:
            self.cache.set_page(page, rows)
        return rows

    async def get_bookmarks_by_tag(self, tag_slug: str, page: int = 1) -> TagBookmarksResult:
        """Bookmarks carrying ``tag_slug``, served from tag caches when available.

        Lookup order is the in-memory tag page, the durable tag page written
        for the most frequent tags, then a filter over the full collection.
        """
        slug = tag_to_slug(tag_slug)
        page = max(1, page)

        cached = self.cache.get_tag_page(slug, page)
        if cached is not None:
            return dataclasses.replace(cached, from_cache=True)

        try:
            tag_index = await self.repository.read_tag_index(slug)
            rows = await self.repository.read_tag_page(slug, page) if tag_index else None
        except ObjectStoreError as exc:
            logger.warning("bookmarks_tag_page_read_failed", extra={"tag": slug, "error": exc.message})
            tag_index, rows = None, None

        if tag_index is not None and rows is not None:
            result = TagBookmarksResult(
                bookmarks=rows,
                total_count=tag_index.count,
                total_pages=tag_index.total_pages,
                current_page=page,
                from_cache=True,
            )
            self.cache.set_tag_page(slug, page, result)
            return result

        matching = [
            bookmark
            for bookmark in await self.get_bookmarks()
            if any(tag_to_slug(tag.name) == slug for tag in bookmark.tags)
        ]
        meta = calculate_pagination_meta(slug, len(matching), page, self.page_size)
        result = TagBookmarksResult(
            bookmarks=paginate_rows(matching, meta.page, self.page_size),
            total_count=meta.total_items,
            total_pages=meta.total_pages,
            current_page=meta.page,
        )
        if matching:
            self.cache.set_tag_page(slug, meta.page, result)
        return result

    # Invalidation

    def invalidate_bookmarks_cache(self) -> None:
        self.cache.clear_bookmarks()

    def invalidate_tag_cache(self, tag: str) -> int:
        return self.cache.invalidate_tag(tag_to_slug(tag))

    def invalidate_bookmark_cache(self, bookmark_id: str) -> int:
        return self.cache.invalidate_bookmark(bookmark_id)

    # Refresh

    async def refresh(self, *, force: bool = False, trigger: str = "manual") -> RefreshResult:
        return await self.engine.refresh(force=force, trigger=trigger)

    def schedule_refresh(self, *, force: bool = False, trigger: str = "background") -> bool:
        """Start a detached refresh unless one is already running in this process."""
        if self.engine.is_refreshing:
            logger.debug("bookmarks_refresh_already_running", extra={"trigger": trigger})
            return False
        self.background.spawn(self.engine.refresh(force=force, trigger=trigger), name="refresh")
        logger.info("bookmarks_refresh_scheduled", extra={"trigger": trigger, "force": force})
        return True

    async def status(self, *, detailed: bool = False) -> dict[str, Any]:
        """Freshness summary for the refresh endpoint and the CLI."""
        entry = self.cache.peek()
        try:
            index = await self.repository.read_index()
        except ObjectStoreError as exc:
            logger.warning("bookmarks_status_index_failed", extra={"error": exc.message})
            index = None

        if entry is not None and entry.bookmarks:
            last_fetched_at = entry.last_fetched_at
            last_attempted_at = entry.last_attempted_at
            count = len(entry.bookmarks)
        else:
            last_fetched_at = index.last_fetched_at if index else None
            last_attempted_at = index.last_attempted_at if index else None
            count = index.count if index else 0

        needs_refresh = (
            last_fetched_at is None
            or self._clock() - last_fetched_at > self._cfg.revalidation_seconds * 1000
        )
        status: dict[str, Any] = {
            "needsRefresh": needs_refresh,
            "bookmarksCount": count,
            "lastFetchedAt": last_fetched_at,
            "lastAttemptedAt": last_attempted_at,
            "changeDetected": index.change_detected if index else False,
            "isRefreshing": self.engine.is_refreshing,
        }
        if detailed:
            heartbeat = await self.repository.read_heartbeat()
            last_run = await self.repository.read_last_run()
            lock = await self.engine.lock.read_entry()
            status["heartbeat"] = heartbeat.to_wire() if heartbeat else None
            status["lastRun"] = last_run.to_wire() if last_run else None
            status["lock"] = lock.to_wire() if lock else None
            status["cache"] = self.cache.get_stats()
        return status

    async def cleanup_stale_lock(self) -> bool:
        return await self.engine.lock.cleanup_stale()

    async def shutdown(self, timeout: float = 10.0) -> None:
        await self.background.drain(timeout=timeout)
        await self.background.cancel_all()
