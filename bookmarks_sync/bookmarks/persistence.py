"""Read and write the bookmark documents kept in the durable store."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pydantic import ValidationError

from bookmarks_sync.bookmarks.models import (
    Bookmark,
    BookmarksIndex,
    Heartbeat,
    LastRun,
    TagIndex,
    bookmarks_from_wire,
    bookmarks_to_wire,
)
from bookmarks_sync.bookmarks.pagination import (
    TagBucket,
    build_page_slices,
    build_tag_index,
)
from bookmarks_sync.domain.exceptions import CorruptDataError
from bookmarks_sync.infrastructure.storage.base import ObjectStore
from bookmarks_sync.infrastructure.storage.paths import BookmarkPaths

logger = logging.getLogger(__name__)


class BookmarksRepository:
    def __init__(self, store: ObjectStore, paths: BookmarkPaths | None = None) -> None:
        self.store = store
        self.paths = paths or BookmarkPaths()

    # Dataset

    async def read_dataset(self) -> list[Bookmark] | None:
        """Stored collection, or ``None`` when nothing has been written yet."""
        raw = await self.store.read_json(self.paths.dataset)
        if raw is None:
            return None
        try:
            return bookmarks_from_wire(raw)
        except ValidationError as exc:
            msg = f"Stored bookmarks dataset is malformed: {exc.error_count()} errors"
            raise CorruptDataError(msg, key=self.paths.dataset, operation="read_json") from exc

    async def write_dataset(self, bookmarks: Sequence[Bookmark]) -> None:
        await self.store.write_json(self.paths.dataset, bookmarks_to_wire(list(bookmarks)))

    # Index

    async def read_index(self) -> BookmarksIndex | None:
        raw = await self.store.read_json(self.paths.index)
        if raw is None:
            return None
        try:
            return BookmarksIndex.model_validate(raw)
        except ValidationError:
            logger.warning("bookmarks_index_malformed", extra={"key": self.paths.index})
            return None

    async def write_index(self, index: BookmarksIndex) -> None:
        await self.store.write_json(self.paths.index, index.to_wire())

    # Pages

    async def read_page(self, page: int) -> list[Bookmark] | None:
        raw = await self.store.read_json(self.paths.page(page))
        if raw is None:
            return None
        try:
            return bookmarks_from_wire(raw)
        except ValidationError:
            logger.warning("bookmarks_page_malformed", extra={"page": page})
            return None

    async def write_pages(self, bookmarks: Sequence[Bookmark], page_size: int) -> int:
        pages = build_page_slices(bookmarks, page_size)
        for number, rows in enumerate(pages, start=1):
            await self.store.write_json(self.paths.page(number), bookmarks_to_wire(rows))
        return len(pages)

    async def delete_stale_pages(self, total_pages: int) -> list[str]:
        """Remove page files numbered above ``total_pages``."""
        stale = [
            key
            for key in await self.store.list_objects(self.paths.pages_prefix)
            if (number := BookmarkPaths.page_number_from_key(key)) is not None
            and number > total_pages
        ]
        for key in stale:
            await self.store.delete_object(key)
        if stale:
            logger.info("bookmarks_stale_pages_deleted", extra={"count": len(stale)})
        return stale

    # Tag pages

    async def write_tag_pages(
        self, buckets: Sequence[TagBucket], *, page_size: int, fetched_at: int | None
    ) -> int:
        written = 0
        for bucket in buckets:
            index = build_tag_index(bucket, page_size=page_size, fetched_at=fetched_at)
            for number, rows in enumerate(build_page_slices(bucket.bookmarks, page_size), start=1):
                await self.store.write_json(
                    self.paths.tag_page(bucket.slug, number), bookmarks_to_wire(rows)
                )
                written += 1
            await self.store.write_json(self.paths.tag_index(bucket.slug), index.to_wire())
        await self.delete_stale_tags({bucket.slug for bucket in buckets})
        return written

    async def delete_stale_tags(self, keep: set[str]) -> list[str]:
        """Remove tag index and page files for tags outside ``keep``."""
        prefix = self.paths.tags_prefix
        stale = [
            key
            for key in await self.store.list_objects(prefix)
            if key.startswith(prefix) and key[len(prefix) :].split("/", 1)[0] not in keep
        ]
        for key in stale:
            await self.store.delete_object(key)
        if stale:
            logger.info("bookmarks_stale_tag_pages_deleted", extra={"count": len(stale)})
        return stale

    async def read_tag_index(self, tag_slug: str) -> TagIndex | None:
        raw = await self.store.read_json(self.paths.tag_index(tag_slug))
        if raw is None:
            return None
        try:
            return TagIndex.model_validate(raw)
        except ValidationError:
            logger.warning("bookmarks_tag_index_malformed", extra={"tag": tag_slug})
            return None

    async def read_tag_page(self, tag_slug: str, page: int) -> list[Bookmark] | None:
        raw = await self.store.read_json(self.paths.tag_page(tag_slug, page))
        if raw is None:
            return None
        try:
            return bookmarks_from_wire(raw)
        except ValidationError:
            logger.warning("bookmarks_tag_page_malformed", extra={"tag": tag_slug, "page": page})
            return None

    # Heartbeat and run records

    async def write_heartbeat(self, heartbeat: Heartbeat) -> None:
        await self.store.write_json(self.paths.heartbeat, heartbeat.to_wire())

    async def read_heartbeat(self) -> Heartbeat | None:
        raw = await self.store.read_json(self.paths.heartbeat)
        if raw is None:
            return None
        try:
            return Heartbeat.model_validate(raw)
        except ValidationError:
            return None

    async def delete_heartbeat(self) -> None:
        await self.store.delete_object(self.paths.heartbeat)

    async def write_last_run(self, record: LastRun) -> None:
        await self.store.write_json(self.paths.last_run, record.to_wire())

    async def read_last_run(self) -> LastRun | None:
        raw = await self.store.read_json(self.paths.last_run)
        if raw is None:
            return None
        try:
            return LastRun.model_validate(raw)
        except ValidationError:
            return None
