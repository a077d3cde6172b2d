"""Normalize Karakeep list bookmarks into the internal ``Bookmark`` shape."""

from __future__ import annotations

import logging

import httpx

from bookmarks_sync.adapters.karakeep.client import KarakeepClient
from bookmarks_sync.adapters.karakeep.models import KarakeepBookmark
from bookmarks_sync.bookmarks.models import (
    PLACEHOLDER_DESCRIPTION,
    PLACEHOLDER_TITLE,
    Bookmark,
    BookmarkContent,
)
from bookmarks_sync.config import BookmarkSourceConfig
from bookmarks_sync.core.html_utils import count_words, estimate_reading_time, html_to_text
from bookmarks_sync.domain.exceptions import BookmarkSourceConfigError, BookmarkSourceError

logger = logging.getLogger(__name__)


def normalize_karakeep_bookmark(raw: KarakeepBookmark) -> Bookmark:
    content = raw.content
    word_count = count_words(html_to_text(content.html_content))
    return Bookmark(
        id=raw.id,
        url=content.url or "",
        title=content.title or raw.title or PLACEHOLDER_TITLE,
        description=content.description or raw.summary or PLACEHOLDER_DESCRIPTION,
        tags=[tag.name for tag in raw.tags if tag.name],
        date_bookmarked=raw.created_at,
        created_at=raw.created_at,
        modified_at=raw.modified_at,
        source_updated_at=raw.modified_at,
        og_image=content.image_url,
        content=BookmarkContent(
            type=content.type,
            url=content.url or "",
            title=content.title,
            description=content.description,
            image_url=content.image_url,
            image_asset_id=content.image_asset_id,
            screenshot_asset_id=content.screenshot_asset_id,
            favicon=content.favicon,
            author=content.author,
            publisher=content.publisher,
            date_published=content.date_published,
        ),
        summary=raw.summary,
        note=raw.note,
        word_count=word_count,
        reading_time=estimate_reading_time(word_count),
        archived=raw.archived,
        is_favorite=raw.favourited,
    )


class KarakeepBookmarkSource:
    """``BookmarkSource`` reading one Karakeep list."""

    def __init__(
        self,
        cfg: BookmarkSourceConfig,
        *,
        item_limit: int | None = None,
        client_factory=None,
    ) -> None:
        self._cfg = cfg
        self._item_limit = item_limit
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> KarakeepClient:
        return KarakeepClient(
            self._cfg.api_url,
            self._cfg.bearer_token,
            timeout=self._cfg.request_timeout_sec,
            max_retries=self._cfg.max_retries,
        )

    async def fetch_all(self) -> list[Bookmark]:
        if not self._cfg.list_id or not self._cfg.bearer_token:
            msg = "Bookmarks source is not configured: BOOKMARKS_LIST_ID and BOOKMARK_BEARER_TOKEN are required"
            raise BookmarkSourceConfigError(msg)

        try:
            async with self._client_factory() as client:
                raw = await client.get_all_list_bookmarks(
                    self._cfg.list_id,
                    page_limit=self._cfg.page_fetch_limit,
                    max_items=self._item_limit,
                )
        except httpx.HTTPStatusError as exc:
            msg = f"Bookmarks API returned {exc.response.status_code}"
            raise BookmarkSourceError(msg, details={"status_code": exc.response.status_code}) from exc
        except httpx.HTTPError as exc:
            msg = f"Bookmarks API request failed: {exc}"
            raise BookmarkSourceError(msg) from exc

        bookmarks = [normalize_karakeep_bookmark(item) for item in raw]
        logger.info(
            "bookmarks_source_fetched",
            extra={"count": len(bookmarks), "list_id": self._cfg.list_id},
        )
        return bookmarks
