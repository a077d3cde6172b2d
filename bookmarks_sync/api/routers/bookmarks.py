"""Public bookmark listing endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from bookmarks_sync.api.dependencies import get_config, get_service
from bookmarks_sync.api.models.responses import success_response
from bookmarks_sync.bookmarks.pagination import calculate_pagination_meta, paginate_rows
from bookmarks_sync.bookmarks.service import BookmarksService
from bookmarks_sync.bookmarks.tags import tag_matches, tag_to_slug
from bookmarks_sync.config import AppConfig
from bookmarks_sync.core.logging_utils import get_logger
from bookmarks_sync.core.time_utils import ms_to_iso

logger = get_logger(__name__)

router = APIRouter()

CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=300"


def clamp_limit(limit: int | None, *, default: int, maximum: int) -> int:
    """Requested page size bounded to ``[1, maximum]``."""
    if limit is None:
        limit = default
    return max(1, min(limit, maximum))


@router.get("")
async def list_bookmarks(
    request: Request,
    response: Response,
    page: int = Query(1, description="1-based page number; clamped into range"),
    limit: int | None = Query(None, description="Page size; clamped to the server maximum"),
    tag: str | None = Query(None, description="Tag name or slug filter"),
    service: BookmarksService = Depends(get_service),
    cfg: AppConfig = Depends(get_config),
):
    """List bookmarks with page-number pagination."""
    page_size = clamp_limit(
        limit, default=cfg.api.default_page_size, maximum=cfg.api.max_page_size
    )
    tag = tag.strip() if tag else None
    index = await service.get_bookmarks_index()

    if tag is None and page_size == service.page_size and index.count > 0:
        meta = calculate_pagination_meta("bookmarks", index.count, page, page_size)
        rows = await service.get_bookmarks_page(meta.page)
    else:
        bookmarks = await service.get_bookmarks()
        if tag:
            bookmarks = [
                bookmark
                for bookmark in bookmarks
                if any(tag_matches(t.name, t.slug, tag) for t in bookmark.tags)
            ]
        meta = calculate_pagination_meta("bookmarks", len(bookmarks), page, page_size)
        rows = paginate_rows(bookmarks, meta.page, page_size)

    logger.debug(
        "bookmarks_listed",
        extra={"page": meta.page, "limit": page_size, "total": meta.total_items, "tag": tag},
    )
    response.headers["Cache-Control"] = CACHE_CONTROL
    return success_response(
        [bookmark.to_wire() for bookmark in rows],
        correlation_id=getattr(request.state, "correlation_id", None),
        pagination=meta.to_dict(),
        dataVersion=index.checksum,
        lastRefreshed=ms_to_iso(index.last_fetched_at),
        filter={"tag": tag_to_slug(tag)} if tag else None,
    )


@router.get("/tags/{tag_slug}")
async def list_bookmarks_by_tag(
    request: Request,
    response: Response,
    tag_slug: str,
    page: int = Query(1, description="1-based page number"),
    service: BookmarksService = Depends(get_service),
):
    """Bookmarks carrying one tag, served from the tag caches when present."""
    result = await service.get_bookmarks_by_tag(tag_slug, page)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return success_response(
        [bookmark.to_wire() for bookmark in result.bookmarks],
        correlation_id=getattr(request.state, "correlation_id", None),
        pagination={
            "page": result.current_page,
            "limit": service.page_size,
            "total": result.total_count,
            "totalPages": result.total_pages,
            "hasNext": result.current_page < result.total_pages,
            "hasPrev": result.current_page > 1,
        },
        filter={"tag": tag_to_slug(tag_slug)},
        fromCache=result.from_cache,
    )
