"""Admin cache-control endpoints, guarded by the admin API key."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from bookmarks_sync.api.dependencies import get_service, require_admin
from bookmarks_sync.api.exceptions import (
    ExternalAPIError,
    ProcessingError,
    RefreshInProgressError,
)
from bookmarks_sync.api.models.responses import success_response
from bookmarks_sync.bookmarks.refresh import RefreshStatus
from bookmarks_sync.bookmarks.service import BookmarksService
from bookmarks_sync.core.logging_utils import get_logger
from bookmarks_sync.domain.exceptions import BookmarksSyncError, ObjectStoreError

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/bookmarks")
async def cache_status(request: Request, service: BookmarksService = Depends(get_service)):
    status = await service.status(detailed=True)
    return success_response(
        {"cache": status.pop("cache"), "status": status},
        correlation_id=getattr(request.state, "correlation_id", None),
    )


@router.post("/bookmarks")
async def invalidate_and_refresh(
    request: Request, service: BookmarksService = Depends(get_service)
):
    """Drop the in-memory caches and run a forced refresh to completion."""
    service.invalidate_bookmarks_cache()
    try:
        result = await service.refresh(force=True, trigger="admin")
    except ObjectStoreError:
        raise
    except BookmarksSyncError as exc:
        raise ProcessingError(f"Bookmarks refresh failed: {exc.message}") from exc

    if result.status is RefreshStatus.LOCKED:
        raise RefreshInProgressError()
    if result.status is RefreshStatus.FAILED:
        raise ExternalAPIError("Bookmarks source", result.reason)
    if not result.success:
        raise ProcessingError(
            f"Bookmarks refresh did not complete: {result.reason}",
            details={"status": result.status.value},
        )

    return success_response(
        {
            "message": "Bookmarks refreshed successfully",
            "status": result.status.value,
            "count": result.count,
            "changed": result.changed,
            "durationMs": result.duration_ms,
        },
        correlation_id=getattr(request.state, "correlation_id", None),
    )


@router.delete("/bookmarks")
async def clear_cache(
    request: Request,
    tag: str | None = Query(None, description="Only drop cached pages for this tag"),
    bookmark_id: str | None = Query(None, description="Only drop pages containing this bookmark"),
    service: BookmarksService = Depends(get_service),
):
    correlation_id = getattr(request.state, "correlation_id", None)
    if tag:
        removed = service.invalidate_tag_cache(tag)
        return success_response(
            {"message": f"Tag cache cleared for {tag}", "removed": removed},
            correlation_id=correlation_id,
        )
    if bookmark_id:
        removed = service.invalidate_bookmark_cache(bookmark_id)
        return success_response(
            {"message": f"Bookmark cache cleared for {bookmark_id}", "removed": removed},
            correlation_id=correlation_id,
        )
    service.invalidate_bookmarks_cache()
    return success_response(
        {"message": "Bookmarks cache metadata cleared successfully"},
        correlation_id=correlation_id,
    )
