"""Refresh status and trigger endpoints."""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Request, Response

from bookmarks_sync.api.dependencies import (
    bearer_token,
    client_ip,
    get_config,
    get_rate_limiter,
    get_service,
    tokens_match,
)
from bookmarks_sync.api.exceptions import RateLimitExceededError
from bookmarks_sync.api.models.responses import success_response
from bookmarks_sync.bookmarks.service import BookmarksService
from bookmarks_sync.config import AppConfig
from bookmarks_sync.core.logging_utils import get_logger
from bookmarks_sync.security.rate_limiter import (
    API_ENDPOINT_STORE_NAME,
    RateLimitConfig,
    RateLimiter,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("")
async def refresh_status(request: Request, service: BookmarksService = Depends(get_service)):
    """Whether the collection is due for a refresh."""
    return success_response(
        await service.status(),
        correlation_id=getattr(request.state, "correlation_id", None),
    )


@router.post("")
async def trigger_refresh(
    request: Request,
    response: Response,
    service: BookmarksService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    cfg: AppConfig = Depends(get_config),
):
    """Start a background refresh and return immediately.

    The cron secret forces a refresh and bypasses the per-client rate limit.
    Anonymous callers are rate limited and short-circuited while data is fresh.
    """
    correlation_id = getattr(request.state, "correlation_id", None)

    if tokens_match(bearer_token(request), cfg.api.cron_refresh_secret):
        started = service.schedule_refresh(force=True, trigger="cron")
        response.status_code = 202
        logger.info("bookmarks_cron_refresh_requested", extra={"started": started})
        return success_response(
            {"status": "started" if started else "in_progress", "forced": True},
            correlation_id=correlation_id,
        )

    ip = client_ip(request)
    limit = RateLimitConfig(
        max_requests=cfg.api.refresh_rate_limit,
        window_ms=cfg.api.refresh_rate_window_seconds * 1000,
    )
    if not await limiter.is_operation_allowed(API_ENDPOINT_STORE_NAME, ip, limit):
        retry_after = math.ceil(limiter.retry_after_ms(API_ENDPOINT_STORE_NAME, ip) / 1000)
        logger.info("bookmarks_refresh_rate_limited", extra={"client": ip})
        raise RateLimitExceededError(retry_after_seconds=max(1, retry_after))

    status = await service.status()
    if not status["needsRefresh"]:
        return success_response(
            {"status": "fresh", "message": "Bookmarks already up to date", **status},
            correlation_id=correlation_id,
        )

    started = service.schedule_refresh(trigger="api")
    response.status_code = 202
    return success_response(
        {
            "status": "started" if started else "in_progress",
            "message": "Bookmarks refresh started",
        },
        correlation_id=correlation_id,
    )
