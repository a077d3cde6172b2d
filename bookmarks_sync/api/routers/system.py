"""Health and operational status endpoints."""

from __future__ import annotations

import time
from datetime import datetime

from fastapi import APIRouter, Depends, Request

from bookmarks_sync.api.dependencies import get_container, require_admin
from bookmarks_sync.api.models.responses import success_response
from bookmarks_sync.core.logging_utils import get_logger
from bookmarks_sync.core.time_utils import UTC
from bookmarks_sync.di.container import BookmarksContainer
from bookmarks_sync.domain.exceptions import ObjectStoreError

logger = get_logger(__name__)

router = APIRouter()


async def _check_store(container: BookmarksContainer) -> dict:
    start = time.perf_counter()
    try:
        await container.store.read_json(container.paths.index)
    except ObjectStoreError as exc:
        logger.debug("health_check_store_failed", extra={"error": exc.message})
        return {
            "status": "unhealthy",
            "error": exc.message,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        }
    return {"status": "healthy", "latency_ms": round((time.perf_counter() - start) * 1000, 2)}


@router.get("/health")
async def health_check(request: Request, container: BookmarksContainer = Depends(get_container)):
    """Health check endpoint."""
    store = await _check_store(container)
    return success_response(
        {
            "status": "healthy" if store["status"] == "healthy" else "degraded",
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "components": {"store": store},
        },
        correlation_id=getattr(request.state, "correlation_id", None),
    )


@router.get("/api/system/status", dependencies=[Depends(require_admin)])
async def system_status(request: Request, container: BookmarksContainer = Depends(get_container)):
    """Refresh heartbeat, last run, lock holder and scheduler state."""
    status = await container.service.status(detailed=True)
    scheduler = getattr(request.app.state, "scheduler", None)
    status["scheduler"] = {
        "running": bool(scheduler and scheduler.is_running),
        "nextRefresh": (
            next_run.isoformat()
            if scheduler and (next_run := scheduler.get_next_run_time("bookmarks_refresh"))
            else None
        ),
    }
    status["backgroundTasks"] = container.background.pending
    return success_response(status, correlation_id=getattr(request.state, "correlation_id", None))
