"""
FastAPI application for the bookmarks sync service.

Usage:
    uvicorn bookmarks_sync.api.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from bookmarks_sync.api.error_handlers import register_exception_handlers
from bookmarks_sync.api.middleware import correlation_id_middleware
from bookmarks_sync.api.models.responses import success_response
from bookmarks_sync.api.routers import bookmarks, cache, refresh, system
from bookmarks_sync.bookmarks.source import BookmarkSource
from bookmarks_sync.config import AppConfig, load_config
from bookmarks_sync.core.logging_utils import get_logger, setup_json_logging
from bookmarks_sync.di.container import BookmarksContainer, build_bookmarks_container
from bookmarks_sync.infrastructure.storage import ObjectStore
from bookmarks_sync.services.scheduler import SchedulerService

logger = get_logger(__name__)


def create_app(
    config: AppConfig | None = None,
    *,
    container: BookmarksContainer | None = None,
    store: ObjectStore | None = None,
    source: BookmarkSource | None = None,
    enable_scheduler: bool | None = None,
) -> FastAPI:
    """Build the API application.

    With no arguments configuration is loaded from the environment at startup.
    Tests pass a prebuilt ``container`` (or a ``store`` and ``source``) to get an
    isolated instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg: AppConfig = app.state.config
        if from_environment:
            setup_json_logging(cfg.runtime.log_level, log_file=cfg.runtime.log_file)
        owns_container = app.state.container is None
        if owns_container:
            app.state.container = build_bookmarks_container(cfg, store=store, source=source)

        scheduler_on = cfg.sync.scheduler_enabled if enable_scheduler is None else enable_scheduler
        scheduler: SchedulerService | None = None
        if scheduler_on:
            scheduler = SchedulerService(
                cfg, app.state.container.service, app.state.container.rate_limiter
            )
            await scheduler.start()
        app.state.scheduler = scheduler
        logger.info(
            "api_started",
            extra={"environment": cfg.runtime.environment, "scheduler": scheduler is not None},
        )
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()
            if owns_container:
                await app.state.container.aclose()
                app.state.container = None
            logger.info("api_stopped")

    from_environment = config is None and container is None
    cfg = config or (container.cfg if container is not None else load_config())

    app = FastAPI(
        title="Bookmarks Sync API",
        description="Cached, paginated bookmark collection with lock-guarded refreshes",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.container = container
    app.state.scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.api.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
        max_age=3600,
    )

    app.middleware("http")(correlation_id_middleware)

    app.include_router(bookmarks.router, prefix="/api/bookmarks", tags=["Bookmarks"])
    app.include_router(refresh.router, prefix="/api/bookmarks/refresh", tags=["Refresh"])
    app.include_router(cache.router, prefix="/api/cache", tags=["Cache"])
    app.include_router(system.router, tags=["System"])

    @app.get("/")
    async def root(request: Request):
        """API root endpoint."""
        return success_response(
            {
                "service": "Bookmarks Sync API",
                "version": app.version,
                "docs": "/docs",
                "health": "/health",
            },
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    register_exception_handlers(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # Development server - bind to all interfaces for Docker/container access
    uvicorn.run(
        "bookmarks_sync.api.main:app",
        # nosec B104 - intentional for development/Docker environments
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
