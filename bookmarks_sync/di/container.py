"""Wiring for the bookmark pipeline.

Every collaborator may be injected; anything left out is built from the
configuration. The container owns the HTTP client it creates and closes it
in ``aclose()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from bookmarks_sync.adapters.karakeep import KarakeepBookmarkSource
from bookmarks_sync.adapters.opengraph import ImagePersister, LogoFetcher, OpenGraphFetcher
from bookmarks_sync.bookmarks.cache import BookmarksCache
from bookmarks_sync.bookmarks.persistence import BookmarksRepository
from bookmarks_sync.bookmarks.refresh import RefreshEngine
from bookmarks_sync.bookmarks.service import BookmarksService
from bookmarks_sync.bookmarks.source import BookmarkSource
from bookmarks_sync.config import AppConfig, load_config
from bookmarks_sync.core.async_utils import BackgroundTasks
from bookmarks_sync.enrichment.memory import MemoryGuard
from bookmarks_sync.enrichment.pipeline import EnrichmentOptions, EnrichmentPipeline
from bookmarks_sync.infrastructure.lock import DistributedLock
from bookmarks_sync.infrastructure.storage import BookmarkPaths, ObjectStore, build_object_store
from bookmarks_sync.security.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class BookmarksContainer:
    cfg: AppConfig
    store: ObjectStore
    paths: BookmarkPaths
    rate_limiter: RateLimiter
    service: BookmarksService
    background: BackgroundTasks
    http_client: httpx.AsyncClient | None = None
    _owns_client: bool = field(default=False, repr=False)

    async def aclose(self, timeout: float = 10.0) -> None:
        await self.service.shutdown(timeout=timeout)
        if self._owns_client and self.http_client is not None:
            await self.http_client.aclose()
        logger.info("bookmarks_container_closed")


def build_source(cfg: AppConfig) -> BookmarkSource | None:
    """Karakeep source for the configured list, or ``None`` when credentials are missing."""
    if not cfg.source.is_configured:
        return None
    item_limit = None
    if not cfg.runtime.is_production and cfg.source.test_limit > 0:
        item_limit = cfg.source.test_limit
        logger.info("bookmarks_source_test_limit", extra={"limit": item_limit})
    return KarakeepBookmarkSource(cfg.source, item_limit=item_limit)


def build_bookmarks_container(
    cfg: AppConfig | None = None,
    *,
    store: ObjectStore | None = None,
    source: BookmarkSource | None = None,
    http_client: httpx.AsyncClient | None = None,
    enrich: bool = True,
) -> BookmarksContainer:
    """Construct the service with its cache, lock, refresh engine and enrichment.

    Args:
        cfg: Application configuration. If None, loads from environment.
        store: Durable object store. If None, selected from ``cfg.storage``.
        source: External bookmark source. If None, built from ``cfg.source``.
        http_client: Client for OpenGraph, logo and image requests. If None, one
            is created and owned by the container.
        enrich: Attach the enrichment pipeline to refreshes.
    """
    cfg = cfg or load_config()
    store = store if store is not None else build_object_store(cfg.storage)
    paths = BookmarkPaths.for_environment(cfg.runtime.env_suffix)
    background = BackgroundTasks("bookmarks")
    rate_limiter = RateLimiter(store, paths=paths)

    owns_client = False
    pipeline: EnrichmentPipeline | None = None
    options: EnrichmentOptions | None = None
    if enrich and (cfg.enrichment.opengraph_enabled or cfg.enrichment.logos_enabled):
        if http_client is None:
            http_client = httpx.AsyncClient(
                follow_redirects=True,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
            owns_client = True
        enrichment = cfg.enrichment
        pipeline = EnrichmentPipeline(
            og_fetcher=OpenGraphFetcher(
                http_client,
                timeout=enrichment.fetch_timeout_sec,
                max_html_bytes=enrichment.max_html_bytes,
                partial_html_bytes=enrichment.partial_html_bytes,
            ),
            rate_limiter=rate_limiter,
            cfg=enrichment,
            logo_fetcher=LogoFetcher(http_client, timeout=enrichment.fetch_timeout_sec)
            if enrichment.logos_enabled
            else None,
            image_persister=ImagePersister(
                store,
                http_client,
                cdn_url=cfg.storage.cdn_url,
                timeout=enrichment.asset_fetch_timeout_sec,
            )
            if enrichment.persist_images
            else None,
            memory_guard=MemoryGuard(
                enrichment.memory_budget_mb, pause_sec=enrichment.memory_pause_sec
            ),
            asset_base_url=cfg.source.api_url,
        )
        options = EnrichmentOptions.from_config(enrichment)

    cache = BookmarksCache(
        success_ttl_seconds=cfg.sync.cache_success_ttl_seconds,
        failure_ttl_seconds=cfg.sync.cache_failure_ttl_seconds,
        revalidation_seconds=cfg.sync.revalidation_seconds,
    )
    repository = BookmarksRepository(store, paths)
    engine = RefreshEngine(
        repository=repository,
        cache=cache,
        lock=DistributedLock(store, lock_key=paths.lock, ttl_ms=cfg.sync.lock_ttl_ms),
        sync_cfg=cfg.sync,
        source=source if source is not None else build_source(cfg),
        enricher=pipeline,
        enrichment_options=options,
        background=background,
    )
    service = BookmarksService(
        repository=repository,
        cache=cache,
        engine=engine,
        sync_cfg=cfg.sync,
        background=background,
    )
    logger.info(
        "bookmarks_container_built",
        extra={
            "environment": cfg.runtime.environment,
            "enrichment": pipeline is not None,
            "source": type(engine.source).__name__ if engine.source else None,
        },
    )
    return BookmarksContainer(
        cfg=cfg,
        store=store,
        paths=paths,
        rate_limiter=rate_limiter,
        service=service,
        background=background,
        http_client=http_client,
        _owns_client=owns_client,
    )
