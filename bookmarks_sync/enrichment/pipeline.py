"""OpenGraph and logo enrichment for bookmark collections.

Each bookmark is enriched independently: a failed fetch is recorded and the
bookmark continues without that field. Every outbound request waits for a
rate-limit permit; an API whose permit wait times out is skipped for the
remainder of the run instead of failing it.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from bookmarks_sync.adapters.opengraph.fetcher import OpenGraphFetcher, normalize_etag
from bookmarks_sync.adapters.opengraph.images import ImagePersister
from bookmarks_sync.adapters.opengraph.logos import LogoFetcher
from bookmarks_sync.adapters.opengraph.parser import OpenGraphMetadata
from bookmarks_sync.bookmarks.models import Bookmark
from bookmarks_sync.config import EnrichmentConfig
from bookmarks_sync.core.async_utils import raise_if_cancelled
from bookmarks_sync.core.time_utils import utc_now
from bookmarks_sync.domain.exceptions import EnrichmentError
from bookmarks_sync.enrichment.memory import MemoryGuard
from bookmarks_sync.security.rate_limiter import (
    LOGO_FETCH_STORE_NAME,
    OPENGRAPH_FETCH_CONTEXT_ID,
    OPENGRAPH_FETCH_STORE_NAME,
    RateLimitConfig,
    RateLimiter,
)

logger = logging.getLogger(__name__)

ENRICHMENT_FIELDS = (
    "og_image",
    "og_title",
    "og_description",
    "og_fetched_at",
    "og_image_etag",
    "logo_url",
)


@dataclass
class EnrichmentOptions:
    fetch_opengraph: bool = True
    fetch_logos: bool = True
    persist_images: bool = False
    revalidate_images: bool = False
    force: bool = False
    batch_size: int = 5
    request_delay_ms: int = 100
    # 0 means no waiting: a full window skips the API immediately.
    rate_limit_wait_ms: int = 5000
    on_batch_complete: Callable[[int, int], Awaitable[None]] | None = None

    @classmethod
    def from_config(cls, cfg: EnrichmentConfig, **overrides: Any) -> EnrichmentOptions:
        values: dict[str, Any] = {
            "fetch_opengraph": cfg.opengraph_enabled,
            "fetch_logos": cfg.logos_enabled,
            "persist_images": cfg.persist_images,
            "revalidate_images": cfg.revalidate_images,
            "batch_size": cfg.batch_size,
            "request_delay_ms": cfg.request_delay_ms,
            "rate_limit_wait_ms": cfg.rate_limit_wait_ms,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class EnrichmentStats:
    processed: int = 0
    enriched: int = 0
    skipped: int = 0
    failed: int = 0
    rate_limited: int = 0
    logos_found: int = 0
    memory_pauses: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "enriched": self.enriched,
            "skipped": self.skipped,
            "failed": self.failed,
            "rate_limited": self.rate_limited,
            "logos_found": self.logos_found,
            "memory_pauses": self.memory_pauses,
            "errors": list(self.errors),
        }


@dataclass
class EnrichmentResult:
    bookmarks: list[Bookmark]
    stats: EnrichmentStats


@dataclass
class _RunState:
    options: EnrichmentOptions
    stats: EnrichmentStats
    now: datetime
    exhausted: set[str] = field(default_factory=set)


def asset_url(api_url: str | None, asset_id: str | None) -> str | None:
    if not api_url or not asset_id:
        return None
    return f"{api_url.rstrip('/')}/assets/{asset_id}"


def select_best_image(
    bookmark: Bookmark,
    metadata: OpenGraphMetadata | None = None,
    *,
    asset_base_url: str | None = None,
) -> str | None:
    """Pick the display image.

    Priority: source image URL, source image asset, OpenGraph image,
    screenshot asset, then whatever the bookmark already carried.
    """
    content = bookmark.content
    candidates = [
        content.image_url if content else None,
        asset_url(asset_base_url, content.image_asset_id if content else None),
        metadata.image if metadata else None,
        asset_url(asset_base_url, content.screenshot_asset_id if content else None),
        bookmark.og_image,
    ]
    return next((candidate for candidate in candidates if candidate), None)


def needs_enrichment(bookmark: Bookmark, *, now: datetime, max_age_days: int) -> bool:
    if not bookmark.og_image or not bookmark.og_fetched_at:
        return True
    try:
        fetched = datetime.fromisoformat(bookmark.og_fetched_at.replace("Z", "+00:00"))
    except ValueError:
        return True
    return now - fetched > timedelta(days=max_age_days)


async def should_refresh_og_image(
    bookmark: Bookmark,
    fetcher: OpenGraphFetcher,
    *,
    now: datetime,
    max_age_days: int,
) -> bool:
    """True when enrichment is due or the stored image's ETag no longer matches."""
    if needs_enrichment(bookmark, now=now, max_age_days=max_age_days):
        return True
    if not bookmark.og_image_etag or not bookmark.og_image:
        return False
    try:
        current = await fetcher.get_etag(bookmark.og_image)
    except EnrichmentError as exc:
        logger.debug("og_image_head_failed", extra={"url": bookmark.og_image, "error": str(exc)})
        return True
    return current != normalize_etag(bookmark.og_image_etag)


class EnrichmentPipeline:
    def __init__(
        self,
        *,
        og_fetcher: OpenGraphFetcher,
        rate_limiter: RateLimiter,
        cfg: EnrichmentConfig | None = None,
        logo_fetcher: LogoFetcher | None = None,
        image_persister: ImagePersister | None = None,
        memory_guard: MemoryGuard | None = None,
        asset_base_url: str | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._cfg = cfg or EnrichmentConfig()
        self._og_fetcher = og_fetcher
        self._logo_fetcher = logo_fetcher
        self._persister = image_persister
        self._rate_limiter = rate_limiter
        self._memory_guard = memory_guard or MemoryGuard(
            self._cfg.memory_budget_mb, pause_sec=self._cfg.memory_pause_sec
        )
        self._asset_base_url = asset_base_url
        self._clock = clock
        self._sleep = sleep
        self._og_limit = RateLimitConfig(
            self._cfg.og_rate_limit_max_requests, self._cfg.og_rate_limit_window_ms
        )
        self._logo_limit = RateLimitConfig(
            self._cfg.logo_rate_limit_max_requests, self._cfg.logo_rate_limit_window_ms
        )

    async def process_bookmarks_in_batches(
        self, bookmarks: Sequence[Bookmark], options: EnrichmentOptions | None = None
    ) -> EnrichmentResult:
        """Return a new collection with enrichment applied where fetches succeeded.

        Batches run sequentially; bookmarks inside a batch run concurrently.
        Input order is preserved.
        """
        opts = options or EnrichmentOptions.from_config(self._cfg)
        state = _RunState(options=opts, stats=EnrichmentStats(), now=self._clock())
        batch_size = max(1, opts.batch_size)
        output: list[Bookmark] = []
        total = len(bookmarks)

        logger.info(
            "enrichment_started",
            extra={"count": total, "batch_size": batch_size, "force": opts.force},
        )
        for start in range(0, total, batch_size):
            if await self._memory_guard.check():
                state.stats.memory_pauses += 1
            batch = bookmarks[start : start + batch_size]
            output.extend(await asyncio.gather(*(self._enrich_safely(b, state) for b in batch)))

            if opts.on_batch_complete is not None:
                await opts.on_batch_complete(len(output), total)
            if opts.request_delay_ms and start + batch_size < total:
                await self._sleep(opts.request_delay_ms / 1000)

        logger.info("enrichment_completed", extra=state.stats.as_dict() | {"count": total})
        return EnrichmentResult(bookmarks=output, stats=state.stats)

    async def _enrich_safely(self, bookmark: Bookmark, state: _RunState) -> Bookmark:
        state.stats.processed += 1
        try:
            return await self._enrich_one(bookmark, state)
        except Exception as exc:
            raise_if_cancelled(exc)
            state.stats.failed += 1
            state.stats.errors.append({"id": bookmark.id, "url": bookmark.url, "error": str(exc)})
            logger.warning(
                "enrichment_item_failed",
                extra={"bookmark_id": bookmark.id, "url": bookmark.url, "error": str(exc)},
            )
            return bookmark

    async def _acquire(self, store_name: str, limit: RateLimitConfig, state: _RunState) -> bool:
        """Wait for a permit on ``store_name``; ``False`` once that API is exhausted."""
        if store_name in state.exhausted:
            return False
        try:
            await self._rate_limiter.wait_for_permit(
                store_name,
                OPENGRAPH_FETCH_CONTEXT_ID,
                limit,
                timeout_ms=state.options.rate_limit_wait_ms,
            )
        except TimeoutError:
            if store_name not in state.exhausted:
                state.exhausted.add(store_name)
                state.stats.rate_limited += 1
                logger.info("enrichment_rate_limited", extra={"api": store_name})
            return False
        return True

    def _og_permit(self, state: _RunState) -> Callable[[], Awaitable[bool]]:
        return functools.partial(self._acquire, OPENGRAPH_FETCH_STORE_NAME, self._og_limit, state)

    def _logo_permit(self, state: _RunState) -> Callable[[], Awaitable[bool]]:
        return functools.partial(self._acquire, LOGO_FETCH_STORE_NAME, self._logo_limit, state)

    async def _enrich_one(self, bookmark: Bookmark, state: _RunState) -> Bookmark:
        opts = state.options
        if not bookmark.url:
            state.stats.skipped += 1
            return bookmark

        due = opts.force or needs_enrichment(
            bookmark, now=state.now, max_age_days=self._cfg.image_max_age_days
        )
        if (
            not due
            and opts.revalidate_images
            and bookmark.og_image_etag
            and await self._og_permit(state)()
        ):
            due = await should_refresh_og_image(
                bookmark,
                self._og_fetcher,
                now=state.now,
                max_age_days=self._cfg.image_max_age_days,
            )
        wants_logo = opts.fetch_logos and self._logo_fetcher is not None and not bookmark.logo_url
        if not due and not wants_logo:
            state.stats.skipped += 1
            return bookmark

        updates: dict[str, Any] = {}
        metadata: OpenGraphMetadata | None = None
        errors: list[tuple[str, str]] = []

        if due and opts.fetch_opengraph and await self._og_permit(state)():
            try:
                metadata = (await self._og_fetcher.fetch(bookmark.url)).metadata
            except EnrichmentError as exc:
                errors.append(("opengraph", exc.message))

        if due:
            image = select_best_image(bookmark, metadata, asset_base_url=self._asset_base_url)
            if image and opts.persist_images and self._persister is not None:
                if not self._persister.is_persisted_url(image):
                    try:
                        persisted = await self._persister.persist(
                            image, directory="opengraph", permit=self._og_permit(state)
                        )
                    except Exception as exc:
                        raise_if_cancelled(exc)
                        errors.append(("image", str(exc)))
                        persisted = None
                    if persisted is not None:
                        image = persisted.url
                        if persisted.etag:
                            updates["og_image_etag"] = persisted.etag
            if image and image != bookmark.og_image:
                updates["og_image"] = image
            if metadata is not None:
                updates.update(self._metadata_updates(bookmark, metadata))
            if metadata is not None or (image and not opts.fetch_opengraph):
                updates["og_fetched_at"] = state.now.isoformat().replace("+00:00", "Z")
            if (
                opts.revalidate_images
                and image
                and "og_image_etag" not in updates
                and await self._og_permit(state)()
            ):
                try:
                    etag = await self._og_fetcher.get_etag(image)
                except EnrichmentError:
                    etag = None
                if etag:
                    updates["og_image_etag"] = etag

        if wants_logo and LOGO_FETCH_STORE_NAME not in state.exhausted:
            try:
                logo = await self._logo_fetcher.find_logo(
                    bookmark.hostname,
                    metadata.icons if metadata else (),
                    permit=self._logo_permit(state),
                )
            except Exception as exc:
                raise_if_cancelled(exc)
                errors.append(("logo", str(exc)))
                logo = None
            if logo is not None:
                updates["logo_url"] = logo.url
                state.stats.logos_found += 1

        if errors:
            state.stats.failed += 1
            for step, message in errors:
                state.stats.errors.append(
                    {"id": bookmark.id, "url": bookmark.url, "error": f"{step}: {message}"}
                )
                logger.info(
                    "enrichment_step_failed",
                    extra={"bookmark_id": bookmark.id, "url": bookmark.url, "step": step, "error": message},
                )

        if not updates:
            if not errors:
                state.stats.skipped += 1
            return bookmark
        state.stats.enriched += 1
        return bookmark.model_copy(update=updates)

    @staticmethod
    def _metadata_updates(bookmark: Bookmark, metadata: OpenGraphMetadata) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        if metadata.title:
            updates["og_title"] = metadata.title
            if bookmark.has_placeholder_title():
                updates["title"] = metadata.title
        if metadata.description:
            updates["og_description"] = metadata.description
            if bookmark.has_placeholder_description():
                updates["description"] = metadata.description
        return updates
