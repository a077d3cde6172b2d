"""Lock-guarded refresh of the bookmark collection.

One cycle: freshness check, distributed lock, heartbeat, fetch, validate,
checksum comparison, enrichment, persistence, cache update. The lock is
released and the heartbeat cleared on every exit path.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from bookmarks_sync.bookmarks.cache import BookmarksCache
from bookmarks_sync.bookmarks.hashing import calculate_bookmarks_checksum, has_bookmarks_changed
from bookmarks_sync.bookmarks.models import Bookmark, Heartbeat, LastRun
from bookmarks_sync.bookmarks.pagination import (
    build_bookmarks_index,
    group_by_tag,
    select_top_tags,
)
from bookmarks_sync.bookmarks.persistence import BookmarksRepository
from bookmarks_sync.bookmarks.source import BookmarkSource
from bookmarks_sync.bookmarks.validation import validate_bookmarks_dataset
from bookmarks_sync.config import SyncConfig
from bookmarks_sync.core.async_utils import BackgroundTasks, raise_if_cancelled
from bookmarks_sync.core.time_utils import now_ms
from bookmarks_sync.domain.exceptions import (
    BookmarkSourceConfigError,
    BookmarkSourceError,
    CorruptDataError,
    ObjectStoreError,
    RefreshError,
)
from bookmarks_sync.enrichment.pipeline import ENRICHMENT_FIELDS, EnrichmentOptions, EnrichmentResult
from bookmarks_sync.infrastructure.lock import DistributedLock

logger = logging.getLogger(__name__)


class RefreshStatus(str, Enum):
    REFRESHED = "refreshed"
    UNCHANGED = "unchanged"
    FRESH = "fresh"
    LOCKED = "locked"
    INVALID = "invalid"
    EMPTY_FALLBACK = "empty_fallback"
    FAILED = "failed"


@dataclass
class RefreshResult:
    status: RefreshStatus
    bookmarks: list[Bookmark] = field(default_factory=list)
    changed: bool = False
    reason: str | None = None
    used_fallback: bool = False
    trigger: str = "manual"
    duration_ms: int = 0
    enrichment: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.status in (RefreshStatus.REFRESHED, RefreshStatus.UNCHANGED, RefreshStatus.FRESH)

    @property
    def count(self) -> int:
        return len(self.bookmarks)


class Enricher(Protocol):
    async def process_bookmarks_in_batches(
        self, bookmarks: Sequence[Bookmark], options: EnrichmentOptions | None = None
    ) -> EnrichmentResult: ...


def carry_forward_enrichment(
    fetched: Sequence[Bookmark], previous: Sequence[Bookmark]
) -> list[Bookmark]:
    """Reuse enrichment from the last snapshot for bookmarks whose id and URL are unchanged."""
    by_id = {bookmark.id: bookmark for bookmark in previous}
    merged: list[Bookmark] = []
    for bookmark in fetched:
        prior = by_id.get(bookmark.id)
        if prior is None or prior.url != bookmark.url:
            merged.append(bookmark)
            continue
        updates = {
            name: getattr(prior, name)
            for name in ENRICHMENT_FIELDS
            if getattr(bookmark, name) is None and getattr(prior, name) is not None
        }
        if bookmark.has_placeholder_title() and not prior.has_placeholder_title():
            updates["title"] = prior.title
        if bookmark.has_placeholder_description() and not prior.has_placeholder_description():
            updates["description"] = prior.description
        merged.append(bookmark.model_copy(update=updates) if updates else bookmark)
    return merged


class RefreshEngine:
    def __init__(
        self,
        *,
        repository: BookmarksRepository,
        cache: BookmarksCache,
        lock: DistributedLock,
        sync_cfg: SyncConfig | None = None,
        source: BookmarkSource | None = None,
        enricher: Enricher | None = None,
        enrichment_options: EnrichmentOptions | None = None,
        background: BackgroundTasks | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._lock = lock
        self._cfg = sync_cfg or SyncConfig()
        self.source = source
        self._enricher = enricher
        self._enrichment_options = enrichment_options or EnrichmentOptions()
        self._background = background or BackgroundTasks("bookmarks")
        self._clock = clock
        self._inflight: asyncio.Future[RefreshResult] | None = None

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def lock(self) -> DistributedLock:
        return self._lock

    async def refresh(self, *, force: bool = False, trigger: str = "manual") -> RefreshResult:
        """Run one refresh cycle, or join the cycle already running in this process.

        Source failures, validation failures and lock contention are reported in
        the result. Store failures and enrichment crashes propagate after the
        lock has been released.
        """
        if self.is_refreshing:
            logger.info("bookmarks_refresh_joined", extra={"trigger": trigger})
            return await asyncio.shield(self._inflight)

        task = asyncio.ensure_future(self._run(force=force, trigger=trigger))
        self._inflight = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task:
                self._inflight = None

    async def _run(self, *, force: bool, trigger: str) -> RefreshResult:
        started = self._clock()

        if not force and not self._cache.should_refresh_bookmarks():
            entry = self._cache.peek()
            logger.debug("bookmarks_refresh_skipped_fresh", extra={"trigger": trigger})
            return RefreshResult(
                RefreshStatus.FRESH,
                list(entry.bookmarks) if entry else [],
                trigger=trigger,
            )

        if not await self._lock.acquire():
            return RefreshResult(
                RefreshStatus.LOCKED,
                await self._fallback_snapshot(),
                reason="Refresh already running in another instance",
                used_fallback=True,
                trigger=trigger,
            )

        outcome: RefreshResult | None = None
        error: BaseException | None = None
        try:
            outcome = await self._locked_cycle(force=force, trigger=trigger)
        except BookmarkSourceError as exc:
            level = logging.WARNING if isinstance(exc, BookmarkSourceConfigError) else logging.ERROR
            logger.log(level, "bookmarks_refresh_source_failed", extra={"trigger": trigger, "error": str(exc)})
            self._cache.set_bookmarks([], is_failure=True)
            outcome = RefreshResult(
                RefreshStatus.FAILED,
                await self._fallback_snapshot(),
                reason=str(exc),
                used_fallback=True,
                trigger=trigger,
            )
        except BaseException as exc:
            error = exc
            raise
        finally:
            await self._finish_cycle(trigger, outcome, error)

        outcome.duration_ms = self._clock() - started
        logger.info(
            "bookmarks_refresh_completed",
            extra={
                "trigger": trigger,
                "phase": outcome.status.value,
                "changed": outcome.changed,
                "count": outcome.count,
                "duration_ms": outcome.duration_ms,
            },
        )
        return outcome

    async def _locked_cycle(self, *, force: bool, trigger: str) -> RefreshResult:
        await self._beat("fetching")
        if self.source is None:
            msg = "No bookmark source configured"
            raise BookmarkSourceConfigError(msg)
        fetched = await self.source.fetch_all()

        if not fetched:
            logger.warning("bookmarks_refresh_empty_fetch", extra={"trigger": trigger})
            return RefreshResult(
                RefreshStatus.EMPTY_FALLBACK,
                await self._fallback_snapshot(),
                reason="Source returned no bookmarks",
                used_fallback=True,
                trigger=trigger,
            )

        validation = validate_bookmarks_dataset(fetched)
        if not validation.is_valid:
            return RefreshResult(
                RefreshStatus.INVALID,
                await self._fallback_snapshot(),
                reason=validation.reason,
                used_fallback=True,
                trigger=trigger,
            )

        await self._beat("reconciling", total=len(fetched))
        index = await self._repository.read_index()
        previous = await self._read_previous()
        checksum: str | None = calculate_bookmarks_checksum(fetched)
        changed = force or previous is None or has_bookmarks_changed(fetched, index, checksum)
        now = self._clock()

        if not changed and index is not None and previous is not None:
            refreshed_index = index.model_copy(
                update={"last_fetched_at": now, "last_attempted_at": now, "change_detected": False}
            )
            await self._repository.write_index(refreshed_index)
            self._cache.set_bookmarks(previous, fetched_at=now)
            logger.info("bookmarks_unchanged", extra={"count": len(previous), "checksum": checksum})
            return RefreshResult(RefreshStatus.UNCHANGED, list(previous), trigger=trigger)

        bookmarks = carry_forward_enrichment(fetched, previous or [])
        enrichment_stats: dict[str, Any] | None = None
        if self._enricher is not None:
            await self._beat("enriching", processed=0, total=len(bookmarks))
            options = dataclasses.replace(
                self._enrichment_options, on_batch_complete=self._on_batch_complete
            )
            try:
                result = await self._enricher.process_bookmarks_in_batches(bookmarks, options)
            except Exception as exc:
                raise_if_cancelled(exc)
                msg = f"Enrichment step failed: {exc}"
                raise RefreshError(msg, details={"trigger": trigger}) from exc
            bookmarks = result.bookmarks
            enrichment_stats = result.stats.as_dict()
            if result.stats.rate_limited:
                # No checksum forces the next cycle back through enrichment.
                logger.info(
                    "bookmarks_enrichment_incomplete",
                    extra={"trigger": trigger, "rate_limited": result.stats.rate_limited},
                )
                checksum = None

        await self._beat("persisting", total=len(bookmarks))
        await self._repository.write_dataset(bookmarks)
        total_pages = await self._repository.write_pages(bookmarks, self._cfg.page_size)
        await self._repository.delete_stale_pages(total_pages)
        new_index = build_bookmarks_index(
            bookmarks,
            page_size=self._cfg.page_size,
            checksum=checksum,
            change_detected=True,
            fetched_at=now,
            attempted_at=now,
        )
        await self._repository.write_index(new_index)
        self._cache.set_bookmarks(bookmarks, fetched_at=now)

        if self._cfg.enable_tag_caching and self._cfg.max_tags_to_cache > 0:
            self._background.spawn(self._write_tag_pages(bookmarks, now), name="tag_pages")

        return RefreshResult(
            RefreshStatus.REFRESHED,
            list(bookmarks),
            changed=True,
            trigger=trigger,
            enrichment=enrichment_stats,
        )

    async def _read_previous(self) -> list[Bookmark] | None:
        try:
            return await self._repository.read_dataset()
        except CorruptDataError as exc:
            logger.error("bookmarks_previous_dataset_corrupt", extra={"error": exc.message})
            return None

    async def _fallback_snapshot(self) -> list[Bookmark]:
        entry = self._cache.peek()
        if entry is not None and entry.bookmarks:
            return list(entry.bookmarks)
        try:
            return await self._repository.read_dataset() or []
        except ObjectStoreError as exc:
            logger.error("bookmarks_fallback_read_failed", extra={"error": exc.message})
            return []

    async def _write_tag_pages(self, bookmarks: list[Bookmark], fetched_at: int) -> None:
        buckets = select_top_tags(group_by_tag(bookmarks), self._cfg.max_tags_to_cache)
        written = await self._repository.write_tag_pages(
            buckets, page_size=self._cfg.page_size, fetched_at=fetched_at
        )
        logger.info("bookmarks_tag_pages_written", extra={"tags": len(buckets), "pages": written})

    async def _on_batch_complete(self, processed: int, total: int) -> None:
        await self._beat("enriching", processed=processed, total=total)

    async def _beat(self, phase: str, *, processed: int | None = None, total: int | None = None) -> None:
        heartbeat = Heartbeat(
            run_at=self._clock(),
            instance_id=self._lock.instance_id,
            phase=phase,
            processed=processed,
            total=total,
        )
        try:
            await self._repository.write_heartbeat(heartbeat)
        except ObjectStoreError as exc:
            logger.warning("bookmarks_heartbeat_failed", extra={"phase": phase, "error": exc.message})

    async def _finish_cycle(
        self, trigger: str, outcome: RefreshResult | None, error: BaseException | None
    ) -> None:
        try:
            await self._repository.delete_heartbeat()
        except ObjectStoreError as exc:
            logger.warning("bookmarks_heartbeat_clear_failed", extra={"error": exc.message})

        await self._lock.release()

        if outcome is not None:
            record = LastRun(
                run_at=self._clock(),
                success=outcome.success,
                change_detected=outcome.changed,
                trigger=trigger,
                count=outcome.count,
                error=None if outcome.success else outcome.reason,
                used_fallback=outcome.used_fallback,
            )
        else:
            record = LastRun(
                run_at=self._clock(),
                success=False,
                trigger=trigger,
                error=str(error) if error is not None else "cancelled",
            )
        try:
            await self._repository.write_last_run(record)
        except ObjectStoreError as exc:
            logger.warning("bookmarks_last_run_write_failed", extra={"error": exc.message})
