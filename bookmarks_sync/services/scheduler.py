"""Background scheduler for periodic bookmark refreshes and housekeeping."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bookmarks_sync.core.time_utils import UTC

if TYPE_CHECKING:
    from bookmarks_sync.bookmarks.service import BookmarksService
    from bookmarks_sync.config import AppConfig
    from bookmarks_sync.security.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "bookmarks_refresh"
LOCK_CLEANUP_JOB_ID = "bookmarks_lock_cleanup"
RATE_LIMIT_CLEANUP_JOB_ID = "rate_limit_cleanup"


class SchedulerService:
    """Runs the periodic refresh, stale-lock cleanup and rate-limit pruning jobs."""

    def __init__(
        self,
        cfg: AppConfig,
        service: BookmarksService,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize scheduler service.

        Args:
            cfg: Application configuration
            service: Bookmarks service whose refresh the jobs drive
            rate_limiter: Limiter whose expired counters are pruned, if any
        """
        self.cfg = cfg
        self.service = service
        self.rate_limiter = rate_limiter
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    async def start(self) -> None:
        """Start the scheduler with configured jobs."""
        if self._started:
            logger.warning("scheduler_already_started")
            return

        self._scheduler = AsyncIOScheduler()

        if self.service.engine.source is not None:
            self._scheduler.add_job(
                self.run_refresh_job,
                trigger=IntervalTrigger(minutes=self.cfg.sync.refresh_interval_minutes),
                id=REFRESH_JOB_ID,
                name="Bookmarks Refresh",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(
                "scheduler_refresh_job_added",
                extra={
                    "job_id": REFRESH_JOB_ID,
                    "interval_minutes": self.cfg.sync.refresh_interval_minutes,
                },
            )
        else:
            logger.info("scheduler_refresh_job_skipped", extra={"reason": "no_source"})

        self._scheduler.add_job(
            self.run_lock_cleanup_job,
            trigger=IntervalTrigger(seconds=self.cfg.sync.lock_cleanup_interval_seconds),
            id=LOCK_CLEANUP_JOB_ID,
            name="Bookmarks Lock Cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if self.rate_limiter is not None:
            self._scheduler.add_job(
                self.run_rate_limit_cleanup_job,
                trigger=IntervalTrigger(seconds=self.cfg.sync.lock_cleanup_interval_seconds),
                id=RATE_LIMIT_CLEANUP_JOB_ID,
                name="Rate Limit Cleanup",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        self._scheduler.start()
        self._started = True
        logger.info("scheduler_started")

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self._started = False
            logger.info("scheduler_stopped")

    async def run_refresh_job(self) -> None:
        """Execute a scheduled refresh; staleness decides whether it fetches."""
        correlation_id = f"scheduled_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S')}"
        logger.info("scheduled_bookmarks_refresh_starting", extra={"cid": correlation_id})
        try:
            result = await self.service.refresh(force=False, trigger="scheduled")
        except Exception as e:
            logger.exception(
                "scheduled_bookmarks_refresh_failed",
                extra={"cid": correlation_id, "error": str(e)},
            )
            return
        logger.info(
            "scheduled_bookmarks_refresh_complete",
            extra={
                "cid": correlation_id,
                "phase": result.status.value,
                "count": result.count,
                "changed": result.changed,
                "duration_ms": result.duration_ms,
            },
        )

    async def run_lock_cleanup_job(self) -> None:
        try:
            removed = await self.service.cleanup_stale_lock()
        except Exception as e:
            logger.exception("scheduled_lock_cleanup_failed", extra={"error": str(e)})
            return
        if removed:
            logger.info("scheduled_lock_cleanup_removed")

    async def run_rate_limit_cleanup_job(self) -> None:
        if self.rate_limiter is None:
            return
        removed = self.rate_limiter.cleanup_expired()
        if removed:
            logger.info("scheduled_rate_limit_cleanup", extra={"slots_cleaned": removed})

    def get_next_run_time(self, job_id: str) -> datetime | None:
        """Get next scheduled run time for a job, or None when absent or stopped."""
        if not self._scheduler or not self._started:
            return None
        job = self._scheduler.get_job(job_id)
        return job.next_run_time if job else None

    @property
    def is_running(self) -> bool:
        return self._started and self._scheduler is not None
