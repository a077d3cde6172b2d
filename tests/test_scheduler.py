"""Tests for the periodic refresh, lock cleanup and rate-limit pruning jobs."""

from __future__ import annotations

import unittest
from types import SimpleNamespace

from bookmarks_sync.bookmarks.refresh import RefreshResult, RefreshStatus
from bookmarks_sync.config import SyncConfig, default_config
from bookmarks_sync.security.rate_limiter import (
    API_ENDPOINT_STORE_NAME,
    RateLimitConfig,
    RateLimiter,
)
from bookmarks_sync.services.scheduler import (
    LOCK_CLEANUP_JOB_ID,
    RATE_LIMIT_CLEANUP_JOB_ID,
    REFRESH_JOB_ID,
    SchedulerService,
)


class _FakeService:
    def __init__(self, *, source: object | None = object(), fail: bool = False) -> None:
        self.engine = SimpleNamespace(source=source)
        self.fail = fail
        self.refresh_calls: list[dict] = []
        self.cleanup_calls = 0

    async def refresh(self, *, force: bool = False, trigger: str = "manual") -> RefreshResult:
        self.refresh_calls.append({"force": force, "trigger": trigger})
        if self.fail:
            msg = "store unavailable"
            raise RuntimeError(msg)
        return RefreshResult(RefreshStatus.UNCHANGED, trigger=trigger)

    async def cleanup_stale_lock(self) -> bool:
        self.cleanup_calls += 1
        return True


def _config():
    return default_config(
        sync=SyncConfig(refresh_interval_minutes=30, lock_cleanup_interval_seconds=60)
    )


class TestSchedulerService(unittest.IsolatedAsyncioTestCase):
    async def test_registers_both_jobs(self):
        scheduler = SchedulerService(_config(), _FakeService())
        await scheduler.start()
        try:
            assert scheduler.is_running
            assert scheduler.get_next_run_time(REFRESH_JOB_ID) is not None
            assert scheduler.get_next_run_time(LOCK_CLEANUP_JOB_ID) is not None
        finally:
            await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.get_next_run_time(REFRESH_JOB_ID) is None

    async def test_refresh_job_skipped_without_source(self):
        scheduler = SchedulerService(_config(), _FakeService(source=None))
        await scheduler.start()
        try:
            assert scheduler.get_next_run_time(REFRESH_JOB_ID) is None
            assert scheduler.get_next_run_time(LOCK_CLEANUP_JOB_ID) is not None
        finally:
            await scheduler.stop()

    async def test_second_start_is_ignored(self):
        scheduler = SchedulerService(_config(), _FakeService())
        await scheduler.start()
        try:
            await scheduler.start()
            assert scheduler.is_running
        finally:
            await scheduler.stop()

    async def test_refresh_job_respects_freshness(self):
        service = _FakeService()
        await SchedulerService(_config(), service).run_refresh_job()
        assert service.refresh_calls == [{"force": False, "trigger": "scheduled"}]

    async def test_refresh_job_failure_is_contained(self):
        service = _FakeService(fail=True)
        await SchedulerService(_config(), service).run_refresh_job()
        assert len(service.refresh_calls) == 1

    async def test_lock_cleanup_job(self):
        service = _FakeService()
        await SchedulerService(_config(), service).run_lock_cleanup_job()
        assert service.cleanup_calls == 1

    async def test_rate_limit_cleanup_job_registered_with_limiter(self):
        scheduler = SchedulerService(_config(), _FakeService(), RateLimiter())
        await scheduler.start()
        try:
            assert scheduler.get_next_run_time(RATE_LIMIT_CLEANUP_JOB_ID) is not None
        finally:
            await scheduler.stop()

    async def test_rate_limit_cleanup_job_absent_without_limiter(self):
        scheduler = SchedulerService(_config(), _FakeService())
        await scheduler.start()
        try:
            assert scheduler.get_next_run_time(RATE_LIMIT_CLEANUP_JOB_ID) is None
        finally:
            await scheduler.stop()

    async def test_rate_limit_cleanup_job_prunes_expired_slots(self):
        clock = [0]
        limiter = RateLimiter(clock=lambda: clock[0])
        limit = RateLimitConfig(max_requests=1, window_ms=1_000)
        await limiter.is_operation_allowed(API_ENDPOINT_STORE_NAME, "10.0.0.1", limit)
        clock[0] = 5_000

        await SchedulerService(_config(), _FakeService(), limiter).run_rate_limit_cleanup_job()

        assert limiter.cleanup_expired() == 0
        assert limiter.retry_after_ms(API_ENDPOINT_STORE_NAME, "10.0.0.1") == 0
