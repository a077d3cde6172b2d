from __future__ import annotations

import asyncio
import gc
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_PROC_STATUS = Path("/proc/self/status")


def read_rss_bytes() -> int:
    """Resident set size of this process in bytes (0 when unavailable)."""
    try:
        for line in _PROC_STATUS.read_text().splitlines():
            if line.startswith("VmRSS:"):
                return int(line.split()[1]) * 1024
    except (OSError, ValueError, IndexError):
        pass
    try:
        import resource
    except ImportError:
        return 0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    return int(peak if sys.platform == "darwin" else peak * 1024)


class MemoryGuard:
    """Pauses enrichment while RSS is above budget."""

    def __init__(
        self,
        budget_mb: int = 1024,
        *,
        pause_sec: float = 1.0,
        max_pauses: int = 5,
        read_rss: Callable[[], int] = read_rss_bytes,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._budget_bytes = budget_mb * 1024 * 1024
        self._pause_sec = pause_sec
        self._max_pauses = max_pauses
        self._read_rss = read_rss
        self._sleep = sleep
        self.pauses = 0

    def over_budget(self) -> bool:
        rss = self._read_rss()
        return rss > 0 and rss > self._budget_bytes

    async def check(self) -> bool:
        """Collect garbage and wait while over budget. Returns ``True`` when it paused."""
        if not self.over_budget():
            return False
        collected = gc.collect()
        paused = False
        attempts = 0
        while self.over_budget() and attempts < self._max_pauses:
            attempts += 1
            paused = True
            self.pauses += 1
            logger.warning(
                "enrichment_memory_pause",
                extra={
                    "rss_mb": round(self._read_rss() / (1024 * 1024), 1),
                    "budget_mb": self._budget_bytes // (1024 * 1024),
                    "attempt": attempts,
                    "collected": collected,
                },
            )
            await self._sleep(self._pause_sec)
            collected = gc.collect()
        return paused
