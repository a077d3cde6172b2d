"""Pytest configuration and shared fixtures.

This module provides common fixtures for all tests.
"""

from __future__ import annotations

import os
from typing import Any

import pytest

from bookmarks_sync.bookmarks.models import Bookmark
from bookmarks_sync.infrastructure.storage.memory import MemoryObjectStore

# Keep tests hermetic regardless of the developer's shell or .env file.
for _name in (
    "BOOKMARKS_LIST_ID",
    "BOOKMARK_BEARER_TOKEN",
    "S3_BUCKET",
    "ADMIN_API_KEY",
    "BOOKMARK_CRON_REFRESH_SECRET",
):
    os.environ.pop(_name, None)
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("BOOKMARKS_SCHEDULER_ENABLED", "false")


def make_bookmark(bookmark_id: str = "bm-1", **overrides: Any) -> Bookmark:
    """Build a bookmark with realistic defaults; keyword overrides use snake_case names."""
    values: dict[str, Any] = {
        "id": bookmark_id,
        "url": f"https://example.com/{bookmark_id}",
        "title": f"Bookmark {bookmark_id}",
        "description": f"Description for {bookmark_id}",
        "tags": ["Python"],
        "date_bookmarked": "2025-01-01T00:00:00Z",
        "modified_at": "2025-01-02T00:00:00Z",
    }
    values.update(overrides)
    return Bookmark(**values)


def make_bookmarks(count: int, **overrides: Any) -> list[Bookmark]:
    return [make_bookmark(f"bm-{i}", **overrides) for i in range(1, count + 1)]


@pytest.fixture
def bookmark_factory():
    return make_bookmark


@pytest.fixture
def sample_bookmarks() -> list[Bookmark]:
    return [
        make_bookmark("bm-1", tags=["Python", "Web Dev"]),
        make_bookmark("bm-2", tags=["Python"]),
        make_bookmark("bm-3", tags=["Machine Learning & AI"]),
        make_bookmark("bm-4", tags=[]),
        make_bookmark("bm-5", tags=["Web Dev"]),
    ]


@pytest.fixture
def memory_store() -> MemoryObjectStore:
    return MemoryObjectStore()
