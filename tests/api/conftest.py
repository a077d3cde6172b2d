"""Fixtures for API tests: an isolated app over an in-memory store."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from bookmarks_sync.api.main import create_app
from bookmarks_sync.bookmarks.pagination import build_bookmarks_index
from bookmarks_sync.bookmarks.source import StaticBookmarkSource
from bookmarks_sync.config import ApiConfig, default_config
from bookmarks_sync.core.time_utils import now_ms
from bookmarks_sync.di.container import BookmarksContainer, build_bookmarks_container
from bookmarks_sync.infrastructure.storage.memory import MemoryObjectStore
from tests.conftest import make_bookmark, make_bookmarks

ADMIN_KEY = "admin-key"
CRON_SECRET = "cron-secret"

# Odd ids are tagged Python, even ids Rust.
SEEDED = [
    make_bookmark(f"bm-{i}", tags=["Python"] if i % 2 else ["Rust"]) for i in range(1, 31)
]


async def seed_store(container: BookmarksContainer, bookmarks) -> None:
    repository = container.service.repository
    page_size = container.cfg.sync.page_size
    await repository.write_dataset(bookmarks)
    await repository.write_pages(bookmarks, page_size)
    await repository.write_index(
        build_bookmarks_index(
            bookmarks,
            page_size=page_size,
            checksum="seeded-checksum",
            change_detected=True,
            fetched_at=now_ms(),
            attempted_at=now_ms(),
        )
    )


@pytest.fixture
def make_client():
    """Factory for started TestClients; API settings override the test defaults."""
    opened: list[tuple[TestClient, BookmarksContainer]] = []

    def _make(*, seed: bool = True, **api_overrides) -> TestClient:
        api_values = {
            "admin_api_key": ADMIN_KEY,
            "cron_refresh_secret": CRON_SECRET,
            "refresh_rate_limit": 2,
        }
        api_values.update(api_overrides)
        container = build_bookmarks_container(
            default_config(api=ApiConfig(**api_values)),
            store=MemoryObjectStore(),
            source=StaticBookmarkSource(make_bookmarks(5)),
            enrich=False,
        )
        if seed:
            asyncio.run(seed_store(container, SEEDED))
        client = TestClient(
            create_app(container=container, enable_scheduler=False),
            raise_server_exceptions=False,
        )
        client.__enter__()
        opened.append((client, container))
        return client

    yield _make

    for client, container in opened:
        client.portal.call(container.background.drain, 5)
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_KEY}"}
