from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bookmarks_sync.bookmarks.models import Bookmark


@runtime_checkable
class BookmarkSource(Protocol):
    """External source of truth for the bookmark collection."""

    async def fetch_all(self) -> list[Bookmark]:
        """Return every bookmark, already normalized, iterating any cursors to the end."""
        ...


class StaticBookmarkSource:
    """Serves a fixed in-memory collection; containers built with an explicit ``source`` use it."""

    def __init__(self, bookmarks: list[Bookmark]) -> None:
        self._bookmarks = list(bookmarks)
        self.calls = 0

    async def fetch_all(self) -> list[Bookmark]:
        self.calls += 1
        return list(self._bookmarks)
