"""Karakeep-compatible bookmark source."""

from bookmarks_sync.adapters.karakeep.client import KarakeepClient
from bookmarks_sync.adapters.karakeep.source import KarakeepBookmarkSource

__all__ = ["KarakeepBookmarkSource", "KarakeepClient"]
