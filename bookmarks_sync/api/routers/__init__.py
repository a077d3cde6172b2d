"""
API route handlers.
"""

from . import bookmarks, cache, refresh, system

__all__ = ["bookmarks", "cache", "refresh", "system"]
