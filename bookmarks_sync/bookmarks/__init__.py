"""Bookmark collection: models, caching, refresh and read-through service."""
