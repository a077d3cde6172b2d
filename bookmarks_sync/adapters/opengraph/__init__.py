"""OpenGraph metadata, logo and image adapters."""

from bookmarks_sync.adapters.opengraph.fetcher import OpenGraphFetcher, OpenGraphResult
from bookmarks_sync.adapters.opengraph.images import ImagePersister, PersistedImage
from bookmarks_sync.adapters.opengraph.logos import LogoFetcher, LogoResult
from bookmarks_sync.adapters.opengraph.parser import OpenGraphMetadata, parse_opengraph

__all__ = [
    "ImagePersister",
    "LogoFetcher",
    "LogoResult",
    "OpenGraphFetcher",
    "OpenGraphMetadata",
    "OpenGraphResult",
    "PersistedImage",
    "parse_opengraph",
]
