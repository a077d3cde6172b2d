from __future__ import annotations

from .api import ApiConfig
from .integrations import BookmarkSourceConfig, EnrichmentConfig
from .settings import AppConfig, RuntimeConfig, Settings, default_config, load_config
from .storage import StorageConfig
from .sync import SyncConfig

__all__ = [
    "ApiConfig",
    "AppConfig",
    "BookmarkSourceConfig",
    "EnrichmentConfig",
    "RuntimeConfig",
    "Settings",
    "StorageConfig",
    "SyncConfig",
    "default_config",
    "load_config",
]
