from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_int

_BOUNDS: dict[str, tuple[int, int]] = {
    "lock_ttl_ms": (1_000, 24 * 60 * 60 * 1000),
    "revalidation_seconds": (1, 7 * 24 * 60 * 60),
    "cache_success_ttl_seconds": (1, 90 * 24 * 60 * 60),
    "cache_failure_ttl_seconds": (1, 7 * 24 * 60 * 60),
    "page_size": (1, 500),
    "max_tags_to_cache": (0, 500),
    "refresh_interval_minutes": (1, 7 * 24 * 60),
    "lock_cleanup_interval_seconds": (10, 24 * 60 * 60),
}


class SyncConfig(BaseModel):
    """Refresh, lock, cache and pagination tuning."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    lock_ttl_ms: int = Field(default=5 * 60 * 1000, validation_alias="BOOKMARKS_LOCK_TTL_MS")
    revalidation_seconds: int = Field(
        default=60 * 60, validation_alias="BOOKMARKS_REVALIDATION_SECONDS"
    )
    cache_success_ttl_seconds: int = Field(
        default=7 * 24 * 60 * 60, validation_alias="BOOKMARKS_CACHE_SUCCESS_TTL_SECONDS"
    )
    cache_failure_ttl_seconds: int = Field(
        default=60 * 60, validation_alias="BOOKMARKS_CACHE_FAILURE_TTL_SECONDS"
    )
    page_size: int = Field(default=24, validation_alias="BOOKMARKS_PER_PAGE")
    enable_tag_caching: bool = Field(default=True, validation_alias="ENABLE_TAG_CACHING")
    max_tags_to_cache: int = Field(default=10, validation_alias="MAX_TAGS_TO_CACHE")
    refresh_interval_minutes: int = Field(
        default=120, validation_alias="BOOKMARKS_REFRESH_INTERVAL_MINUTES"
    )
    lock_cleanup_interval_seconds: int = Field(
        default=120, validation_alias="BOOKMARKS_LOCK_CLEANUP_INTERVAL_SECONDS"
    )
    scheduler_enabled: bool = Field(default=True, validation_alias="BOOKMARKS_SCHEDULER_ENABLED")

    @field_validator(
        "lock_ttl_ms",
        "revalidation_seconds",
        "cache_success_ttl_seconds",
        "cache_failure_ttl_seconds",
        "page_size",
        "max_tags_to_cache",
        "refresh_interval_minutes",
        "lock_cleanup_interval_seconds",
        mode="before",
    )
    @classmethod
    def _validate_bounded_int(cls, value: Any, info: ValidationInfo) -> int:
        minimum, maximum = _BOUNDS[info.field_name]
        return _parse_int(
            value,
            name=info.field_name.replace("_", " "),
            default=cls.model_fields[info.field_name].default,
            minimum=minimum,
            maximum=maximum,
        )
