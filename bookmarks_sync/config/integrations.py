from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_float, _parse_int, _parse_secret


class BookmarkSourceConfig(BaseModel):
    """External bookmarking service (Karakeep-compatible list API) configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_url: str = Field(
        default="http://localhost:3000/api/v1",
        validation_alias="BOOKMARKS_API_URL",
    )
    list_id: str = Field(default="", validation_alias="BOOKMARKS_LIST_ID")
    bearer_token: str = Field(default="", validation_alias="BOOKMARK_BEARER_TOKEN")
    request_timeout_sec: float = Field(default=10.0, validation_alias="BOOKMARKS_REQUEST_TIMEOUT_SEC")
    page_fetch_limit: int = Field(default=100, validation_alias="BOOKMARKS_PAGE_FETCH_LIMIT")
    max_retries: int = Field(default=3, validation_alias="BOOKMARKS_MAX_RETRIES")
    test_limit: int = Field(default=0, validation_alias="S3_TEST_LIMIT")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or "http://localhost:3000/api/v1").strip()
        if not url:
            return "http://localhost:3000/api/v1"
        if not url.startswith(("http://", "https://")):
            msg = "Bookmarks API URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("list_id", mode="before")
    @classmethod
    def _validate_list_id(cls, value: Any) -> str:
        list_id = str(value or "").strip()
        if "/" in list_id:
            msg = "Bookmarks list id cannot contain '/'"
            raise ValueError(msg)
        return list_id

    @field_validator("bearer_token", mode="before")
    @classmethod
    def _validate_token(cls, value: Any) -> str:
        return _parse_secret(value, name="Bookmarks bearer token")

    @field_validator("request_timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return _parse_float(value, name="Request timeout", default=10.0, minimum=0.5, maximum=300)

    @field_validator("page_fetch_limit", "max_retries", "test_limit", mode="before")
    @classmethod
    def _validate_ints(cls, value: Any, info: ValidationInfo) -> int:
        bounds = {"page_fetch_limit": (1, 1000), "max_retries": (0, 10), "test_limit": (0, 100_000)}
        minimum, maximum = bounds[info.field_name]
        return _parse_int(
            value,
            name=info.field_name.replace("_", " "),
            default=cls.model_fields[info.field_name].default,
            minimum=minimum,
            maximum=maximum,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.list_id and self.bearer_token)


class EnrichmentConfig(BaseModel):
    """OpenGraph and logo enrichment limits."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    opengraph_enabled: bool = Field(default=True, validation_alias="OG_ENRICHMENT_ENABLED")
    logos_enabled: bool = Field(default=True, validation_alias="LOGO_FETCH_ENABLED")
    fetch_timeout_sec: float = Field(default=7.0, validation_alias="OG_FETCH_TIMEOUT_SEC")
    asset_fetch_timeout_sec: float = Field(
        default=30.0, validation_alias="OG_ASSET_FETCH_TIMEOUT_SEC"
    )
    batch_size: int = Field(default=5, validation_alias="OG_BATCH_SIZE")
    request_delay_ms: int = Field(default=100, validation_alias="OG_REQUEST_DELAY_MS")
    max_html_bytes: int = Field(default=5 * 1024 * 1024, validation_alias="OG_MAX_HTML_BYTES")
    partial_html_bytes: int = Field(default=512 * 1024, validation_alias="OG_PARTIAL_HTML_BYTES")
    image_max_age_days: int = Field(default=30, validation_alias="OG_IMAGE_MAX_AGE_DAYS")
    og_rate_limit_max_requests: int = Field(
        default=10, validation_alias="OG_RATE_LIMIT_MAX_REQUESTS"
    )
    og_rate_limit_window_ms: int = Field(default=1000, validation_alias="OG_RATE_LIMIT_WINDOW_MS")
    logo_rate_limit_max_requests: int = Field(
        default=10, validation_alias="LOGO_RATE_LIMIT_MAX_REQUESTS"
    )
    logo_rate_limit_window_ms: int = Field(
        default=1000, validation_alias="LOGO_RATE_LIMIT_WINDOW_MS"
    )
    memory_budget_mb: int = Field(default=1024, validation_alias="ENRICHMENT_MEMORY_BUDGET_MB")
    memory_pause_sec: float = Field(default=1.0, validation_alias="ENRICHMENT_MEMORY_PAUSE_SEC")
    persist_images: bool = Field(default=False, validation_alias="OG_PERSIST_IMAGES")
    revalidate_images: bool = Field(default=False, validation_alias="OG_REVALIDATE_IMAGES")
    rate_limit_wait_ms: int = Field(default=5000, validation_alias="OG_RATE_LIMIT_WAIT_MS")

    @field_validator("fetch_timeout_sec", "asset_fetch_timeout_sec", "memory_pause_sec", mode="before")
    @classmethod
    def _validate_seconds(cls, value: Any, info: ValidationInfo) -> float:
        return _parse_float(
            value,
            name=info.field_name.replace("_", " "),
            default=cls.model_fields[info.field_name].default,
            minimum=0.0,
            maximum=600.0,
        )

    @field_validator(
        "batch_size",
        "request_delay_ms",
        "max_html_bytes",
        "partial_html_bytes",
        "image_max_age_days",
        "og_rate_limit_max_requests",
        "og_rate_limit_window_ms",
        "logo_rate_limit_max_requests",
        "logo_rate_limit_window_ms",
        "memory_budget_mb",
        "rate_limit_wait_ms",
        mode="before",
    )
    @classmethod
    def _validate_positive_int(cls, value: Any, info: ValidationInfo) -> int:
        minimum = 0 if info.field_name in ("request_delay_ms", "rate_limit_wait_ms") else 1
        return _parse_int(
            value,
            name=info.field_name.replace("_", " "),
            default=cls.model_fields[info.field_name].default,
            minimum=minimum,
            maximum=1024 * 1024 * 1024,
        )
