from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_csv, _parse_int, _parse_secret

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:8080",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8080",
)


class ApiConfig(BaseModel):
    """HTTP API limits and credentials."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    admin_api_key: str = Field(default="", validation_alias="ADMIN_API_KEY")
    cron_refresh_secret: str = Field(default="", validation_alias="BOOKMARK_CRON_REFRESH_SECRET")
    default_page_size: int = Field(default=20, validation_alias="API_DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(default=100, validation_alias="API_MAX_PAGE_SIZE")
    refresh_rate_limit: int = Field(default=5, validation_alias="API_REFRESH_RATE_LIMIT")
    refresh_rate_window_seconds: int = Field(
        default=60, validation_alias="API_REFRESH_RATE_WINDOW_SECONDS"
    )
    allowed_origins: tuple[str, ...] = Field(
        default=DEFAULT_ALLOWED_ORIGINS, validation_alias="ALLOWED_ORIGINS"
    )

    @field_validator("admin_api_key", "cron_refresh_secret", mode="before")
    @classmethod
    def _validate_secret(cls, value: Any, info: ValidationInfo) -> str:
        return _parse_secret(value, name=info.field_name.replace("_", " "))

    @field_validator(
        "default_page_size",
        "max_page_size",
        "refresh_rate_limit",
        "refresh_rate_window_seconds",
        mode="before",
    )
    @classmethod
    def _validate_limits(cls, value: Any, info: ValidationInfo) -> int:
        return _parse_int(
            value,
            name=info.field_name.replace("_", " "),
            default=cls.model_fields[info.field_name].default,
            minimum=1,
            maximum=10_000,
        )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _validate_origins(cls, value: Any) -> tuple[str, ...]:
        origins = _parse_csv(value)
        return origins or DEFAULT_ALLOWED_ORIGINS
