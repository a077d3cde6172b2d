from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ._validators import _parse_secret


class StorageConfig(BaseModel):
    """Durable object store (S3-compatible) configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    backend: str = Field(default="auto", validation_alias="STORAGE_BACKEND")
    bucket: str = Field(default="", validation_alias="S3_BUCKET")
    endpoint: str | None = Field(default=None, validation_alias="S3_ENDPOINT")
    access_key_id: str = Field(default="", validation_alias="S3_ACCESS_KEY_ID")
    secret_access_key: str = Field(default="", validation_alias="S3_SECRET_ACCESS_KEY")
    region: str = Field(default="us-east-1", validation_alias="S3_REGION")
    cdn_url: str | None = Field(default=None, validation_alias="S3_CDN_URL")

    @field_validator("backend", mode="before")
    @classmethod
    def _validate_backend(cls, value: Any) -> str:
        backend = str(value or "auto").strip().lower()
        valid = {"auto", "s3", "memory"}
        if backend not in valid:
            msg = f"Invalid storage backend: {backend}. Must be one of {sorted(valid)}"
            raise ValueError(msg)
        return backend

    @field_validator("endpoint", "cdn_url", mode="before")
    @classmethod
    def _validate_optional_url(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        url = str(value).strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            msg = f"Invalid URL: {url}. Must start with http:// or https://"
            raise ValueError(msg)
        return url

    @field_validator("access_key_id", "secret_access_key", mode="before")
    @classmethod
    def _validate_credentials(cls, value: Any) -> str:
        return _parse_secret(value, name="S3 credential")

    @field_validator("region", mode="before")
    @classmethod
    def _validate_region(cls, value: Any) -> str:
        return str(value or "us-east-1").strip() or "us-east-1"

    @property
    def use_s3(self) -> bool:
        if self.backend == "s3":
            return True
        return self.backend == "auto" and bool(self.bucket)
