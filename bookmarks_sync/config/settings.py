from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .api import ApiConfig
from .integrations import BookmarkSourceConfig, EnrichmentConfig
from .storage import StorageConfig
from .sync import SyncConfig

logger = logging.getLogger(__name__)

_ENV_SUFFIXES = {"production": "", "development": "-dev", "test": "-test"}


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    environment: str = Field(
        default="production", validation_alias=AliasChoices("APP_ENV", "ENVIRONMENT")
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    app_version: str = Field(default="1.0.0", validation_alias="APP_VERSION")

    @field_validator("environment", mode="before")
    @classmethod
    def _validate_environment(cls, value: Any) -> str:
        env = str(value or "production").lower().strip()
        aliases = {"prod": "production", "dev": "development", "testing": "test"}
        env = aliases.get(env, env)
        if env not in _ENV_SUFFIXES:
            msg = f"Invalid environment: {value}. Must be one of {sorted(_ENV_SUFFIXES)}"
            raise ValueError(msg)
        return env

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        if not trimmed:
            return None
        if "\x00" in trimmed:
            msg = "Log file path contains invalid characters"
            raise ValueError(msg)
        return trimmed

    @property
    def env_suffix(self) -> str:
        """Key suffix separating production, development and test data in the store."""
        return _ENV_SUFFIXES[self.environment]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@dataclass(frozen=True)
class AppConfig:
    runtime: RuntimeConfig
    storage: StorageConfig
    source: BookmarkSourceConfig
    sync: SyncConfig
    enrichment: EnrichmentConfig
    api: ApiConfig


def default_config(**sections: Any) -> AppConfig:
    """Build an ``AppConfig`` from defaults, overriding whole sections by keyword."""
    values: dict[str, Any] = {
        "runtime": RuntimeConfig(),
        "storage": StorageConfig(),
        "source": BookmarkSourceConfig(),
        "sync": SyncConfig(),
        "enrichment": EnrichmentConfig(),
        "api": ApiConfig(),
    }
    values.update(sections)
    return AppConfig(**values)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env``.

    Nested sections are populated by matching each field's ``validation_alias``
    against the flat environment.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    source: BookmarkSourceConfig = Field(default_factory=BookmarkSourceConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @model_validator(mode="before")
    @classmethod
    def _build_nested_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Merge flat environment variables into the nested section models.

        Constructor arguments take precedence over the environment.
        """
        if not isinstance(data, dict):
            return data

        result = dict(data)
        merged_source = {**os.environ, **data}

        for field_name, field_info in cls.model_fields.items():
            annotation = field_info.annotation
            if not isinstance(annotation, type) or not issubclass(annotation, BaseModel):
                continue

            nested_data: dict[str, Any] = {}
            for nested_field_name, nested_field in annotation.model_fields.items():
                env_value = cls._resolve_env_value(merged_source, nested_field)
                if env_value is not None:
                    nested_data[nested_field_name] = env_value

            if nested_data:
                if field_name in result and isinstance(result[field_name], dict):
                    result[field_name] = {**nested_data, **result[field_name]}
                else:
                    result[field_name] = nested_data

        return result

    @staticmethod
    def _resolve_env_value(data: dict[str, Any], field: Any) -> Any | None:
        """Resolve the environment value for a field using its aliases."""
        aliases: list[str] = []
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            aliases.extend(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            aliases.append(alias)

        for name in aliases:
            if name in data:
                return data[name]
        return None

    def as_app_config(self) -> AppConfig:
        return AppConfig(
            runtime=self.runtime,
            storage=self.storage,
            source=self.source,
            sync=self.sync,
            enrichment=self.enrichment,
            api=self.api,
        )


def load_config() -> AppConfig:
    """Load configuration from the environment (and ``.env`` when present).

    Raises:
        RuntimeError: If any section fails validation.
    """
    try:
        settings = Settings()
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc

    cfg = settings.as_app_config()
    if not cfg.source.is_configured:
        logger.warning(
            "bookmarks_source_not_configured",
            extra={"has_list_id": bool(cfg.source.list_id), "has_token": bool(cfg.source.bearer_token)},
        )
    if not cfg.storage.use_s3:
        logger.warning("storage_backend_memory", extra={"environment": cfg.runtime.environment})
    return cfg
