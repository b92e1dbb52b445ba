"""
Configuration models and helpers.

Centralizes settings so the store factory, the maintenance scripts and the
tests share one configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class StoreSettings(BaseSettings):
    """Selects and tunes the repository backend."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="AUTH_STORE_BACKEND"
    )
    sqlite_path: str = Field(
        "data/authentication.db", validation_alias="AUTH_STORE_SQLITE_PATH"
    )
    sqlite_timeout_seconds: float = Field(
        5.0,
        validation_alias="AUTH_STORE_SQLITE_TIMEOUT",
        description="Seconds a writer waits on a locked database before failing.",
    )

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("sqlite_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("SQLite timeout must be positive.")
        return value


class AWSSettings(BaseSettings):
    """Settings for the DynamoDB backend."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")
    dynamodb_table_name: Optional[str] = Field(
        None, validation_alias="DYNAMODB_TABLE_NAME"
    )
    dynamodb_history_index: str = Field(
        "gsi1", validation_alias="DYNAMODB_HISTORY_INDEX"
    )
    dynamodb_endpoint_url: Optional[str] = Field(
        None,
        validation_alias="DYNAMODB_ENDPOINT_URL",
        description="Override for local DynamoDB deployments.",
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    authentication_data_secret: Optional[str] = Field(
        None,
        validation_alias="AUTH_DATA_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored "
            "authentication data. Data is stored as plain JSON when omitted."
        ),
    )


class AppSettings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    store: StoreSettings = Field(default_factory=StoreSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @model_validator(mode="after")
    def _require_table_for_dynamodb(self) -> "AppSettings":
        if self.store.backend == "dynamodb" and not self.aws.dynamodb_table_name:
            raise ValueError(
                "DYNAMODB_TABLE_NAME is required when AUTH_STORE_BACKEND=dynamodb."
            )
        return self


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "AWSSettings",
    "SecuritySettings",
    "StoreSettings",
    "get_settings",
]
