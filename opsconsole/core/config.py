from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import AnyHttpUrl, AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Database settings are optional; when any of the MySQL values is missing the
    service falls back to a local SQLite file.
    """

    app_name: str = Field(default="OpsConsole", validation_alias="APP_NAME")
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    database_host: str | None = Field(default=None, validation_alias="DB_HOST")
    database_user: str | None = Field(default=None, validation_alias="DB_USER")
    database_password: str | None = Field(default=None, validation_alias="DB_PASSWORD")
    database_name: str | None = Field(default=None, validation_alias="DB_NAME")
    migration_lock_timeout: int = Field(
        default=60, validation_alias="MIGRATION_LOCK_TIMEOUT"
    )
    credential_encryption_key: str = Field(
        default="",
        validation_alias=AliasChoices("CREDENTIAL_ENCRYPTION_KEY", "ENCRYPTION_KEY"),
    )
    api_key: str | None = Field(default=None, validation_alias="API_KEY")
    allowed_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        validation_alias="ALLOWED_ORIGINS",
    )
    microsoft_tenant_id: str | None = Field(
        default=None, validation_alias="MICROSOFT_TENANT_ID"
    )
    microsoft_client_id: str | None = Field(
        default=None, validation_alias="MICROSOFT_CLIENT_ID"
    )
    microsoft_client_secret: str | None = Field(
        default=None, validation_alias="MICROSOFT_CLIENT_SECRET"
    )
    graph_timeout_seconds: float = Field(
        default=30.0, validation_alias="GRAPH_TIMEOUT_SECONDS"
    )
    consolidation_max_concurrency: int = Field(
        default=0, ge=0, validation_alias="CONSOLIDATION_MAX_CONCURRENCY"
    )
    log_file_path: Path | None = Field(default=None, validation_alias="LOG_FILE_PATH")

    @field_validator(
        "database_host",
        "database_user",
        "database_password",
        "database_name",
        "api_key",
        "microsoft_tenant_id",
        "microsoft_client_id",
        "microsoft_client_secret",
        "log_file_path",
        mode="before",
    )
    @classmethod
    def _empty_string_to_none(cls, value):  # type: ignore[override]
        """Coerce blank environment variables to ``None`` so optional values stay optional."""

        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
