"""Application configuration via pydantic-settings.

All config is sourced from environment variables. Never use os.getenv() directly.
"""

import json
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store backing workflows, nodes and edges."""

    model_config = SettingsConfigDict(env_prefix="")

    database_url: str

    @field_validator("database_url")
    @classmethod
    def validate_database_url_not_empty(cls, v: str, info) -> str:
        if not v or not v.strip():
            raise ValueError(
                f"{info.field_name.upper()} must be set via environment variable. "
                "No default is provided for security reasons."
            )
        return v


class StoreSettings(BaseSettings):
    """Hosted REST store (PostgREST dialect) used by RestTableStore."""

    model_config = SettingsConfigDict(env_prefix="")

    # "sql": SQLAlchemy over DATABASE_URL, "rest": PostgREST over STORE_URL
    store_backend: Literal["sql", "rest"] = "sql"
    store_url: str = "http://localhost:54321"
    store_service_key: str = ""
    store_timeout: float = 10.0


class LLMSettings(BaseSettings):
    """Workflow-generation collaborator (messages API)."""

    model_config = SettingsConfigDict(env_prefix="")

    llm_api_key: str = ""
    llm_base_url: str = "https://api.anthropic.com"
    llm_api_version: str = "2023-06-01"
    llm_model: str = "claude-3-5-sonnet-20241022"
    llm_max_tokens: int = 4096
    llm_timeout: float = 120.0


class AccessSettings(BaseSettings):
    """Shared-password gate and signed session cookie."""

    model_config = SettingsConfigDict(env_prefix="")

    # sha256 hex digest of the shared password
    access_password_hash: str = ""
    access_cookie_secret: str = "dev-cookie-secret-change-in-prod"
    access_cookie_name: str = "vwf_access"
    session_max_age_days: int = 30


class HistorySettings(BaseSettings):
    """Canvas undo/redo settings."""

    model_config = SettingsConfigDict(env_prefix="")

    history_capacity: int = 100


class RedisSettings(BaseSettings):
    """Redis configuration: cross-process save locks."""

    model_config = SettingsConfigDict(env_prefix="")

    redis_url: str = "redis://redis:6379/0"
    save_lock_ttl: int = 60  # seconds a save lock may be held


class Settings(BaseSettings):
    """Workflow router application settings.

    Environment variables are the single source of truth.
    Defaults are development-safe values only.
    """

    model_config = SettingsConfigDict(env_file=".env")

    app_env: str = "development"

    # Nested settings groups
    database: DatabaseSettings = DatabaseSettings()
    store: StoreSettings = StoreSettings()
    llm: LLMSettings = LLMSettings()
    access: AccessSettings = AccessSettings()
    history: HistorySettings = HistorySettings()
    redis: RedisSettings = RedisSettings()

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Refuse to start with the dev cookie secret outside development."""
        is_prod = self.app_env != "development"
        has_dev_secret = (
            self.access.access_cookie_secret == "dev-cookie-secret-change-in-prod"
        )
        if is_prod and has_dev_secret:
            raise ValueError(
                f"ACCESS_COOKIE_SECRET must be set when APP_ENV={self.app_env!r}. "
                "The default dev secret is not allowed outside development."
            )
        return self

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    metrics_enabled: bool = True

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return json.loads(v)
        return v


settings = Settings()
