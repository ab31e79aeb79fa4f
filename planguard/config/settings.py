"""
Configuration Management for Planguard

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Storage backend selection is resolved once at startup from these values
and passed down explicitly; nothing below the factory reads the
environment on its own.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Which storage backend to use."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    mode: str = Field(
        default="local",
        description="Storage backend: 'local' or 'remote' ('hosted' is accepted as an alias)"
    )

    @field_validator('mode')
    @classmethod
    def normalize_mode(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v == "hosted":
            return "remote"
        if v not in {"local", "remote"}:
            raise ValueError(f"Unknown storage mode: {v!r}")
        return v


class LocalStoreSettings(BaseSettings):
    """Embedded SQLite store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_STORE_",
        extra="ignore"
    )

    path: str = Field(
        default="guardrails.db",
        description="Path to the SQLite database file (':memory:' for a throwaway store)"
    )


class RemoteStoreSettings(BaseSettings):
    """Remote plan API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REMOTE_STORE_",
        extra="ignore"
    )

    base_url: str = Field(
        ...,
        description="Base URL of the plan API, e.g. https://guardrails.example.com"
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token sent with every request"
    )
    timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Request timeout; unset means no timeout"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Plan defaults
    default_scenario: str = Field(
        default="Average",
        min_length=1,
        description="Scenario name used when a row has no assumption"
    )
    default_lower_pct: int = Field(
        default=10,
        ge=0,
        description="Lower guardrail width when none has been saved"
    )
    default_upper_pct: int = Field(
        default=15,
        ge=0,
        description="Upper guardrail width when none has been saved"
    )
    default_excluded_items: str = Field(
        default="Housing",
        description="Comma-separated line items excluded on first import"
    )

    @property
    def excluded_items_list(self) -> list[str]:
        """Get default excluded items as a list."""
        return [
            item.strip()
            for item in self.default_excluded_items.split(",")
            if item.strip()
        ]


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def local_store(self) -> LocalStoreSettings:
        return LocalStoreSettings()

    @property
    def remote_store(self) -> RemoteStoreSettings:
        return RemoteStoreSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    The remote section is only required when remote mode is selected.
    """
    results = {}

    settings = get_settings()

    sections = {
        "storage": lambda: settings.storage,
        "local_store": lambda: settings.local_store,
        "app": lambda: settings.app,
    }
    try:
        remote_needed = settings.storage.mode == "remote"
    except Exception:
        remote_needed = False
    if remote_needed:
        sections["remote_store"] = lambda: settings.remote_store

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
