"""Configuration package."""

from planguard.config.settings import (
    AppSettings,
    LocalStoreSettings,
    RemoteStoreSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "LocalStoreSettings",
    "RemoteStoreSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
