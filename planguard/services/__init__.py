"""Services package."""

from planguard.services.storage import (
    ConnectionError,
    HttpPlanStorage,
    InvalidDataError,
    MigrationError,
    NotFoundError,
    PlanStorageInterface,
    SQLitePlanStorage,
    StorageConfig,
    StorageError,
    StorageMode,
    StorageProvider,
    create_storage,
    resolve_storage_config,
)

__all__ = [
    "ConnectionError",
    "HttpPlanStorage",
    "InvalidDataError",
    "MigrationError",
    "NotFoundError",
    "PlanStorageInterface",
    "SQLitePlanStorage",
    "StorageConfig",
    "StorageError",
    "StorageMode",
    "StorageProvider",
    "create_storage",
    "resolve_storage_config",
]
