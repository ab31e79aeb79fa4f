"""
Storage Services Package

Provides the abstract plan storage interface and its two implementations:
an embedded SQLite store (default) and a client for the remote plan API.
"""

from planguard.services.storage.interface import (
    ConnectionError,
    InvalidDataError,
    MigrationError,
    NotFoundError,
    PlanStorageInterface,
    StorageError,
)
from planguard.services.storage.local_sqlite import SQLitePlanStorage
from planguard.services.storage.remote_http import HttpPlanStorage
from planguard.services.storage.factory import (
    StorageConfig,
    StorageMode,
    StorageProvider,
    create_storage,
    resolve_storage_config,
)

__all__ = [
    # Interface
    "PlanStorageInterface",
    # Exceptions
    "ConnectionError",
    "InvalidDataError",
    "MigrationError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "HttpPlanStorage",
    "SQLitePlanStorage",
    # Factory
    "StorageConfig",
    "StorageMode",
    "StorageProvider",
    "create_storage",
    "resolve_storage_config",
]
