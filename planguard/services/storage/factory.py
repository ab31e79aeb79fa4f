"""
Storage Factory

DESIGN DECISION: The backend is chosen once, at startup, from a single
StorageConfig value that is then passed to whoever needs storage.
Nothing reads the environment or a saved preference at call time, and
there is no module-level adapter: a StorageProvider owns exactly one
adapter for its lifetime. Switching backends means building a new
provider, never swapping the adapter under a live one.

Mode precedence when resolving the config:
1. An explicit override (e.g. a ?mode= query parameter or CLI flag)
2. The user's saved preference
3. STORAGE_MODE from the environment
4. local
"""

import asyncio
from enum import Enum
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from planguard.config import Settings, get_settings
from planguard.models.plan import DEFAULT_SCENARIO, GuardrailSettings
from planguard.services.storage.interface import PlanStorageInterface
from planguard.services.storage.local_sqlite import SQLitePlanStorage
from planguard.services.storage.remote_http import HttpPlanStorage


logger = structlog.get_logger(__name__)


class StorageMode(str, Enum):
    """Available storage backends."""
    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["StorageMode"]:
        """Read a mode name; 'hosted' is a legacy alias for remote. None if unrecognized."""
        text = (value or "").strip().lower()
        if text == "hosted":
            return cls.REMOTE
        try:
            return cls(text)
        except ValueError:
            return None


class StorageConfig(BaseModel):
    """Everything needed to build a storage adapter."""

    mode: StorageMode = StorageMode.LOCAL
    local_path: str = "guardrails.db"
    remote_base_url: Optional[str] = None
    remote_api_token: Optional[str] = None
    remote_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    default_scenario: str = DEFAULT_SCENARIO
    default_settings: GuardrailSettings = Field(default_factory=GuardrailSettings)


def resolve_storage_config(
    override: Optional[str] = None,
    saved_preference: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> StorageConfig:
    """
    Resolve the storage configuration once.

    Unrecognized override/preference values are ignored and the next
    source is consulted.
    """
    settings = settings or get_settings()

    mode = StorageMode.parse(override) or StorageMode.parse(saved_preference)
    if mode is None:
        mode = StorageMode.parse(settings.storage.mode) or StorageMode.LOCAL

    app = settings.app
    config = StorageConfig(
        mode=mode,
        local_path=settings.local_store.path,
        default_scenario=app.default_scenario,
        default_settings=GuardrailSettings(
            lower_pct=app.default_lower_pct,
            upper_pct=app.default_upper_pct,
        ),
    )
    if mode is StorageMode.REMOTE:
        remote = settings.remote_store
        config = config.model_copy(
            update={
                "remote_base_url": remote.base_url,
                "remote_api_token": remote.api_token,
                "remote_timeout_seconds": remote.timeout_seconds,
            }
        )
    return config


async def create_storage(config: StorageConfig) -> PlanStorageInterface:
    """
    Build a new adapter for the configured backend.

    Raises:
        ValueError: If remote mode is selected without a base URL
        MigrationError: If the local store cannot be migrated
    """
    if config.mode is StorageMode.REMOTE:
        if not config.remote_base_url:
            raise ValueError("Remote storage requires a base URL (REMOTE_STORE_BASE_URL)")
        storage: PlanStorageInterface = HttpPlanStorage(
            base_url=config.remote_base_url,
            api_token=config.remote_api_token,
            timeout=config.remote_timeout_seconds,
            default_scenario=config.default_scenario,
            default_settings=config.default_settings,
        )
    else:
        storage = await SQLitePlanStorage.open(
            config.local_path,
            default_scenario=config.default_scenario,
            default_settings=config.default_settings,
        )

    logger.info("storage_created", mode=config.mode.value)
    return storage


class StorageProvider:
    """
    Holds the one storage adapter for an application instance.

    The adapter is created on first use and reused until aclose();
    concurrent first calls share a single creation.
    """

    def __init__(self, config: StorageConfig):
        self._config = config
        self._storage: Optional[PlanStorageInterface] = None
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def config(self) -> StorageConfig:
        return self._config

    async def get(self) -> PlanStorageInterface:
        """Return the adapter, creating it on first call."""
        if self._storage is not None:
            return self._storage
        async with self._lock:
            if self._closed:
                raise RuntimeError("StorageProvider has been closed")
            if self._storage is None:
                self._storage = await create_storage(self._config)
        return self._storage

    async def aclose(self) -> None:
        """Close the adapter; the provider cannot be used afterwards."""
        async with self._lock:
            self._closed = True
            if self._storage is not None:
                await self._storage.aclose()
                self._storage = None
