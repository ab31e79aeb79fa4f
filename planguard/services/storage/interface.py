"""
Abstract Storage Interface

DESIGN DECISION: Plan, actuals and settings persistence goes through one
abstract interface. This allows us to:
1. Keep everything on the user's device (SQLite) by default
2. Switch to the hosted plan API without touching business logic
3. Test the planning flows against either backend

Every backend must honor the same error contract:
- NotFoundError: update_actual on a date with no record
- InvalidDataError: input rejected before anything is written
- ConnectionError: the backend could not be reached (transient)
- StorageError: anything else; the write did not happen

Multi-row writes (a scenario replace, a settings save) are atomic:
callers see either the whole write or none of it.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional, Union

from pydantic import ValidationError

from planguard.models.plan import (
    ActualsSnapshot,
    GuardrailSettings,
    PlanPoint,
    PlanSnapshot,
    UploadMeta,
)


DateLike = Union[date, str]


class PlanStorageInterface(ABC):
    """
    Abstract interface for plan storage operations.

    Any storage implementation (SQLite, remote API, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get_plan(self, scenario: Optional[str] = None) -> PlanSnapshot:
        """
        Read one scenario's plan series.

        Args:
            scenario: Scenario name. If None, the scenario of the most
                      recent upload, then the default scenario, then the
                      first stored scenario is used.

        Returns:
            The series (sorted by date), its last update time, the most
            recent upload metadata and every stored scenario name.
            An unknown scenario yields an empty series.
        """
        pass

    @abstractmethod
    async def save_plan(
        self,
        series: list[PlanPoint],
        meta: Optional[UploadMeta] = None,
        scenario: Optional[str] = None,
    ) -> None:
        """
        Replace one scenario's plan series atomically.

        Args:
            series: The new plan points
            meta: Upload metadata to append, if this save is an import
            scenario: Scenario to replace (default scenario if None)

        Raises:
            InvalidDataError: If a point is malformed
            StorageError: If the write fails (nothing was changed)
        """
        pass

    @abstractmethod
    async def save_plans(
        self,
        series_by_scenario: dict[str, list[PlanPoint]],
        replace: bool = True,
        meta: Optional[UploadMeta] = None,
    ) -> None:
        """
        Save several scenarios in one atomic write.

        Args:
            series_by_scenario: Scenario name -> plan points
            replace: If True, scenarios not in the mapping are removed.
                     If False, only the given scenarios are replaced.
            meta: Upload metadata to append

        Raises:
            InvalidDataError: If a point or scenario name is malformed
            StorageError: If the write fails (nothing was changed)
        """
        pass

    @abstractmethod
    async def get_actuals(self) -> ActualsSnapshot:
        """
        Read every actual entry, sorted by date.

        Returns:
            The actuals and the newest update time among them
        """
        pass

    @abstractmethod
    async def upsert_actual(self, on: DateLike, value: float) -> None:
        """
        Create or overwrite the actual for a date.

        Raises:
            InvalidDataError: If the date or value is malformed
        """
        pass

    @abstractmethod
    async def update_actual(self, on: DateLike, value: float) -> None:
        """
        Overwrite an existing actual.

        Raises:
            NotFoundError: If no actual exists for that date
            InvalidDataError: If the date or value is malformed
        """
        pass

    @abstractmethod
    async def delete_actual(self, on: DateLike) -> None:
        """
        Delete the actual for a date.

        Idempotent: deleting a date with no record is not an error.
        """
        pass

    @abstractmethod
    async def get_settings(self) -> GuardrailSettings:
        """
        Read guardrail settings.

        Returns:
            Stored settings, or the defaults (10 / 15) if none were saved
        """
        pass

    @abstractmethod
    async def save_settings(self, lower_pct: float, upper_pct: float) -> GuardrailSettings:
        """
        Overwrite guardrail settings.

        Values are rounded to whole percent before storing.

        Returns:
            The settings as stored

        Raises:
            InvalidDataError: If a value is negative or not a finite number
        """
        pass

    @abstractmethod
    async def get_scenarios(self) -> list[str]:
        """
        List stored scenario names, sorted.
        """
        pass

    async def aclose(self) -> None:
        """Release connections held by the backend."""
        pass


def prepare_plan_set(
    series_by_scenario: dict[str, list[Any]],
) -> dict[str, dict[str, float]]:
    """
    Validate plan points and collapse them onto canonical day keys.

    Returns scenario -> {YYYY-MM-DD: value}; a later point for the same
    day replaces an earlier one.

    Raises:
        InvalidDataError: If a scenario name or point is malformed
    """
    prepared: dict[str, dict[str, float]] = {}
    for scenario, series in series_by_scenario.items():
        name = scenario.strip() if isinstance(scenario, str) else ""
        if not name:
            raise InvalidDataError(f"Invalid scenario name: {scenario!r}")
        points: dict[str, float] = {}
        for point in series:
            try:
                if not isinstance(point, PlanPoint):
                    point = PlanPoint.model_validate(point)
            except ValidationError as e:
                raise InvalidDataError(f"Invalid plan point in {name!r}: {e}") from e
            points[point.date.isoformat()] = point.value
        prepared[name] = points
    return prepared


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class InvalidDataError(StorageError, ValueError):
    """Input was rejected before anything was written."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class MigrationError(StorageError):
    """A schema migration step could not be applied."""

    def __init__(self, from_version: int, message: str):
        self.from_version = from_version
        super().__init__(message)
