"""
Core Data Models for Planguard

These models define the schemas for all data flowing between the
planning engine, the storage backends and the presentation layer.

DESIGN DECISION: Dates are canonicalized on the way IN.
Every model that carries a calendar day runs it through normalize_date,
so "2024-03-01", "2024-03-01T17:45:00Z" and datetime(2024, 3, 1, 9)
all become the same key before anything is stored or compared.
"""

import datetime as dt
import math
import re
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


DEFAULT_SCENARIO = "Average"
DEFAULT_LOWER_PCT = 10
DEFAULT_UPPER_PCT = 15

_ISO_DAY_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ].*)?$")


def normalize_date(value: Any) -> dt.date:
    """
    Reduce any supported date representation to a calendar day.

    Accepts date, datetime (time-of-day dropped as written) and ISO
    strings with or without a time/offset component.

    Raises:
        ValueError: If the value cannot be read as a calendar day
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        match = _ISO_DAY_PREFIX.match(text)
        try:
            if match:
                return dt.date.fromisoformat(match.group(1))
            return dt.datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise ValueError(f"Not a calendar date: {value!r}")


def date_key(value: Any) -> str:
    """Canonical YYYY-MM-DD storage key for a date-like value."""
    return normalize_date(value).isoformat()


def _finite(v: float) -> float:
    if not math.isfinite(v):
        raise ValueError("Value must be a finite number")
    return v


# =============================================================================
# PLAN / ACTUAL SAMPLES
# =============================================================================

class PlanPoint(BaseModel):
    """One (date, target value) sample of a plan trajectory."""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    value: float

    @field_validator('date', mode='before')
    @classmethod
    def canonical_date(cls, v: Any) -> dt.date:
        return normalize_date(v)

    @field_validator('value')
    @classmethod
    def finite_value(cls, v: float) -> float:
        return _finite(v)


class ActualEntry(BaseModel):
    """One recorded real-world value, keyed by date alone."""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    value: float

    @field_validator('date', mode='before')
    @classmethod
    def canonical_date(cls, v: Any) -> dt.date:
        return normalize_date(v)

    @field_validator('value')
    @classmethod
    def finite_value(cls, v: float) -> float:
        return _finite(v)


def sort_series(points: list[PlanPoint]) -> list[PlanPoint]:
    """Return plan points ordered by date ascending."""
    return sorted(points, key=lambda p: p.date)


# =============================================================================
# SETTINGS
# =============================================================================

class GuardrailSettings(BaseModel):
    """
    Guardrail band widths, in whole percent.

    Singleton per deployment. The band runs from lower_pct below the
    interpolated plan value to upper_pct above it.
    """

    lower_pct: int = Field(
        default=DEFAULT_LOWER_PCT,
        ge=0,
        description="Band width below the plan value"
    )
    upper_pct: int = Field(
        default=DEFAULT_UPPER_PCT,
        ge=0,
        description="Band width above the plan value"
    )

    @classmethod
    def from_percentages(cls, lower_pct: Any, upper_pct: Any) -> "GuardrailSettings":
        """
        Build settings from user input, rounding half-up to whole percent.

        Raises:
            ValueError: If either value is not a finite, non-negative number
        """
        rounded = []
        for name, raw in (("lower_pct", lower_pct), ("upper_pct", upper_pct)):
            try:
                number = float(raw)
            except (TypeError, ValueError):
                raise ValueError(f"{name} must be a number, got {raw!r}")
            if not math.isfinite(number):
                raise ValueError(f"{name} must be finite")
            if number < 0:
                raise ValueError(f"{name} cannot be negative")
            rounded.append(math.floor(number + 0.5))
        return cls(lower_pct=rounded[0], upper_pct=rounded[1])


# =============================================================================
# UPLOAD METADATA
# =============================================================================

class ItemSelection(BaseModel):
    """Which line items were aggregated into the plan."""
    model_config = ConfigDict(str_strip_whitespace=True)

    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)


class UploadMeta(BaseModel):
    """
    Describes one plan import.

    One record is appended per import; the newest is authoritative
    for "last upload" display.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    filename: str = Field(
        ...,
        min_length=1,
        description="Name of the imported file"
    )
    scenario: Optional[str] = Field(
        default=None,
        description="Scenario selected at import time"
    )
    items: ItemSelection = Field(default_factory=ItemSelection)
    uploaded_at: Optional[dt.datetime] = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc),
        description="When the import was stored (UTC); None if the backend did not say"
    )


# =============================================================================
# READ RESULTS
# =============================================================================

class PlanSnapshot(BaseModel):
    """Result of reading one scenario's plan from storage."""

    series: list[PlanPoint] = Field(default_factory=list)
    last_updated: Optional[dt.datetime] = None
    meta: Optional[UploadMeta] = None
    scenarios: list[str] = Field(default_factory=list)
    scenario: Optional[str] = Field(
        default=None,
        description="Scenario the series belongs to"
    )


class ActualsSnapshot(BaseModel):
    """Result of reading all actuals from storage."""

    actuals: list[ActualEntry] = Field(default_factory=list)
    last_updated: Optional[dt.datetime] = None


def pick_scenario(
    requested: Optional[str],
    available: list[str],
    last_upload: Optional[UploadMeta] = None,
    default: str = DEFAULT_SCENARIO,
) -> Optional[str]:
    """
    Decide which scenario a plan read refers to.

    An explicit request always wins (even if unknown). Otherwise the
    scenario of the most recent upload, then the default scenario,
    then the first available one.
    """
    if requested:
        return requested
    if last_upload and last_upload.scenario in available:
        return last_upload.scenario
    if default in available:
        return default
    return available[0] if available else None
