"""
Data Models Package

This package contains all Pydantic models used in Planguard.
All data flowing through the system must conform to these schemas.
"""

from planguard.models.plan import (
    DEFAULT_LOWER_PCT,
    DEFAULT_SCENARIO,
    DEFAULT_UPPER_PCT,
    ActualEntry,
    ActualsSnapshot,
    GuardrailSettings,
    ItemSelection,
    PlanPoint,
    PlanSnapshot,
    UploadMeta,
    date_key,
    normalize_date,
    pick_scenario,
    sort_series,
)
from planguard.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Plan models
    "DEFAULT_LOWER_PCT",
    "DEFAULT_SCENARIO",
    "DEFAULT_UPPER_PCT",
    "ActualEntry",
    "ActualsSnapshot",
    "GuardrailSettings",
    "ItemSelection",
    "PlanPoint",
    "PlanSnapshot",
    "UploadMeta",
    "date_key",
    "normalize_date",
    "pick_scenario",
    "sort_series",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
