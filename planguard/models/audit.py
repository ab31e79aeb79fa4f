"""
Audit Models for Planguard

Every change to the plan, the actuals or the guardrail settings is
recorded as an AuditEvent and written to the structured log.

DESIGN DECISION: Audit events are emitted, never edited.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Import
    PLAN_IMPORTED = "plan_imported"
    PLAN_IMPORT_REJECTED = "plan_import_rejected"

    # Persistence
    PLAN_SAVED = "plan_saved"
    ACTUAL_UPSERTED = "actual_upserted"
    ACTUAL_UPDATED = "actual_updated"
    ACTUAL_DELETED = "actual_deleted"
    SETTINGS_SAVED = "settings_saved"

    # Storage
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    entity_key identifies what the event is about: a date key for
    actuals, a scenario name for plans, a schema version for migrations.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'plan', 'actual', 'settings', 'schema')"
    )
    entity_key: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_key": self.entity_key,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.plan_imported("plan.csv", {"Average": 5}, correlation_id)
        event = AuditEventBuilder.actual_upserted("2024-03-01", 1250.0)
    """

    @staticmethod
    def plan_imported(
        filename: Optional[str],
        point_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_IMPORTED,
            entity_type="plan",
            correlation_id=correlation_id,
            description=f"Plan imported from {filename or 'rows'} ({len(point_counts)} scenarios)",
            details={"filename": filename, "point_counts": point_counts},
            is_user_action=True,
        )

    @staticmethod
    def plan_import_rejected(
        filename: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="plan",
            correlation_id=correlation_id,
            description=f"Plan import rejected: {filename or 'rows'}",
            details={"filename": filename},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def plan_saved(
        scenarios: list[str],
        replace: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_SAVED,
            entity_type="plan",
            entity_key=",".join(scenarios),
            correlation_id=correlation_id,
            description=f"Plan saved for {len(scenarios)} scenario(s)",
            details={"scenarios": scenarios, "replace": replace},
        )

    @staticmethod
    def actual_upserted(
        day: str,
        value: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTUAL_UPSERTED,
            entity_type="actual",
            entity_key=day,
            correlation_id=correlation_id,
            description=f"Actual recorded for {day}",
            details={"value": value},
            is_user_action=True,
        )

    @staticmethod
    def actual_updated(
        day: str,
        value: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTUAL_UPDATED,
            entity_type="actual",
            entity_key=day,
            correlation_id=correlation_id,
            description=f"Actual edited for {day}",
            details={"value": value},
            is_user_action=True,
        )

    @staticmethod
    def actual_deleted(
        day: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTUAL_DELETED,
            entity_type="actual",
            entity_key=day,
            correlation_id=correlation_id,
            description=f"Actual deleted for {day}",
            is_user_action=True,
        )

    @staticmethod
    def settings_saved(
        lower_pct: int,
        upper_pct: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_SAVED,
            entity_type="settings",
            correlation_id=correlation_id,
            description=f"Guardrails set to -{lower_pct}% / +{upper_pct}%",
            details={"lower_pct": lower_pct, "upper_pct": upper_pct},
            is_user_action=True,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type="storage",
            entity_key=operation,
            correlation_id=correlation_id,
            description=f"Storage operation failed: {operation}",
            error_message=error_message,
        )
