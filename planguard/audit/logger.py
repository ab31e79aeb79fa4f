"""
Audit Logger

DESIGN DECISION: Every change to the plan, the actuals or the guardrail
settings is logged as a structured event. This provides:
1. Traceability of what the numbers on screen were derived from
2. Debugging capability when a guardrail status looks wrong
3. A correlation id tying together the events of one user action

The audit logger:
- Is async so callers await it the same way they await storage
- Never raises; a logging failure must not undo a successful write
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from planguard.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


_LEVELS = {
    AuditSeverity.DEBUG: logging.DEBUG,
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
}


class AuditLogger:
    """
    Central audit logging service.

    Events go to the structured log. Every event is also kept in memory
    (most recent last) so a UI can show what just happened.
    """

    def __init__(self, history_size: int = 100):
        self._logger = structlog.get_logger("planguard.audit")
        self._history: list[AuditEvent] = []
        self._history_size = history_size

    @property
    def history(self) -> list[AuditEvent]:
        """Recently logged events, oldest first."""
        return list(self._history)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was written to the log.
        """
        self._history.append(event)
        del self._history[:-self._history_size]

        try:
            self._logger.log(_LEVELS[event.severity], "audit_event", **event.to_log_dict())
        except Exception as e:
            # Don't let a broken handler fail the action being audited
            logging.getLogger(__name__).error("audit_log_failed: %s", e)
            return False
        return True

    async def log_plan_imported(
        self,
        filename: Optional[str],
        point_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a successful plan import."""
        await self.log(AuditEventBuilder.plan_imported(filename, point_counts, correlation_id))

    async def log_plan_import_rejected(
        self,
        filename: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an import that produced nothing to save."""
        await self.log(AuditEventBuilder.plan_import_rejected(filename, reason, correlation_id))

    async def log_plan_saved(
        self,
        scenarios: list[str],
        replace: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.plan_saved(scenarios, replace, correlation_id))

    async def log_actual_upserted(
        self,
        day: str,
        value: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.actual_upserted(day, value, correlation_id))

    async def log_actual_updated(
        self,
        day: str,
        value: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.actual_updated(day, value, correlation_id))

    async def log_actual_deleted(
        self,
        day: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.actual_deleted(day, correlation_id))

    async def log_settings_saved(
        self,
        lower_pct: int,
        upper_pct: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settings_saved(lower_pct, upper_pct, correlation_id))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed storage call."""
        await self.log(AuditEventBuilder.storage_error(operation, error_message, correlation_id))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a plan import).
    Pass it through all subsequent operations.
    """
    return uuid4()
