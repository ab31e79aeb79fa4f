"""
Main Orchestrator for Planguard

This module ties together the planning engine and the storage backend
and defines the end-to-end flows for:
1. Plan import (rows -> per-scenario series -> storage)
2. Guardrail tracking (actuals + plan + settings -> status per actual)

DESIGN DECISION: The orchestrator enforces the boundaries:
- An import that produced no plan points is never saved
- A typed amount that is not a number is rejected, never stored as 0
- Every change is audited with one correlation id per user action

Presentation code talks to these flows and nothing else.
"""

import datetime as dt
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field

from planguard.audit import AuditLogger, create_correlation_id
from planguard.models.plan import (
    GuardrailSettings,
    ItemSelection,
    PlanSnapshot,
    UploadMeta,
    date_key,
)
from planguard.planning import (
    BuildOptions,
    GuardrailStatus,
    ImportPreview,
    InvalidAmountError,
    NoPlanRowsError,
    build_plan_set,
    classify,
    describe_rows,
    parse_currency_strict,
    plan_value_at,
)
from planguard.services.storage import PlanStorageInterface, StorageError


class ImportResult(BaseModel):
    """Outcome of a saved plan import."""

    scenarios: list[str]
    point_counts: dict[str, int]
    selected_scenario: Optional[str] = None
    meta: UploadMeta


class ActualStatusRow(BaseModel):
    """One actual, compared against the plan on its date."""

    date: dt.date
    actual: float
    plan_value: Optional[float] = None
    lower_bound: Optional[float] = None
    upper_bound: Optional[float] = None
    status: Optional[GuardrailStatus] = Field(
        default=None,
        description="None when there is no plan to compare against"
    )


class PlanImportFlow:
    """
    Orchestrates the plan import flow.

    Flow:
    1. Preview -> list items and scenarios so the user can select
    2. Build -> one series per scenario from the selected rows
    3. Save -> every scenario replaced in one write, with upload metadata

    Every scenario in the file is saved; selected_scenario only decides
    which one is shown first.
    """

    def __init__(
        self,
        storage: PlanStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        default_scenario: Optional[str] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._default_scenario = default_scenario

    def preview(self, rows: Iterable[Mapping[str, Any]]) -> ImportPreview:
        """List the selectable items and scenarios of an import."""
        return describe_rows(rows)

    async def import_rows(
        self,
        rows: Iterable[Mapping[str, Any]],
        filename: Optional[str] = None,
        selected_scenario: Optional[str] = None,
        include_items: Sequence[str] = (),
        exclude_items: Sequence[str] = (),
        correlation_id: Optional[UUID] = None,
    ) -> ImportResult:
        """
        Build and save the plan from imported rows.

        Raises:
            NoPlanRowsError: If the rows produced no plan points, or the
                selected scenario is not among those that did
            StorageError: If saving failed (nothing was changed)
        """
        correlation_id = correlation_id or create_correlation_id()
        rows = list(rows)

        options_kwargs: dict[str, Any] = {
            "include_items": list(include_items),
            "exclude_items": list(exclude_items),
        }
        if self._default_scenario:
            options_kwargs["default_scenario"] = self._default_scenario
        options = BuildOptions(**options_kwargs)

        try:
            plan_set = build_plan_set(rows, options)
            if selected_scenario and selected_scenario not in plan_set:
                available = tuple(plan_set)
                raise NoPlanRowsError(
                    f"Scenario {selected_scenario!r} produced no plan points. "
                    f"Available scenarios: {', '.join(available)}",
                    scenarios=available,
                )
        except NoPlanRowsError as e:
            if self._audit_logger:
                await self._audit_logger.log_plan_import_rejected(
                    filename=filename,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            raise

        meta = UploadMeta(
            filename=filename or "import",
            scenario=selected_scenario,
            items=ItemSelection(
                include=list(include_items),
                exclude=list(exclude_items),
            ),
        )

        try:
            await self._storage.save_plans(plan_set, replace=True, meta=meta)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="save_plans",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        point_counts = {name: len(series) for name, series in plan_set.items()}
        if self._audit_logger:
            await self._audit_logger.log_plan_saved(
                scenarios=list(plan_set),
                replace=True,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_plan_imported(
                filename=filename,
                point_counts=point_counts,
                correlation_id=correlation_id,
            )

        return ImportResult(
            scenarios=list(plan_set),
            point_counts=point_counts,
            selected_scenario=selected_scenario,
            meta=meta,
        )


class GuardrailTracker:
    """
    Orchestrates actual tracking against the plan.

    Reads go straight to storage each time; nothing is cached between
    calls, so the report always reflects the last write.
    """

    def __init__(
        self,
        storage: PlanStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def actuals_report(self, scenario: Optional[str] = None) -> list[ActualStatusRow]:
        """
        Compare every actual with the plan value on its date.

        Rows are sorted by date. Without a plan, plan value, bounds and
        status are None.
        """
        plan = await self._storage.get_plan(scenario)
        actuals = await self._storage.get_actuals()
        settings = await self._storage.get_settings()

        report = []
        for entry in actuals.actuals:
            plan_value = plan_value_at(plan.series, entry.date)
            if plan_value is None:
                report.append(ActualStatusRow(date=entry.date, actual=entry.value))
                continue
            result = classify(plan_value, entry.value, settings.lower_pct, settings.upper_pct)
            report.append(
                ActualStatusRow(
                    date=entry.date,
                    actual=entry.value,
                    plan_value=plan_value,
                    lower_bound=result.lower_bound,
                    upper_bound=result.upper_bound,
                    status=result.status,
                )
            )
        return report

    async def plan(self, scenario: Optional[str] = None) -> PlanSnapshot:
        """The stored plan for a scenario (resolved as storage does)."""
        return await self._storage.get_plan(scenario)

    async def today_plan_value(
        self,
        scenario: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> Optional[float]:
        """Plan value for today (or the given day); None without a plan."""
        plan = await self._storage.get_plan(scenario)
        return plan_value_at(plan.series, today or dt.date.today())

    async def last_updated(self, scenario: Optional[str] = None) -> Optional[dt.datetime]:
        """Newest change among the plan and the actuals."""
        plan = await self._storage.get_plan(scenario)
        actuals = await self._storage.get_actuals()
        stamps = [t for t in (plan.last_updated, actuals.last_updated) if t is not None]
        return max(stamps) if stamps else None

    async def settings(self) -> GuardrailSettings:
        return await self._storage.get_settings()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @staticmethod
    def _amount(raw: Any) -> float:
        value = parse_currency_strict(raw)
        if value is None:
            raise InvalidAmountError(raw)
        return value

    async def record_actual(
        self,
        on: Any,
        raw_value: Any,
        correlation_id: Optional[UUID] = None,
    ) -> float:
        """
        Create or overwrite the actual for a date from user input.

        Returns:
            The parsed value that was stored

        Raises:
            InvalidAmountError: If raw_value is not a number
            InvalidDataError: If the date is malformed
        """
        value = self._amount(raw_value)
        await self._storage.upsert_actual(on, value)
        if self._audit_logger:
            await self._audit_logger.log_actual_upserted(
                day=date_key(on),
                value=value,
                correlation_id=correlation_id,
            )
        return value

    async def edit_actual(
        self,
        on: Any,
        raw_value: Any,
        correlation_id: Optional[UUID] = None,
    ) -> float:
        """
        Overwrite an existing actual from user input.

        Raises:
            InvalidAmountError: If raw_value is not a number
            NotFoundError: If no actual exists for that date
        """
        value = self._amount(raw_value)
        await self._storage.update_actual(on, value)
        if self._audit_logger:
            await self._audit_logger.log_actual_updated(
                day=date_key(on),
                value=value,
                correlation_id=correlation_id,
            )
        return value

    async def delete_actual(
        self,
        on: Any,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete the actual for a date, if any."""
        await self._storage.delete_actual(on)
        if self._audit_logger:
            await self._audit_logger.log_actual_deleted(
                day=date_key(on),
                correlation_id=correlation_id,
            )

    async def save_settings(
        self,
        lower_pct: Any,
        upper_pct: Any,
        correlation_id: Optional[UUID] = None,
    ) -> GuardrailSettings:
        """
        Save guardrail widths (rounded to whole percent).

        Raises:
            InvalidDataError: If a value is negative or not a finite number
        """
        settings = await self._storage.save_settings(lower_pct, upper_pct)
        if self._audit_logger:
            await self._audit_logger.log_settings_saved(
                lower_pct=settings.lower_pct,
                upper_pct=settings.upper_pct,
                correlation_id=correlation_id,
            )
        return settings
