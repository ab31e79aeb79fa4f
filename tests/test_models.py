"""
Tests for Planguard models

Test strategy:
1. Unit tests for individual components (models, planning functions)
2. Storage tests against a temporary SQLite file and a mock HTTP transport
3. No real network calls in tests
"""

import pytest
from datetime import date, datetime, timezone
from uuid import uuid4

from pydantic import ValidationError

from planguard.models.plan import (
    ActualEntry,
    GuardrailSettings,
    ItemSelection,
    PlanPoint,
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


class TestDateNormalization:
    """Tests for date canonicalization."""

    def test_plain_iso_day(self):
        """Test a YYYY-MM-DD string is read as that day."""
        assert normalize_date("2024-03-01") == date(2024, 3, 1)

    def test_time_component_is_dropped(self):
        """Test timestamps with time and offset collapse to the day as written."""
        assert date_key("2024-03-01T17:45:00Z") == "2024-03-01"
        assert date_key("2024-03-01T23:59:59-08:00") == "2024-03-01"
        assert date_key("2024-03-01 09:00") == "2024-03-01"

    def test_datetime_and_date_objects(self):
        """Test datetime objects lose their time of day."""
        assert normalize_date(datetime(2024, 3, 1, 9, 30)) == date(2024, 3, 1)
        assert normalize_date(date(2024, 3, 1)) == date(2024, 3, 1)

    def test_surrounding_whitespace(self):
        """Test whitespace around a date string is ignored."""
        assert date_key("  2024-03-01 ") == "2024-03-01"

    @pytest.mark.parametrize("bad", ["", "yesterday", "2024-13-01", "03/01/2024", None, 20240301])
    def test_rejects_unreadable_dates(self, bad):
        """Test values that are not calendar days are rejected."""
        with pytest.raises(ValueError):
            normalize_date(bad)


class TestPlanModels:
    """Tests for plan-related Pydantic models."""

    def test_plan_point_canonicalizes_date(self):
        """Test PlanPoint stores only the calendar day."""
        point = PlanPoint(date="2030-01-01T00:00:00Z", value=1000)
        assert point.date == date(2030, 1, 1)
        assert point.value == 1000.0

    def test_plan_point_rejects_non_finite_value(self):
        """Test NaN and infinity are rejected."""
        with pytest.raises(ValidationError):
            PlanPoint(date="2030-01-01", value=float("nan"))
        with pytest.raises(ValidationError):
            ActualEntry(date="2030-01-01", value=float("inf"))

    def test_plan_point_is_frozen(self):
        """Test plan points cannot be mutated after creation."""
        point = PlanPoint(date="2030-01-01", value=1)
        with pytest.raises(ValidationError):
            point.value = 2

    def test_actual_entry_rejects_bad_date(self):
        """Test an unreadable date fails validation."""
        with pytest.raises(ValidationError):
            ActualEntry(date="not a date", value=1)

    def test_sort_series(self):
        """Test series are ordered by date ascending."""
        points = [
            PlanPoint(date="2032-01-01", value=3),
            PlanPoint(date="2030-01-01", value=1),
            PlanPoint(date="2031-01-01", value=2),
        ]
        assert [p.value for p in sort_series(points)] == [1, 2, 3]

    def test_upload_meta_defaults(self):
        """Test UploadMeta fills in an aware upload time and empty selection."""
        meta = UploadMeta(filename="  plan.csv ")
        assert meta.filename == "plan.csv"
        assert meta.items == ItemSelection()
        assert meta.uploaded_at.tzinfo is not None

    def test_upload_meta_unknown_upload_time(self):
        """Test an upload time the backend did not report stays unknown."""
        meta = UploadMeta(filename="plan.csv", uploaded_at=None)
        assert meta.uploaded_at is None

    def test_upload_meta_requires_filename(self):
        """Test an empty filename is rejected."""
        with pytest.raises(ValidationError):
            UploadMeta(filename="")


class TestGuardrailSettings:
    """Tests for guardrail settings."""

    def test_defaults(self):
        """Test default band is 10% below and 15% above."""
        settings = GuardrailSettings()
        assert settings.lower_pct == 10
        assert settings.upper_pct == 15

    @pytest.mark.parametrize(
        "raw, expected",
        [(12.5, 13), (12.4, 12), ("7.5", 8), (0, 0), (0.49, 0)],
    )
    def test_from_percentages_rounds_half_up(self, raw, expected):
        """Test user input is rounded half-up to whole percent."""
        settings = GuardrailSettings.from_percentages(raw, raw)
        assert settings.lower_pct == expected
        assert settings.upper_pct == expected

    @pytest.mark.parametrize("bad", [-1, "abc", None, float("nan"), float("inf")])
    def test_from_percentages_rejects_invalid(self, bad):
        """Test negative, non-numeric and non-finite input is rejected."""
        with pytest.raises(ValueError):
            GuardrailSettings.from_percentages(bad, 15)

    def test_negative_rejected_by_model(self):
        """Test the model itself refuses negative widths."""
        with pytest.raises(ValidationError):
            GuardrailSettings(lower_pct=-5, upper_pct=15)


class TestPickScenario:
    """Tests for scenario resolution on plan reads."""

    def test_explicit_request_wins(self):
        """Test a requested scenario is used even if unknown."""
        assert pick_scenario("Bad", ["Average", "Good"]) == "Bad"

    def test_last_upload_scenario(self):
        """Test the most recent upload's scenario is preferred."""
        meta = UploadMeta(filename="plan.csv", scenario="Good")
        assert pick_scenario(None, ["Average", "Good"], meta) == "Good"

    def test_last_upload_scenario_ignored_when_gone(self):
        """Test an upload scenario no longer stored falls through to the default."""
        meta = UploadMeta(filename="plan.csv", scenario="Gone")
        assert pick_scenario(None, ["Average", "Good"], meta) == "Average"

    def test_first_available_when_no_default(self):
        """Test the first stored scenario is used last."""
        assert pick_scenario(None, ["Bad", "Good"]) == "Bad"

    def test_nothing_stored(self):
        """Test None when no scenario exists."""
        assert pick_scenario(None, []) is None


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.PLAN_SAVED,
            description="Plan saved",
        )
        assert event.event_type == AuditEventType.PLAN_SAVED
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp.tzinfo == timezone.utc

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.ACTUAL_UPSERTED,
            description="Actual recorded",
            details={"value": 1250.0},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "actual_upserted"
        assert log_dict["details"]["value"] == 1250.0
        assert log_dict["correlation_id"] is None

    def test_audit_event_builder_plan_imported(self):
        """Test AuditEventBuilder.plan_imported."""
        correlation_id = uuid4()
        event = AuditEventBuilder.plan_imported(
            filename="plan.csv",
            point_counts={"Average": 5, "Good": 5},
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.PLAN_IMPORTED
        assert event.correlation_id == correlation_id
        assert event.details["point_counts"] == {"Average": 5, "Good": 5}
        assert event.is_user_action is True

    def test_audit_event_builder_actual_deleted(self):
        """Test AuditEventBuilder.actual_deleted keys the event by day."""
        event = AuditEventBuilder.actual_deleted("2024-03-01")
        assert event.entity_type == "actual"
        assert event.entity_key == "2024-03-01"

    def test_audit_event_builder_storage_error(self):
        """Test storage errors are logged at error severity."""
        event = AuditEventBuilder.storage_error("save_plans", "disk full")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "disk full"
        assert event.is_user_action is False

    def test_every_event_type_is_emitted(self):
        """Test each audit event type has a builder that produces it."""
        built = {
            AuditEventBuilder.plan_imported("p.csv", {}).event_type,
            AuditEventBuilder.plan_import_rejected("p.csv", "empty").event_type,
            AuditEventBuilder.plan_saved(["Average"], True).event_type,
            AuditEventBuilder.actual_upserted("2024-03-01", 1.0).event_type,
            AuditEventBuilder.actual_updated("2024-03-01", 1.0).event_type,
            AuditEventBuilder.actual_deleted("2024-03-01").event_type,
            AuditEventBuilder.settings_saved(10, 15).event_type,
            AuditEventBuilder.storage_error("get_plan", "down").event_type,
        }
        assert built == set(AuditEventType)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
