"""
Tests for the SQLite plan store and its schema migrations.
"""

import sqlite3
from datetime import date

import pytest

from planguard.models.plan import PlanPoint, UploadMeta, ItemSelection
from planguard.services.storage import (
    InvalidDataError,
    MigrationError,
    NotFoundError,
    SQLitePlanStorage,
)
from planguard.services.storage.migrations import (
    LATEST_VERSION,
    MIGRATIONS,
    Migration,
    current_version,
    migrate,
)


def _values(series):
    return [(p.date.isoformat(), p.value) for p in series]


class TestFreshStore:
    """Tests for an empty store."""

    @pytest.mark.asyncio
    async def test_empty_reads(self, store):
        """Test a new store has no plan, no actuals and default settings."""
        plan = await store.get_plan()
        assert plan.series == []
        assert plan.scenarios == []
        assert plan.scenario is None
        assert plan.last_updated is None
        assert plan.meta is None

        actuals = await store.get_actuals()
        assert actuals.actuals == []
        assert actuals.last_updated is None

        settings = await store.get_settings()
        assert (settings.lower_pct, settings.upper_pct) == (10, 15)

    @pytest.mark.asyncio
    async def test_schema_at_latest_version(self, store, db_path):
        """Test opening a store migrates it to the newest schema."""
        conn = sqlite3.connect(db_path)
        try:
            assert current_version(conn) == LATEST_VERSION
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        finally:
            conn.close()
        assert "plan_points" in tables
        assert "plans" not in tables

    @pytest.mark.asyncio
    async def test_memory_store(self):
        """Test an in-memory store works for throwaway use."""
        storage = await SQLitePlanStorage.open(":memory:")
        try:
            await storage.upsert_actual("2024-01-01", 5)
            assert len((await storage.get_actuals()).actuals) == 1
        finally:
            await storage.aclose()


class TestPlanPersistence:
    """Tests for saving and reading plans."""

    @pytest.mark.asyncio
    async def test_round_trip_sorted(self, store):
        """Test a saved series reads back in date order."""
        await store.save_plan(
            [PlanPoint(date="2031-01-01", value=2), PlanPoint(date="2030-01-01", value=1)],
        )
        plan = await store.get_plan()
        assert plan.scenario == "Average"
        assert _values(plan.series) == [("2030-01-01", 1.0), ("2031-01-01", 2.0)]
        assert plan.last_updated is not None
        assert plan.last_updated.tzinfo is not None

    @pytest.mark.asyncio
    async def test_resave_replaces_scenario(self, store, series):
        """Test saving a scenario again leaves only the new points."""
        await store.save_plan(series)
        await store.save_plan([PlanPoint(date="2040-01-01", value=7)])
        plan = await store.get_plan("Average")
        assert _values(plan.series) == [("2040-01-01", 7.0)]

    @pytest.mark.asyncio
    async def test_save_plans_replace_drops_other_scenarios(self, store, series):
        """Test replace=True clears scenarios missing from the new set."""
        await store.save_plans({"Average": series, "Good": series})
        await store.save_plans({"Poor": series}, replace=True)
        assert await store.get_scenarios() == ["Poor"]

    @pytest.mark.asyncio
    async def test_save_plans_merge_keeps_other_scenarios(self, store, series):
        """Test replace=False only replaces the scenarios given."""
        await store.save_plans({"Average": series, "Good": series})
        await store.save_plans({"Good": [PlanPoint(date="2030-01-01", value=1)]}, replace=False)
        assert await store.get_scenarios() == ["Average", "Good"]
        assert len((await store.get_plan("Average")).series) == 2
        assert len((await store.get_plan("Good")).series) == 1

    @pytest.mark.asyncio
    async def test_unknown_scenario_is_empty(self, store, series):
        """Test reading an unknown scenario yields an empty series."""
        await store.save_plan(series)
        plan = await store.get_plan("Missing")
        assert plan.series == []
        assert plan.scenario == "Missing"
        assert plan.scenarios == ["Average"]

    @pytest.mark.asyncio
    async def test_upload_meta_drives_default_scenario(self, store, series):
        """Test the newest upload's scenario is read when none is requested."""
        meta = UploadMeta(
            filename="plan.csv",
            scenario="Good",
            items=ItemSelection(exclude=["Housing"]),
        )
        await store.save_plans({"Average": series, "Good": series[:1]}, meta=meta)

        plan = await store.get_plan()
        assert plan.scenario == "Good"
        assert len(plan.series) == 1
        assert plan.meta.filename == "plan.csv"
        assert plan.meta.items.exclude == ["Housing"]

    @pytest.mark.asyncio
    async def test_newest_upload_wins(self, store, series):
        """Test a later import's metadata replaces the earlier one for display."""
        await store.save_plans({"Average": series}, meta=UploadMeta(filename="old.csv"))
        await store.save_plans({"Average": series}, meta=UploadMeta(filename="new.csv"))
        assert (await store.get_plan()).meta.filename == "new.csv"

    @pytest.mark.asyncio
    async def test_same_day_points_collapse(self, store):
        """Test two representations of one day store a single point."""
        await store.save_plan([
            PlanPoint(date="2030-01-01", value=1),
            PlanPoint(date="2030-01-01T12:00:00Z", value=2),
        ])
        assert _values((await store.get_plan()).series) == [("2030-01-01", 2.0)]

    @pytest.mark.asyncio
    async def test_invalid_scenario_name_changes_nothing(self, store, series):
        """Test a rejected save leaves the stored plan as it was."""
        await store.save_plan(series)
        with pytest.raises(InvalidDataError):
            await store.save_plans({"  ": series})
        assert len((await store.get_plan()).series) == 2

    @pytest.mark.asyncio
    async def test_invalid_point_rejected(self, store):
        """Test malformed plan points are rejected before writing."""
        with pytest.raises(InvalidDataError):
            await store.save_plans({"Average": [{"date": "soon", "value": 1}]})
        assert await store.get_scenarios() == []

    @pytest.mark.asyncio
    async def test_plan_survives_reopen(self, db_path, series):
        """Test data is on disk, not only in the connection."""
        first = await SQLitePlanStorage.open(db_path)
        await first.save_plan(series)
        await first.aclose()

        second = await SQLitePlanStorage.open(db_path)
        try:
            assert len((await second.get_plan()).series) == 2
        finally:
            await second.aclose()


class TestActualPersistence:
    """Tests for actual entries."""

    @pytest.mark.asyncio
    async def test_upsert_twice_keeps_one_record(self, store):
        """Test upserting the same day twice leaves one record with the last value."""
        await store.upsert_actual("2024-03-01", 100)
        await store.upsert_actual("2024-03-01T18:30:00Z", 250)
        actuals = (await store.get_actuals()).actuals
        assert len(actuals) == 1
        assert actuals[0].date == date(2024, 3, 1)
        assert actuals[0].value == 250

    @pytest.mark.asyncio
    async def test_actuals_sorted(self, store):
        """Test actuals are read in date order."""
        await store.upsert_actual("2024-05-01", 3)
        await store.upsert_actual(date(2024, 1, 1), 1)
        values = [a.value for a in (await store.get_actuals()).actuals]
        assert values == [1, 3]

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        """Test editing a day with no record raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await store.update_actual("2024-03-01", 10)
        assert (await store.get_actuals()).actuals == []

    @pytest.mark.asyncio
    async def test_update_existing(self, store):
        """Test editing overwrites the value."""
        await store.upsert_actual("2024-03-01", 10)
        await store.update_actual("2024-03-01T00:00:00", 20)
        assert (await store.get_actuals()).actuals[0].value == 20

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, store):
        """Test deleting twice, or deleting nothing, is not an error."""
        await store.upsert_actual("2024-03-01", 10)
        await store.delete_actual("2024-03-01")
        await store.delete_actual("2024-03-01")
        await store.delete_actual("1999-01-01")
        assert (await store.get_actuals()).actuals == []

    @pytest.mark.asyncio
    async def test_invalid_input_rejected(self, store):
        """Test bad dates and values raise InvalidDataError."""
        with pytest.raises(InvalidDataError):
            await store.upsert_actual("someday", 10)
        with pytest.raises(InvalidDataError):
            await store.upsert_actual("2024-03-01", float("nan"))
        with pytest.raises(InvalidDataError):
            await store.delete_actual("someday")


class TestSettingsPersistence:
    """Tests for guardrail settings."""

    @pytest.mark.asyncio
    async def test_save_rounds_and_persists(self, store):
        """Test settings are rounded half-up and read back."""
        saved = await store.save_settings(7.5, 20.4)
        assert (saved.lower_pct, saved.upper_pct) == (8, 20)
        settings = await store.get_settings()
        assert (settings.lower_pct, settings.upper_pct) == (8, 20)

    @pytest.mark.asyncio
    async def test_overwrite(self, store):
        """Test a second save replaces the first."""
        await store.save_settings(5, 5)
        await store.save_settings(12, 18)
        settings = await store.get_settings()
        assert (settings.lower_pct, settings.upper_pct) == (12, 18)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("lower, upper", [(-1, 15), (10, float("inf")), ("ten", 15)])
    async def test_invalid_rejected(self, store, lower, upper):
        """Test invalid widths raise InvalidDataError and nothing is stored."""
        with pytest.raises(InvalidDataError):
            await store.save_settings(lower, upper)
        settings = await store.get_settings()
        assert (settings.lower_pct, settings.upper_pct) == (10, 15)


def _legacy_store(path):
    """A schema-version-1 file as written by the single-scenario release."""
    conn = sqlite3.connect(path, isolation_level=None)
    migrate(conn, target=1)
    return conn


class TestMigrations:
    """Tests for schema upgrades."""

    @pytest.mark.asyncio
    async def test_legacy_plan_copied_into_default_scenario(self, db_path):
        """Test v1 plan points move to the default scenario, last write winning."""
        conn = _legacy_store(db_path)
        conn.executemany(
            "INSERT INTO plans (date, plan_total_savings, updated_at) VALUES (?, ?, ?)",
            [
                ("2030-01-01", 100.0, 1000),
                ("2030-01-01T00:00:00Z", 150.0, 2000),
                ("2031-01-01T08:00:00", 200.0, 500),
                ("2031-01-01", 250.0, 400),
                ("2032-01-01", 300.0, 100),
            ],
        )
        conn.execute(
            "INSERT INTO plan_uploads (filename, items, uploaded_at) VALUES (?, ?, ?)",
            ("legacy.csv", '{"include": [], "exclude": ["Housing"]}', 3000),
        )
        assert current_version(conn) == 1
        conn.close()

        storage = await SQLitePlanStorage.open(db_path)
        try:
            plan = await storage.get_plan()
        finally:
            await storage.aclose()

        # one point per distinct legacy day
        assert plan.scenarios == ["Average"]
        assert _values(plan.series) == [
            ("2030-01-01", 150.0),
            ("2031-01-01", 200.0),
            ("2032-01-01", 300.0),
        ]
        assert plan.meta.filename == "legacy.csv"
        assert plan.meta.scenario is None
        assert plan.meta.items.exclude == ["Housing"]

    @pytest.mark.asyncio
    async def test_actual_date_keys_normalized(self, db_path):
        """Test timestamped actual keys collapse to one day, newest winning."""
        conn = _legacy_store(db_path)
        conn.executemany(
            "INSERT INTO actuals (date, actual_total_savings, updated_at) VALUES (?, ?, ?)",
            [
                ("2024-03-01T10:00:00Z", 10.0, 100),
                ("2024-03-01", 20.0, 50),
                ("2024-04-01T00:00:00", 30.0, 10),
            ],
        )
        conn.close()

        storage = await SQLitePlanStorage.open(db_path)
        try:
            actuals = (await storage.get_actuals()).actuals
        finally:
            await storage.aclose()

        assert [(a.date.isoformat(), a.value) for a in actuals] == [
            ("2024-03-01", 10.0),
            ("2024-04-01", 30.0),
        ]

    @pytest.mark.asyncio
    async def test_plan_date_keys_normalized_per_scenario(self, db_path):
        """Test plan-point key collisions resolve newest-wins within each scenario."""
        conn = sqlite3.connect(db_path, isolation_level=None)
        migrate(conn, target=3)
        conn.executemany(
            "INSERT INTO plan_points (scenario, date, value, updated_at) VALUES (?, ?, ?, ?)",
            [
                ("A", "2030-01-01T05:00:00", 1.0, 10),
                ("A", "2030-01-01", 2.0, 5),
                ("B", "2030-01-01T05:00:00", 3.0, 1),
                ("B", "2030-01-01", 4.0, 5),
            ],
        )
        conn.close()

        storage = await SQLitePlanStorage.open(db_path)
        try:
            a = await storage.get_plan("A")
            b = await storage.get_plan("B")
        finally:
            await storage.aclose()

        assert _values(a.series) == [("2030-01-01", 1.0)]
        assert _values(b.series) == [("2030-01-01", 4.0)]

    @pytest.mark.asyncio
    async def test_legacy_table_kept_when_copy_incomplete(self, db_path):
        """Test the legacy plan table is not dropped while a day is missing from the copy."""
        conn = sqlite3.connect(db_path, isolation_level=None)
        migrate(conn, target=2)
        conn.execute(
            "INSERT INTO plans (date, plan_total_savings, updated_at) VALUES ('2030-01-01', 1.0, 1)"
        )
        conn.close()

        with pytest.raises(MigrationError) as exc_info:
            await SQLitePlanStorage.open(db_path)
        assert exc_info.value.from_version == 2

        conn = sqlite3.connect(db_path)
        try:
            assert current_version(conn) == 2
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        finally:
            conn.close()
        assert "plans" in tables

    def test_migrate_is_noop_at_latest(self, tmp_path):
        """Test running migrations twice applies nothing the second time."""
        conn = sqlite3.connect(str(tmp_path / "twice.db"), isolation_level=None)
        try:
            assert migrate(conn) == [1, 2, 3, 4]
            assert migrate(conn) == []
        finally:
            conn.close()

    def test_failed_step_rolls_back(self, tmp_path):
        """Test a failing step leaves the file at the previous version, untouched."""
        def broken(conn):
            conn.execute("CREATE TABLE half_done (id INTEGER)")
            raise RuntimeError("boom")

        steps = (MIGRATIONS[0], Migration(1, "broken step", broken))
        conn = sqlite3.connect(str(tmp_path / "broken.db"), isolation_level=None)
        try:
            with pytest.raises(MigrationError) as exc_info:
                migrate(conn, migrations=steps)
            assert exc_info.value.from_version == 1
            assert current_version(conn) == 1
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
            assert "half_done" not in tables
        finally:
            conn.close()

    @pytest.mark.asyncio
    async def test_open_fails_on_unmigratable_file(self, db_path):
        """Test opening surfaces MigrationError when a step cannot run."""
        conn = _legacy_store(db_path)
        conn.execute("INSERT INTO plans (date, plan_total_savings, updated_at) VALUES ('garbage', 1, 1)")
        conn.close()

        with pytest.raises(MigrationError):
            await SQLitePlanStorage.open(db_path)

        conn = sqlite3.connect(db_path)
        try:
            assert current_version(conn) == 1
        finally:
            conn.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
