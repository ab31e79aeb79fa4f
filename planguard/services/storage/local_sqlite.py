"""
SQLite Storage Implementation

DESIGN DECISION: The default backend is an embedded SQLite file on the
user's machine because:
1. No server or account is needed to track a personal plan
2. SQLite transactions give all-or-nothing scenario replaces
3. The schema is versioned, so older files upgrade in place

TRADEOFFS:
- One writer at a time (fine: the caller serializes mutations)
- Calls run synchronously inside the async methods; each one is a
  short local transaction

Opening a store runs every pending migration (see migrations.py).
After that, every stored date is a canonical YYYY-MM-DD key.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from planguard.models.plan import (
    DEFAULT_SCENARIO,
    ActualEntry,
    ActualsSnapshot,
    GuardrailSettings,
    ItemSelection,
    PlanPoint,
    PlanSnapshot,
    UploadMeta,
    date_key,
    pick_scenario,
)
from planguard.services.storage.interface import (
    DateLike,
    InvalidDataError,
    NotFoundError,
    PlanStorageInterface,
    StorageError,
    prepare_plan_set,
)
from planguard.services.storage.migrations import migrate


logger = structlog.get_logger(__name__)

SETTINGS_KEY = "default"


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _from_ms(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@retry(
    retry=retry_if_exception_type(sqlite3.OperationalError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    reraise=True,
)
def _connect(path: str) -> sqlite3.Connection:
    """Open the database file in autocommit mode; retried while it is locked."""
    conn = sqlite3.connect(path, isolation_level=None, timeout=5.0)
    try:
        if path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.close()
        raise
    return conn


class SQLitePlanStorage(PlanStorageInterface):
    """
    SQLite implementation of plan storage.

    Use SQLitePlanStorage.open() rather than the constructor so the
    schema is migrated before the first read.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        default_scenario: str = DEFAULT_SCENARIO,
        default_settings: Optional[GuardrailSettings] = None,
    ):
        self._conn = conn
        self._default_scenario = default_scenario
        self._default_settings = default_settings or GuardrailSettings()

    @classmethod
    async def open(
        cls,
        path: str,
        default_scenario: str = DEFAULT_SCENARIO,
        default_settings: Optional[GuardrailSettings] = None,
    ) -> "SQLitePlanStorage":
        """
        Open (creating if needed) and migrate a store.

        Raises:
            MigrationError: If a schema step fails; the file is left at
                the last version that completed
            StorageError: If the file cannot be opened
        """
        try:
            conn = _connect(path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open local store {path}: {e}") from e

        try:
            applied = migrate(conn)
        except Exception:
            conn.close()
            raise

        logger.info("local_store_opened", path=path, migrations_applied=applied)
        return cls(conn, default_scenario, default_settings)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commits on success, rolls back on error."""
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
            self._conn.execute("COMMIT")
        except Exception:
            self._conn.execute("ROLLBACK")
            raise

    # -------------------------------------------------------------------------
    # Plan
    # -------------------------------------------------------------------------

    def _scenarios(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT DISTINCT scenario FROM plan_points ORDER BY scenario"
        ).fetchall()
        return [row[0] for row in rows]

    def _last_upload(self) -> Optional[UploadMeta]:
        row = self._conn.execute(
            """
            SELECT filename, scenario, items, uploaded_at
            FROM plan_uploads
            ORDER BY uploaded_at DESC, id DESC
            LIMIT 1
            """
        ).fetchone()
        if row is None:
            return None
        filename, scenario, items_json, uploaded_at = row
        items = ItemSelection(**(json.loads(items_json) or {})) if items_json else ItemSelection()
        return UploadMeta(
            filename=filename,
            scenario=scenario,
            items=items,
            uploaded_at=_from_ms(uploaded_at),
        )

    async def get_plan(self, scenario: Optional[str] = None) -> PlanSnapshot:
        """Read one scenario's plan series."""
        try:
            scenarios = self._scenarios()
            meta = self._last_upload()
            chosen = pick_scenario(scenario, scenarios, meta, self._default_scenario)

            rows = []
            if chosen is not None:
                rows = self._conn.execute(
                    """
                    SELECT date, value, updated_at FROM plan_points
                    WHERE scenario = ?
                    ORDER BY date
                    """,
                    (chosen,),
                ).fetchall()

            return PlanSnapshot(
                series=[PlanPoint(date=day, value=value) for day, value, _ in rows],
                last_updated=_from_ms(max(row[2] for row in rows)) if rows else None,
                meta=meta,
                scenarios=scenarios,
                scenario=chosen,
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read plan: {e}") from e

    async def save_plan(
        self,
        series: list[PlanPoint],
        meta: Optional[UploadMeta] = None,
        scenario: Optional[str] = None,
    ) -> None:
        """Replace one scenario's plan series."""
        await self.save_plans(
            {scenario or self._default_scenario: series},
            replace=False,
            meta=meta,
        )

    async def save_plans(
        self,
        series_by_scenario: dict[str, list[PlanPoint]],
        replace: bool = True,
        meta: Optional[UploadMeta] = None,
    ) -> None:
        """Save several scenarios in one transaction."""
        prepared = prepare_plan_set(series_by_scenario)
        now = _now_ms()

        try:
            with self._transaction() as conn:
                if replace:
                    conn.execute("DELETE FROM plan_points")
                else:
                    conn.executemany(
                        "DELETE FROM plan_points WHERE scenario = ?",
                        [(name,) for name in prepared],
                    )
                conn.executemany(
                    """
                    INSERT INTO plan_points (scenario, date, value, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    [
                        (name, day, value, now)
                        for name, points in prepared.items()
                        for day, value in points.items()
                    ],
                )
                if meta is not None:
                    conn.execute(
                        """
                        INSERT INTO plan_uploads (filename, scenario, items, uploaded_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            meta.filename,
                            meta.scenario,
                            meta.items.model_dump_json(),
                            now,
                        ),
                    )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save plan: {e}") from e

        logger.info(
            "plan_saved",
            scenarios=list(prepared),
            points=sum(len(points) for points in prepared.values()),
            replace=replace,
        )

    async def get_scenarios(self) -> list[str]:
        """List stored scenario names."""
        try:
            return self._scenarios()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list scenarios: {e}") from e

    # -------------------------------------------------------------------------
    # Actuals
    # -------------------------------------------------------------------------

    @staticmethod
    def _entry(on: DateLike, value: float) -> ActualEntry:
        try:
            return ActualEntry(date=on, value=value)
        except ValidationError as e:
            raise InvalidDataError(f"Invalid actual for {on!r}: {e}") from e

    async def get_actuals(self) -> ActualsSnapshot:
        """Read every actual entry."""
        try:
            rows = self._conn.execute(
                "SELECT date, actual_total_savings, updated_at FROM actuals ORDER BY date"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read actuals: {e}") from e

        return ActualsSnapshot(
            actuals=[ActualEntry(date=day, value=value) for day, value, _ in rows],
            last_updated=_from_ms(max(row[2] for row in rows)) if rows else None,
        )

    async def upsert_actual(self, on: DateLike, value: float) -> None:
        """Create or overwrite the actual for a date."""
        entry = self._entry(on, value)
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO actuals (date, actual_total_savings, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (entry.date.isoformat(), entry.value, _now_ms()),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save actual: {e}") from e

    async def update_actual(self, on: DateLike, value: float) -> None:
        """Overwrite an existing actual."""
        entry = self._entry(on, value)
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE actuals SET actual_total_savings = ?, updated_at = ?
                    WHERE date = ?
                    """,
                    (entry.value, _now_ms(), entry.date.isoformat()),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"No actual recorded for {entry.date.isoformat()}")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to update actual: {e}") from e

    async def delete_actual(self, on: DateLike) -> None:
        """Delete the actual for a date, if any."""
        try:
            key = date_key(on)
        except ValueError as e:
            raise InvalidDataError(str(e)) from e
        try:
            with self._transaction() as conn:
                conn.execute("DELETE FROM actuals WHERE date = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete actual: {e}") from e

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_settings(self) -> GuardrailSettings:
        """Read guardrail settings, falling back to the defaults."""
        try:
            row = self._conn.execute(
                "SELECT lower_pct, upper_pct FROM settings WHERE name = ?",
                (SETTINGS_KEY,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read settings: {e}") from e

        if row is None:
            return self._default_settings
        return GuardrailSettings(lower_pct=row[0], upper_pct=row[1])

    async def save_settings(self, lower_pct: float, upper_pct: float) -> GuardrailSettings:
        """Overwrite guardrail settings."""
        try:
            settings = GuardrailSettings.from_percentages(lower_pct, upper_pct)
        except ValueError as e:
            raise InvalidDataError(str(e)) from e

        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO settings (name, lower_pct, upper_pct, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (SETTINGS_KEY, settings.lower_pct, settings.upper_pct, _now_ms()),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save settings: {e}") from e
        return settings

    async def aclose(self) -> None:
        """Close the database connection."""
        self._conn.close()
