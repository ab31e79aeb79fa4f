"""
SQLite Schema Migrations

The local store's schema version lives in PRAGMA user_version. Each
step moves the schema from one version to the next and runs in its own
transaction together with the version bump, so a failed step leaves the
store exactly at the previous version.

Versions:
    1: legacy layout, plan points keyed by date only
    2: plan points keyed by (scenario, date); legacy points copied into
       the default scenario
    3: legacy plan table dropped
    4: stored dates with a time-of-day component rewritten to day keys

Collisions while re-keying are resolved last-write-wins on updated_at.
"""

import sqlite3
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from planguard.models.plan import DEFAULT_SCENARIO, date_key
from planguard.services.storage.interface import MigrationError


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    """One schema step, applied when the store is at from_version."""
    from_version: int
    description: str
    apply: Callable[[sqlite3.Connection], None]


def _create_legacy_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE plans (
            date               TEXT    PRIMARY KEY,
            plan_total_savings REAL    NOT NULL,
            updated_at         INTEGER NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE actuals (
            date                 TEXT    PRIMARY KEY,
            actual_total_savings REAL    NOT NULL,
            updated_at           INTEGER NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE settings (
            name       TEXT    PRIMARY KEY,
            lower_pct  INTEGER NOT NULL,
            upper_pct  INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE plan_uploads (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            filename    TEXT    NOT NULL,
            items       TEXT,
            uploaded_at INTEGER NOT NULL
        )
        """
    )


def latest_by_key(rows) -> dict[str, tuple[float, int]]:
    """
    Collapse (date, value, updated_at) rows onto canonical day keys.

    The row with the highest updated_at wins; on a tie the later row wins.
    """
    survivors: dict[str, tuple[float, int]] = {}
    for day, value, updated_at in rows:
        key = date_key(day)
        previous = survivors.get(key)
        if previous is None or previous[1] <= updated_at:
            survivors[key] = (value, updated_at)
    return survivors


def _add_scenarios(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE plan_points (
            scenario   TEXT    NOT NULL,
            date       TEXT    NOT NULL,
            value      REAL    NOT NULL,
            updated_at INTEGER NOT NULL,
            PRIMARY KEY (scenario, date)
        )
        """
    )
    conn.execute("ALTER TABLE plan_uploads ADD COLUMN scenario TEXT")

    legacy = conn.execute(
        "SELECT date, plan_total_savings, updated_at FROM plans ORDER BY rowid"
    ).fetchall()
    survivors = latest_by_key(legacy)
    conn.executemany(
        "INSERT INTO plan_points (scenario, date, value, updated_at) VALUES (?, ?, ?, ?)",
        [
            (DEFAULT_SCENARIO, key, value, updated_at)
            for key, (value, updated_at) in survivors.items()
        ],
    )
    logger.info(
        "legacy_plan_points_copied",
        legacy_rows=len(legacy),
        copied=len(survivors),
        collisions=len(legacy) - len(survivors),
    )


def _drop_legacy_plans(conn: sqlite3.Connection) -> None:
    legacy_keys = {
        date_key(row[0]) for row in conn.execute("SELECT date FROM plans")
    }
    migrated_keys = {
        row[0]
        for row in conn.execute(
            "SELECT date FROM plan_points WHERE scenario = ?", (DEFAULT_SCENARIO,)
        )
    }
    missing = legacy_keys - migrated_keys
    if missing:
        raise ValueError(
            f"{len(missing)} legacy plan points were not migrated, e.g. {sorted(missing)[0]}"
        )
    conn.execute("DROP TABLE plans")


def _rekey(
    conn: sqlite3.Connection,
    table: str,
    value_column: str,
    scope_column: Optional[str] = None,
) -> int:
    scope_select = f"{scope_column}, " if scope_column else ""
    rows = conn.execute(
        f"SELECT {scope_select}date, {value_column}, updated_at FROM {table} ORDER BY rowid"
    ).fetchall()

    rewritten = 0
    for row in rows:
        scope = row[:-3]
        day, value, updated_at = row[-3:]
        key = date_key(day)
        if key == day:
            continue

        scope_filter = f" AND {scope_column} = ?" if scope_column else ""
        existing = conn.execute(
            f"SELECT updated_at FROM {table} WHERE date = ?{scope_filter}",
            (key, *scope),
        ).fetchone()
        if existing is None or existing[0] <= updated_at:
            columns = f"{scope_select}date, {value_column}, updated_at"
            placeholders = ", ".join("?" for _ in range(len(scope) + 3))
            conn.execute(
                f"INSERT OR REPLACE INTO {table} ({columns}) VALUES ({placeholders})",
                (*scope, key, value, updated_at),
            )
        conn.execute(
            f"DELETE FROM {table} WHERE date = ?{scope_filter}",
            (day, *scope),
        )
        rewritten += 1
    return rewritten


def _normalize_date_keys(conn: sqlite3.Connection) -> None:
    actuals = _rekey(conn, "actuals", "actual_total_savings")
    plan_points = _rekey(conn, "plan_points", "value", scope_column="scenario")
    logger.info("date_keys_normalized", actuals=actuals, plan_points=plan_points)


MIGRATIONS: tuple[Migration, ...] = (
    Migration(0, "create legacy schema", _create_legacy_schema),
    Migration(1, "key plan points by scenario", _add_scenarios),
    Migration(2, "drop legacy plan table", _drop_legacy_plans),
    Migration(3, "normalize date keys", _normalize_date_keys),
)

LATEST_VERSION = len(MIGRATIONS)


def current_version(conn: sqlite3.Connection) -> int:
    """Schema version recorded in the database file."""
    return conn.execute("PRAGMA user_version").fetchone()[0]


def migrate(
    conn: sqlite3.Connection,
    migrations: tuple[Migration, ...] = MIGRATIONS,
    target: Optional[int] = None,
) -> list[int]:
    """
    Bring the schema up to target (latest by default).

    The connection must be in autocommit mode (isolation_level=None);
    each step opens its own transaction.

    Returns:
        The versions reached, in order

    Raises:
        MigrationError: If a step fails; that step is rolled back and
            the store stays at the version before it
    """
    target = len(migrations) if target is None else target
    version = current_version(conn)
    applied = []

    for step in migrations:
        if step.from_version < version:
            continue
        if step.from_version >= target:
            break
        if step.from_version != version:
            raise MigrationError(
                version, f"No migration from schema version {version}"
            )

        try:
            conn.execute("BEGIN IMMEDIATE")
            step.apply(conn)
            conn.execute(f"PRAGMA user_version = {step.from_version + 1}")
            conn.execute("COMMIT")
        except Exception as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error(
                "schema_migration_failed",
                from_version=version,
                step=step.description,
                error=str(e),
            )
            raise MigrationError(
                version, f"Migration '{step.description}' failed: {e}"
            ) from e

        version = step.from_version + 1
        applied.append(version)
        logger.info("schema_migrated", version=version, step=step.description)

    return applied

