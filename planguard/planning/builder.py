"""
Plan Series Builder

Turns imported tabular rows into one plan series per scenario.

Expected row shape (one dict per spreadsheet row):
- "Category": only rows whose category is "Accounts" contribute
- "Item": the line item name, used for include/exclude selection
- "Assumptions" (or "Scenario"): the scenario the row belongs to
- one column per projection year; any column whose name contains a
  4-digit year counts, so "2031", "[2031] age=45" and "FY2031 total"
  all map to 2031

Field names are matched case-insensitively. Each year's plan value is
the sum of that column over the selected rows, pinned to January 1.
"""

import re
from datetime import date
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from planguard.models.plan import DEFAULT_SCENARIO, PlanPoint
from planguard.planning.currency import parse_currency
from planguard.planning.errors import NoPlanRowsError


CATEGORY_FIELD = "Category"
ITEM_FIELD = "Item"
SCENARIO_FIELDS = ("Assumptions", "Scenario")
ACCOUNTS_CATEGORY = "accounts"

# UI default for a first import; the builder itself applies no defaults
DEFAULT_EXCLUDED_ITEMS = ("Housing",)

_YEAR_TOKEN = re.compile(r"(?<!\d)(\d{4})(?!\d)")

Row = Mapping[str, Any]


class BuildOptions(BaseModel):
    """Options controlling which rows feed the plan."""
    model_config = ConfigDict(str_strip_whitespace=True)

    selected_scenario: Optional[str] = Field(
        default=None,
        description="If set, only this scenario's series is returned"
    )
    include_items: list[str] = Field(
        default_factory=list,
        description="Items to aggregate; empty means every item"
    )
    exclude_items: list[str] = Field(
        default_factory=list,
        description="Items to leave out; wins over include_items"
    )
    default_scenario: str = Field(
        default=DEFAULT_SCENARIO,
        min_length=1,
        description="Scenario for rows without an assumption"
    )


class ImportPreview(BaseModel):
    """What an import offers for selection before the plan is built."""

    items: list[str] = Field(default_factory=list)
    scenarios: list[str] = Field(default_factory=list)


def get_field(row: Row, name: str) -> Any:
    """Case-insensitive field lookup; None when the row lacks the field."""
    wanted = name.lower()
    for key, value in row.items():
        if str(key).lower() == wanted:
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _scenario_of(row: Row, default: str) -> str:
    for name in SCENARIO_FIELDS:
        scenario = _text(get_field(row, name))
        if scenario:
            return scenario
    return default


def _is_accounts_row(row: Row) -> bool:
    return _text(get_field(row, CATEGORY_FIELD)).lower() == ACCOUNTS_CATEGORY


def year_columns(field_names: Iterable[str]) -> list[tuple[int, str]]:
    """
    Find the projection-year columns among field names.

    Returns (year, field_name) pairs sorted by year. When two columns
    name the same year, the first one seen is used.
    """
    columns: dict[int, str] = {}
    for name in field_names:
        match = _YEAR_TOKEN.search(str(name))
        if match:
            columns.setdefault(int(match.group(1)), name)
    return sorted(columns.items())


def _normalized_set(items: Iterable[str]) -> set[str]:
    return {item.strip().lower() for item in items if item and item.strip()}


def select_rows(
    rows: Iterable[Row],
    options: BuildOptions,
) -> dict[str, list[Row]]:
    """
    Filter rows to selected "Accounts" items and group them by scenario.

    Rows missing the category or item field never match. Exclusion
    takes precedence over inclusion.
    """
    include = _normalized_set(options.include_items)
    exclude = _normalized_set(options.exclude_items)

    grouped: dict[str, list[Row]] = {}
    for row in rows:
        if not _is_accounts_row(row):
            continue
        item = _text(get_field(row, ITEM_FIELD)).lower()
        if not item or item in exclude:
            continue
        if include and item not in include:
            continue
        scenario = _scenario_of(row, options.default_scenario)
        grouped.setdefault(scenario, []).append(row)
    return grouped


def _series_for(rows: list[Row]) -> list[PlanPoint]:
    field_names: dict[str, None] = {}
    for row in rows:
        for key in row.keys():
            field_names.setdefault(key, None)

    series = []
    for year, column in year_columns(field_names):
        total = sum(parse_currency(row.get(column)) for row in rows)
        series.append(PlanPoint(date=date(year, 1, 1), value=total))
    return series


def build_plan_set(
    rows: Iterable[Row],
    options: Optional[BuildOptions] = None,
) -> dict[str, list[PlanPoint]]:
    """
    Build a plan series for every scenario present in the rows.

    Scenarios whose rows carry no year columns are dropped.

    Raises:
        NoPlanRowsError: If no scenario produced a single plan point
    """
    options = options or BuildOptions()
    grouped = select_rows(rows, options)

    plan_set = {}
    for scenario, scenario_rows in grouped.items():
        series = _series_for(scenario_rows)
        if series:
            plan_set[scenario] = series

    if not plan_set:
        if grouped:
            reason = "the selected rows have no year columns"
        else:
            reason = "no 'Accounts' rows remain after the item selection"
        raise NoPlanRowsError(
            f"The import produced no plan points: {reason}. "
            "Check the Category column and the included/excluded items."
        )
    return plan_set


def build_plan_series(
    rows: Iterable[Row],
    options: Optional[BuildOptions] = None,
) -> Union[list[PlanPoint], dict[str, list[PlanPoint]]]:
    """
    Build plan series from imported rows.

    Returns the selected scenario's series when options.selected_scenario
    is set, otherwise a mapping of every scenario name to its series.

    Raises:
        NoPlanRowsError: If nothing usable remains, or the selected
            scenario produced no series
    """
    options = options or BuildOptions()
    plan_set = build_plan_set(rows, options)

    if options.selected_scenario is None:
        return plan_set

    series = plan_set.get(options.selected_scenario)
    if not series:
        available = tuple(plan_set)
        raise NoPlanRowsError(
            f"Scenario {options.selected_scenario!r} produced no plan points. "
            f"Available scenarios: {', '.join(available)}",
            scenarios=available,
        )
    return series


def describe_rows(rows: Iterable[Row]) -> ImportPreview:
    """
    List the selectable items and scenarios of an import.

    Items come from "Accounts" rows only and are sorted; scenarios keep
    first-seen order and skip blanks.
    """
    items: set[str] = set()
    scenarios: dict[str, None] = {}
    for row in rows:
        if _is_accounts_row(row):
            item = _text(get_field(row, ITEM_FIELD))
            if item:
                items.add(item)
        for name in SCENARIO_FIELDS:
            scenario = _text(get_field(row, name))
            if scenario:
                scenarios.setdefault(scenario, None)
                break
    return ImportPreview(items=sorted(items), scenarios=list(scenarios))
