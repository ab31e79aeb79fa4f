"""Plan computation package."""

from planguard.planning.builder import (
    DEFAULT_EXCLUDED_ITEMS,
    BuildOptions,
    ImportPreview,
    build_plan_series,
    build_plan_set,
    describe_rows,
)
from planguard.planning.currency import parse_currency, parse_currency_strict
from planguard.planning.errors import (
    InvalidAmountError,
    NoPlanRowsError,
    PlanningError,
)
from planguard.planning.guardrails import (
    GuardrailResult,
    GuardrailStatus,
    classify,
    guardrail_bounds,
)
from planguard.planning.resolver import plan_value_at

__all__ = [
    # Builder
    "DEFAULT_EXCLUDED_ITEMS",
    "BuildOptions",
    "ImportPreview",
    "build_plan_series",
    "build_plan_set",
    "describe_rows",
    # Currency
    "parse_currency",
    "parse_currency_strict",
    # Errors
    "InvalidAmountError",
    "NoPlanRowsError",
    "PlanningError",
    # Guardrails
    "GuardrailResult",
    "GuardrailStatus",
    "classify",
    "guardrail_bounds",
    # Resolver
    "plan_value_at",
]
