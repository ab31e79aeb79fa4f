"""
Plan Value Resolver

Evaluates a plan series at an arbitrary date by linear interpolation
between the surrounding plan points, weighted by elapsed days.

Outside the plan's range the value is clamped to the nearest end
point. Passing clamp=False returns None there instead, for charts that
should not draw a line beyond the known points.
"""

from typing import Any, Optional, Sequence

from planguard.models.plan import PlanPoint, normalize_date, sort_series


def plan_value_at(
    series: Sequence[PlanPoint],
    on: Any,
    clamp: bool = True,
) -> Optional[float]:
    """
    Plan value for a date.

    Args:
        series: Plan points, in any order
        on: Date, datetime or ISO date string
        clamp: Hold the first/last value outside the plan's range

    Returns:
        The interpolated value, or None for an empty series (or for a
        date outside the range when clamp is False)
    """
    if not series:
        return None

    target = normalize_date(on)
    points = sort_series(list(series))
    first, last = points[0], points[-1]

    if target <= first.date:
        return first.value if clamp or target == first.date else None
    if target >= last.date:
        return last.value if clamp or target == last.date else None

    for lo, hi in zip(points, points[1:]):
        if target == lo.date:
            return lo.value
        if target == hi.date:
            return hi.value
        if lo.date < target < hi.date:
            elapsed = (target - lo.date).days
            span = (hi.date - lo.date).days
            return lo.value + (hi.value - lo.value) * elapsed / span

    return None
