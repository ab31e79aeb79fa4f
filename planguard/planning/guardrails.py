"""
Guardrail Classification

Compares an actual value to the interpolated plan value and a
percentage band around it. The band is inclusive: an actual sitting
exactly on a bound is within guardrails.

Above the band is a surplus, which is good news in a savings plan,
so it gets a "success" tone rather than an error tone.
"""

from enum import Enum

from pydantic import BaseModel


class GuardrailStatus(str, Enum):
    """Where an actual falls relative to the band."""
    BELOW = "Below guardrail"
    WITHIN = "Within guardrails"
    ABOVE = "Above guardrail"

    @property
    def tone(self) -> str:
        """Presentation hint for the status."""
        return {
            GuardrailStatus.BELOW: "danger",
            GuardrailStatus.WITHIN: "neutral",
            GuardrailStatus.ABOVE: "success",
        }[self]


class GuardrailResult(BaseModel):
    """Classification of one actual against the plan."""

    status: GuardrailStatus
    lower_bound: float
    upper_bound: float

    @property
    def tone(self) -> str:
        return self.status.tone


def guardrail_bounds(
    plan_value: float,
    lower_pct: float,
    upper_pct: float,
) -> tuple[float, float]:
    """Lower and upper band edges around a plan value."""
    # multiply before dividing so whole percentages give exact bounds
    lower = plan_value * (100 - lower_pct) / 100
    upper = plan_value * (100 + upper_pct) / 100
    return lower, upper


def classify(
    plan_value: float,
    actual_value: float,
    lower_pct: float,
    upper_pct: float,
) -> GuardrailResult:
    """
    Classify an actual against the guardrail band.

    lower_bound = plan * (1 - lower_pct/100)
    upper_bound = plan * (1 + upper_pct/100)
    """
    lower, upper = guardrail_bounds(plan_value, lower_pct, upper_pct)
    if actual_value < lower:
        status = GuardrailStatus.BELOW
    elif actual_value > upper:
        status = GuardrailStatus.ABOVE
    else:
        status = GuardrailStatus.WITHIN
    return GuardrailResult(status=status, lower_bound=lower, upper_bound=upper)
