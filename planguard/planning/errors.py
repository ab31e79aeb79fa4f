"""Exceptions raised by the planning engine."""


class PlanningError(Exception):
    """Base exception for plan computation errors."""
    pass


class NoPlanRowsError(PlanningError):
    """
    An import produced no usable plan points.

    Raised instead of returning an empty plan so the caller can tell the
    user what to change (category, item selection, scenario) rather than
    persisting nothing.
    """

    def __init__(self, message: str, scenarios: tuple[str, ...] = ()):
        self.scenarios = scenarios
        super().__init__(message)


class InvalidAmountError(PlanningError):
    """A single user-entered amount could not be read as a number."""

    def __init__(self, raw_value: object):
        self.raw_value = raw_value
        super().__init__(f"Not a valid amount: {raw_value!r}")
