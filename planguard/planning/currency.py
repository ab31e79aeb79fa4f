"""
Currency Parsing

Turns spreadsheet-export and hand-typed money text ("$1,234,567",
"-$500", "−$500", "(500)") into floats.

Two entry points with different failure policies:
- parse_currency: lenient. Anything unreadable becomes 0.0 so one bad
  cell never aborts a bulk import.
- parse_currency_strict: returns None for unreadable input, for forms
  where a silent zero would be wrong.
"""

import math
import re
from decimal import Decimal
from typing import Any, Optional

# U+2212 and its UTF-8-read-as-cp1252 form seen in some exports
_MINUS_SIGNS = ("−", "âˆ’")
_WHITESPACE = re.compile(r"\s+")


def _clean(text: str) -> str:
    cleaned = text.replace("$", "").replace(",", "")
    for minus in _MINUS_SIGNS:
        cleaned = cleaned.replace(minus, "-")
    cleaned = _WHITESPACE.sub("", cleaned)
    # accounting negatives
    if len(cleaned) > 2 and cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]
    return cleaned


def parse_currency_strict(value: Any) -> Optional[float]:
    """
    Parse a money value, returning None when it cannot be read.

    Args:
        value: A number, a Decimal, or money-formatted text

    Returns:
        The finite float value, or None for empty, malformed or
        non-finite input
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = _clean(str(value))
    # float() accepts "1_000"; spreadsheet amounts never use that grouping
    if not text or "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_currency(value: Any) -> float:
    """
    Parse a money value leniently.

    Never raises: malformed, empty and non-finite input all yield 0.0.
    """
    number = parse_currency_strict(value)
    return 0.0 if number is None else number
