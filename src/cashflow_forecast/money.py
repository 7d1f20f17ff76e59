"""Money helpers: cent rounding, clamping, loose parsing and formatting."""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENTS = Decimal("0.01")
PERMILLE = Decimal("0.001")

_UNICODE_DASHES = re.compile(r"[−–—]")
_NON_NUMERIC = re.compile(r"[^0-9.,]")


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce a loose numeric value to a finite float, else ``default``."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def is_finite_number(value: Any) -> bool:
    """Return True if value converts to a finite float."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def _quantize(value: float, exponent: Decimal) -> float:
    try:
        rounded = Decimal(repr(value)).quantize(exponent, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return 0.0
    return float(rounded)


def round2(value: Any) -> float:
    """Round to cents; non-finite input rounds to 0."""
    if not is_finite_number(value):
        return 0.0
    result = _quantize(float(value), CENTS)
    return result + 0.0  # normalizes -0.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_percent(
    value: Any,
    min_value: float = -1.0,
    max_value: float = 2.0,
    fallback: float = 0.0,
) -> float:
    """Clamp a fractional percentage (0.1 == 10%) kept to three decimals."""
    if not is_finite_number(value):
        return fallback
    return clamp(_quantize(float(value), PERMILLE), min_value, max_value)


def clamp_currency(value: Any, fallback: float = 0.0) -> float:
    """Round a currency value to cents, or ``fallback`` if not numeric."""
    if not is_finite_number(value):
        return fallback
    return round2(value)


def parse_money(value: Any) -> float:
    """Parse loose currency text such as ``"(1,234.50)"`` or ``"1.234,50-"``.

    Returns ``nan`` when nothing numeric can be recovered.
    """
    if value is None or value == "" or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else math.nan

    text = str(value).strip()
    if not text:
        return math.nan

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    text = _UNICODE_DASHES.sub("-", text)
    if text.endswith("-"):
        negative = True
        text = text[:-1]
    if text.startswith("-"):
        negative = True
        text = text[1:]

    text = _NON_NUMERIC.sub("", text)
    if not text:
        return math.nan

    has_comma = "," in text
    has_dot = "." in text
    if has_comma and has_dot:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif has_comma:
        parts = text.split(",")
        if len(parts[-1]) == 2:
            text = "".join(parts[:-1]) + "." + parts[-1]
        else:
            text = "".join(parts)

    try:
        number = float(text)
    except ValueError:
        return math.nan
    if not math.isfinite(number):
        return math.nan
    return -number if negative else number


def format_money(value: Any) -> str:
    """Format as ``$1,234.00`` / ``-$1,234.00``."""
    number = to_float(value)
    sign = "-" if number < 0 else ""
    return f"{sign}${abs(number):,.2f}"


def compute_effective_amount(base: Any, pct: Any, delta: Any) -> float:
    """Apply a fractional percentage then a flat delta, rounded to cents."""
    if not all(is_finite_number(v) or v in (None, "") for v in (base, pct, delta)):
        return 0.0
    b = to_float(base)
    p = to_float(pct)
    d = to_float(delta)
    return round2(b * (1 + p) + d)


def resolve_percent_from_effective(base: Any, effective: Any, delta: Any = 0) -> float:
    """Percentage that turns ``base`` into ``effective`` alongside ``delta``."""
    b = to_float(base)
    if b == 0 or not is_finite_number(effective):
        return 0.0
    if delta not in (None, "") and not is_finite_number(delta):
        return 0.0
    return clamp_percent((to_float(effective) - to_float(delta)) / b - 1)
