"""
Locale-tolerant number parsing for spreadsheet cells.

Supplier price lists mix "1,234.56", "1.234,56", "₪ 12,5" and "15%".
parse_number_smart() returns None for anything it cannot read; callers
treat None as "field absent", never as zero.
"""

import math
import re
from typing import Any, Optional

_STRIP_RE = re.compile(r"[^\d,.\-]")
_EXPONENT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)[eE][+-]?\d+$")


def parse_number_smart(raw: Any) -> Optional[float]:
    """
    Parse a number whose decimal separator may be "," or ".".

    Rules:
        - Whitespace, currency symbols, percent signs and letters are dropped
        - Both separators present: the rightmost one is the decimal point
        - A single "," followed by exactly 3 digits is a thousands separator
        - Repeated separators of one kind are thousands separators
        - Exponent notation ("5e-05", "1.5E+3") is read as-is
        - A "-" anywhere but the front makes the value unparseable

    Examples:
        "1.234,56" → 1234.56
        "1,234.56" → 1234.56
        "12,5%"    → 12.5
        "1,234"    → 1234.0
        "abc"      → None

    Args:
        raw: Cell value (str, int, float or None)

    Returns:
        Parsed float, or None if unparseable
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None

    stripped = str(raw).strip()
    if _EXPONENT_RE.match(stripped):
        value = float(stripped)
        return value if math.isfinite(value) else None

    text = _STRIP_RE.sub("", stripped)
    if not any(ch.isdigit() for ch in text):
        return None

    negative = text.startswith("-")
    if negative:
        text = text[1:]
    if "-" in text:
        return None

    last_comma = text.rfind(",")
    last_dot = text.rfind(".")

    if last_comma >= 0 and last_dot >= 0:
        if last_comma > last_dot:
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif last_comma >= 0:
        text = _resolve_single_separator(text, ",", comma=True)
    elif last_dot >= 0:
        text = _resolve_single_separator(text, ".", comma=False)

    try:
        value = float(text)
    except ValueError:
        return None

    if not math.isfinite(value):
        return None
    return -value if negative else value


def _resolve_single_separator(text: str, sep: str, comma: bool) -> str:
    """Decide whether the only separator kind in `text` is decimal or grouping."""
    if text.count(sep) > 1:
        return text.replace(sep, "")

    head, tail = text.split(sep)
    if comma:
        if len(tail) == 3 and head.strip("0"):
            return head + tail
        return f"{head or '0'}.{tail}"
    return f"{head or '0'}.{tail}"


def clamp_decimal_precision(value: Any, fallback: int = 2) -> int:
    """
    Coerce a decimal-precision setting into [0, 8].

    None, "" and non-numeric values return `fallback`; fractional values
    are floored.
    """
    if value is None or value == "" or isinstance(value, bool):
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(parsed):
        return fallback
    return min(8, max(0, math.floor(parsed)))
