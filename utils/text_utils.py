"""
Text utilities for names and spreadsheet headers.

Names are compared case- and whitespace-insensitively. The same
normalize_name() must be used when writing name_norm and when looking it
up, or duplicates accumulate silently.
"""

import math
import re
from typing import Any, Optional

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a product/supplier/category name for identity comparison.

    - "  Milk   3% " → "milk 3%"
    - "חלב  תנובה" → "חלב תנובה"

    Args:
        name: Display name as typed or imported

    Returns:
        Trimmed, whitespace-collapsed, lower-cased string ("" for None)
    """
    if name is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(name).strip()).lower()


def clean_header(header: Any) -> str:
    """
    Clean a column header for alias matching.

    Lower-cases, strips punctuation (so מק"ט matches מקט) and collapses
    whitespace.
    """
    text = cell_to_text(header).lower()
    text = _PUNCTUATION_RE.sub(" ", text).replace("_", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def cell_to_text(cell: Any) -> str:
    """
    Render a spreadsheet cell as trimmed text.

    Integral floats lose their trailing ".0" so SKUs and barcodes read from
    numeric cells stay intact ("1001.0" → "1001").
    """
    if cell is None:
        return ""
    if isinstance(cell, bool):
        return str(cell)
    if isinstance(cell, float):
        if math.isnan(cell) or math.isinf(cell):
            return ""
        if cell.is_integer():
            return str(int(cell))
        return repr(cell)
    return str(cell).strip()


def clean_display_name(name: Optional[str], max_length: int = 255) -> Optional[str]:
    """
    Clean a name for storage (keeps case and accents).

    - Strips and collapses whitespace
    - Truncates to max length
    - Returns None for empty/whitespace-only strings
    """
    if not name:
        return None

    name = _WHITESPACE_RE.sub(" ", name.strip())

    if not name:
        return None

    if len(name) > max_length:
        name = name[:max_length]

    return name
