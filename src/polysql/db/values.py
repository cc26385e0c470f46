"""Best-effort column value coercion.

Reading a column as a type other than its stored one never raises; these
helpers produce the closest value, or zero/empty when there is none.
"""

from __future__ import annotations

import re
from typing import Any

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_NUMERIC_PREFIX_RE = re.compile(r"\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def _numeric_prefix(text: str) -> str | None:
    match = _NUMERIC_PREFIX_RE.match(text)
    return match.group() if match else None


def to_int64(value: Any) -> int:
    """Coerce a stored value to a 64-bit integer, 0 when impossible."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value if INT64_MIN <= value <= INT64_MAX else 0
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return 0
        return max(INT64_MIN, min(INT64_MAX, int(value)))
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        prefix = _numeric_prefix(value)
        if prefix is None:
            return 0
        try:
            return to_int64(int(prefix))
        except ValueError:
            return to_int64(float(prefix))
    return 0


def to_int32(value: Any) -> int:
    """Coerce to a 32-bit integer; values that don't fit read as 0."""
    result = to_int64(value)
    return result if INT32_MIN <= result <= INT32_MAX else 0


def to_double(value: Any) -> float:
    """Coerce a stored value to a float, 0.0 when impossible."""
    if value is None:
        return 0.0
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        prefix = _numeric_prefix(value)
        return float(prefix) if prefix is not None else 0.0
    return 0.0


def to_text(value: Any) -> str:
    """Render a stored value as text; NULL reads as the empty string."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
