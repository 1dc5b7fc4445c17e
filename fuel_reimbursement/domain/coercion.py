"""Strict value coercion for identifiers and distances coming from outside."""
from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation


def parse_external_id(value: object) -> int | None:
    """Return the integer identifier in ``value`` or ``None`` when absent/invalid."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or not value.is_integer():
            return None
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith(".0"):
        text = text[:-2]
    if not text.lstrip("-").isdigit():
        return None
    return int(text)


def parse_distance(value: object) -> Decimal | None:
    """Parse a distance written with a comma or dot decimal separator.

    When both separators appear the last one is the decimal mark
    (``1.234,5`` and ``1,234.5`` are both 1234.5).
    """
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    s = str(value).strip().replace(" ", "")
    if not s:
        return None
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    else:
        s = s.replace(",", ".")
    try:
        result = Decimal(s)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result


def parse_sector_code(value: object) -> int:
    parsed = parse_external_id(value)
    return parsed if parsed is not None else 0
