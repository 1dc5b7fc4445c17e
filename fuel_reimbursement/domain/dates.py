"""Calendar-date normalization used wherever dates are compared.

Accepted inputs for :func:`parse_flexible_date`:

* ``date`` / ``datetime`` objects (time of day dropped)
* ISO ``YYYY-MM-DD`` and ISO date-times (``YYYY-MM-DDTHH:MM:SS``,
  ``YYYY-MM-DD HH:MM:SS``), with or without offset
* year-first with ``/`` or ``.`` separators: ``YYYY/MM/DD``, ``YYYY.MM.DD``
* day-first with ``/``, ``-`` or ``.`` separators: ``D/M/YYYY``, ``D/M/YY``,
  ``DD-MM-YYYY``, ``DD.MM.YY``; two-digit years belong to 2000-2099
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterable

UNIDENTIFIED_PERIOD = "Unidentified period"

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_YEAR_FIRST = re.compile(r"^(\d{4})[/.](\d{1,2})[/.](\d{1,2})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{2}|\d{4})$")


def parse_flexible_date(value: object) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None

    match = _ISO_DATE.match(text) or _YEAR_FIRST.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    match = _DAY_FIRST.match(text)
    if match:
        day, month, year_text = match.groups()
        year = int(year_text)
        if len(year_text) == 2:
            year += 2000
        return _safe_date(year, int(month), int(day))
    return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_display_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def period_label(date_keys: Iterable[date | None]) -> str:
    """Human label covering the earliest and latest of ``date_keys``."""
    keys = sorted(key for key in date_keys if key is not None)
    if not keys:
        return UNIDENTIFIED_PERIOD
    return f"{format_display_date(keys[0])} to {format_display_date(keys[-1])}"
