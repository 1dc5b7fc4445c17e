"""Absence-blocking rule: a day inside a registered absence is not paid."""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from enum import Enum
from typing import Iterable, Mapping, Sequence

from .models import AbsencePeriod

logger = logging.getLogger(__name__)


class AbsenceTieBreak(str, Enum):
    """Which period surfaces its reason when several contain the same day."""

    FIRST_FOUND = "first_found"
    EARLIEST_START = "earliest_start"
    LATEST_START = "latest_start"


class AbsenceIndex:
    """Absence periods grouped by internal collaborator id."""

    def __init__(
        self,
        absences: Iterable[AbsencePeriod],
        tie_break: AbsenceTieBreak = AbsenceTieBreak.FIRST_FOUND,
    ) -> None:
        grouped: dict[int, list[AbsencePeriod]] = defaultdict(list)
        for absence in absences:
            grouped[absence.collaborator_id].append(absence)
        self._by_collaborator: Mapping[int, Sequence[AbsencePeriod]] = dict(grouped)
        self._tie_break = tie_break

    def periods_for(self, collaborator_id: int) -> Sequence[AbsencePeriod]:
        return self._by_collaborator.get(collaborator_id, ())

    def find_blocking(self, collaborator_id: int, day: date | None) -> AbsencePeriod | None:
        if day is None:
            return None
        return find_blocking_absence(self.periods_for(collaborator_id), day, self._tie_break)


def find_blocking_absence(
    periods: Sequence[AbsencePeriod],
    day: date,
    tie_break: AbsenceTieBreak = AbsenceTieBreak.FIRST_FOUND,
) -> AbsencePeriod | None:
    matches = [period for period in periods if period.contains(day)]
    if not matches:
        return None
    if tie_break is AbsenceTieBreak.EARLIEST_START:
        chosen = min(matches, key=lambda period: period.start)
    elif tie_break is AbsenceTieBreak.LATEST_START:
        chosen = max(matches, key=lambda period: period.start)
    else:
        chosen = matches[0]
    logger.debug(
        "Day %s blocked for collaborator %s by absence %s (%s)",
        day,
        chosen.collaborator_id,
        chosen.absence_id,
        chosen.reason,
    )
    return chosen


_CATEGORY_KEYWORDS = (
    ("vacation", ("féria", "feria", "vacation", "holiday")),
    ("medical", ("atestado", "medical", "sick")),
    ("absence", ("falta", "absence")),
)


def categorize_reason(reason: str) -> str:
    lowered = (reason or "").lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "other"
