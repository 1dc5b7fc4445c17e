from datetime import date

import pytest

from fuel_reimbursement.domain.absences import (
    AbsenceIndex,
    AbsenceTieBreak,
    categorize_reason,
    find_blocking_absence,
)
from fuel_reimbursement.domain.models import AbsencePeriod


def make_absence(absence_id: int, start: date, end: date, reason: str, collaborator_id: int = 1) -> AbsencePeriod:
    return AbsencePeriod(
        absence_id=absence_id,
        collaborator_id=collaborator_id,
        start=start,
        end=end,
        reason=reason,
    )


OVERLAPPING = [
    make_absence(1, date(2024, 1, 5), date(2024, 1, 20), "Vacation"),
    make_absence(2, date(2024, 1, 1), date(2024, 1, 10), "Medical leave"),
    make_absence(3, date(2024, 1, 8), date(2024, 1, 9), "Absence"),
]


def test_absence_bounds_are_inclusive():
    absence = make_absence(1, date(2024, 1, 5), date(2024, 1, 7), "Vacation")

    assert absence.contains(date(2024, 1, 5))
    assert absence.contains(date(2024, 1, 7))
    assert not absence.contains(date(2024, 1, 8))


def test_absence_start_after_end_is_rejected():
    with pytest.raises(ValueError):
        make_absence(1, date(2024, 1, 7), date(2024, 1, 5), "Vacation")


@pytest.mark.parametrize(
    "tie_break, expected_id",
    [
        (AbsenceTieBreak.FIRST_FOUND, 1),
        (AbsenceTieBreak.EARLIEST_START, 2),
        (AbsenceTieBreak.LATEST_START, 3),
    ],
)
def test_tie_break_policy_picks_reason(tie_break, expected_id):
    chosen = find_blocking_absence(OVERLAPPING, date(2024, 1, 8), tie_break)

    assert chosen is not None
    assert chosen.absence_id == expected_id


def test_index_scopes_by_collaborator_and_ignores_missing_dates():
    index = AbsenceIndex([make_absence(1, date(2024, 1, 1), date(2024, 1, 31), "Vacation", collaborator_id=7)])

    assert index.find_blocking(7, date(2024, 1, 15)).reason == "Vacation"
    assert index.find_blocking(8, date(2024, 1, 15)) is None
    assert index.find_blocking(7, None) is None
    assert index.find_blocking(7, date(2024, 2, 1)) is None


@pytest.mark.parametrize(
    "reason, category",
    [
        ("Férias", "vacation"),
        ("Atestado médico", "medical"),
        ("Falta", "absence"),
        ("Treinamento", "other"),
        ("", "other"),
    ],
)
def test_categorize_reason(reason, category):
    assert categorize_reason(reason) == category
