from datetime import date, datetime

import pytest

from fuel_reimbursement.domain.dates import UNIDENTIFIED_PERIOD, parse_flexible_date, period_label


@pytest.mark.parametrize(
    "raw",
    [
        "2024-01-05",
        "2024-01-05T08:30:00",
        "2024-01-05 08:30:00",
        "2024/01/05",
        "2024.01.05",
        "05/01/2024",
        "5/1/2024",
        "05-01-2024",
        "05.01.2024",
        "05/01/24",
        "5.1.24",
    ],
)
def test_accepted_formats_resolve_to_same_day(raw):
    assert parse_flexible_date(raw) == date(2024, 1, 5)


def test_date_and_datetime_objects():
    assert parse_flexible_date(date(2024, 3, 1)) == date(2024, 3, 1)
    assert parse_flexible_date(datetime(2024, 3, 1, 23, 59)) == date(2024, 3, 1)


@pytest.mark.parametrize("raw", [None, "", "   ", "yesterday", "31/02/2024", "2024-13-01", "1/2"])
def test_unparseable_values_return_none(raw):
    assert parse_flexible_date(raw) is None


def test_period_label_spans_earliest_and_latest():
    keys = [date(2024, 1, 10), None, date(2024, 1, 2), date(2024, 1, 31)]

    assert period_label(keys) == "02/01/2024 to 31/01/2024"


def test_period_label_without_dates():
    assert period_label([None, None]) == UNIDENTIFIED_PERIOD
    assert period_label([]) == UNIDENTIFIED_PERIOD
