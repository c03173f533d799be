import calendar
from datetime import date

import pytest

from cashflow_dashboard.months import (
    is_month_key,
    month_contains,
    month_key,
    month_range,
    parse_month_key,
    previous_months,
    shift_month,
    week_of_month,
    weeks_in_month,
)


@pytest.mark.parametrize("key", ["2024-01", "1999-12", "2024-10"])
def test_valid_month_keys(key):
    assert is_month_key(key)
    year, month = parse_month_key(key)
    assert f"{year:04d}-{month:02d}" == key


@pytest.mark.parametrize("key", ["2024-13", "2024-00", "2024-1", "24-01", "2024/01", "", None, 202401])
def test_invalid_month_keys(key):
    assert not is_month_key(key)
    with pytest.raises(ValueError):
        parse_month_key(key)


def test_shift_month_crosses_year_boundaries():
    assert shift_month("2024-01", -1) == "2023-12"
    assert shift_month("2023-12", 1) == "2024-01"
    assert shift_month("2024-03", -15) == "2022-12"
    assert shift_month("2024-03", 0) == "2024-03"


def test_month_range_is_inclusive_and_empty_when_reversed():
    assert month_range("2023-11", "2024-02") == ["2023-11", "2023-12", "2024-01", "2024-02"]
    assert month_range("2024-02", "2024-02") == ["2024-02"]
    assert month_range("2024-03", "2024-02") == []


def test_previous_months_most_recent_first():
    assert previous_months("2024-02", 3) == ["2024-01", "2023-12", "2023-11"]
    assert previous_months("2024-02", 0) == []


def test_month_key_and_contains():
    assert month_key(date(2024, 3, 31)) == "2024-03"
    assert month_contains("2024-03", date(2024, 3, 1))
    assert not month_contains("2024-03", date(2024, 4, 1))


def test_weeks_in_month_sunday_first():
    # March 2024 starts on a Friday and ends on a Sunday.
    assert weeks_in_month("2024-03") == 6
    # February 2015 starts on a Sunday and has exactly four weeks.
    assert weeks_in_month("2015-02") == 4
    assert weeks_in_month("2024-06") == 6


def test_weeks_in_month_monday_first():
    assert weeks_in_month("2024-03", first_weekday=calendar.MONDAY) == 5


@pytest.mark.parametrize(
    ("day", "week"),
    [(1, 1), (2, 1), (3, 2), (9, 2), (10, 3), (30, 5), (31, 6)],
)
def test_week_of_month_sunday_first(day, week):
    assert week_of_month(date(2024, 3, day)) == week


def test_week_of_month_monday_first():
    assert week_of_month(date(2024, 3, 3), first_weekday=calendar.MONDAY) == 1
    assert week_of_month(date(2024, 3, 4), first_weekday=calendar.MONDAY) == 2
    assert week_of_month(date(2024, 3, 31), first_weekday=calendar.MONDAY) == 5


def test_week_of_month_never_exceeds_weeks_in_month():
    for month in range(1, 13):
        key = f"2023-{month:02d}"
        weeks = weeks_in_month(key)
        last = calendar.monthrange(2023, month)[1]
        assert {week_of_month(date(2023, month, d)) for d in range(1, last + 1)} == set(
            range(1, weeks + 1)
        )
