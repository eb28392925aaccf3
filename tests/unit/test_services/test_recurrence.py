"""Tests for next-occurrence calculation."""

import pytest
from datetime import datetime

from remindersync.models.task import Frequency
from remindersync.services.recurrence import add_months, next_occurrence
from remindersync.utils.errors import RecurrenceError


@pytest.mark.unit
def test_daily_adds_one_day_keeping_time():
    assert next_occurrence(datetime(2024, 3, 9, 7, 45), Frequency.DAILY) == datetime(2024, 3, 10, 7, 45)


@pytest.mark.unit
def test_weekly_adds_seven_days():
    assert next_occurrence(datetime(2024, 12, 28, 18, 0), "weekly") == datetime(2025, 1, 4, 18, 0)


@pytest.mark.unit
def test_monthly_clamps_to_end_of_month_in_leap_year():
    """Test that Jan 31 moves to Feb 29 in a leap year."""
    assert next_occurrence(datetime(2024, 1, 31, 9, 0), Frequency.MONTHLY) == datetime(2024, 2, 29, 9, 0)


@pytest.mark.unit
def test_monthly_clamps_to_end_of_month_in_common_year():
    assert next_occurrence(datetime(2023, 1, 31, 9, 0), Frequency.MONTHLY) == datetime(2023, 2, 28, 9, 0)


@pytest.mark.unit
def test_monthly_rolls_over_year():
    assert next_occurrence(datetime(2024, 12, 15, 10, 0), Frequency.MONTHLY) == datetime(2025, 1, 15, 10, 0)


@pytest.mark.unit
def test_add_months_multiple():
    assert add_months(datetime(2024, 1, 31), 3) == datetime(2024, 4, 30)
    assert add_months(datetime(2024, 11, 30), 14) == datetime(2026, 1, 30)


@pytest.mark.unit
def test_once_does_not_repeat():
    with pytest.raises(RecurrenceError):
        next_occurrence(datetime(2024, 1, 1), Frequency.ONCE)


@pytest.mark.unit
@pytest.mark.parametrize("frequency", [Frequency.DAILY, Frequency.WEEKLY, Frequency.MONTHLY])
def test_next_occurrence_strictly_increases(frequency):
    """Test that repeated completion always moves forward, including month ends."""
    current = datetime(2024, 1, 31, 23, 59)
    for _ in range(40):
        following = next_occurrence(current, frequency)
        assert following > current
        current = following


@pytest.mark.unit
def test_next_occurrence_is_pure():
    start = datetime(2024, 5, 31, 8, 0)
    assert next_occurrence(start, Frequency.MONTHLY) == next_occurrence(start, Frequency.MONTHLY)
    assert start == datetime(2024, 5, 31, 8, 0)
