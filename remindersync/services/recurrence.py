"""Next-occurrence calculation for repeating tasks."""

import calendar
from datetime import datetime, timedelta

from remindersync.models.task import Frequency
from remindersync.utils.errors import RecurrenceError


def add_months(current: datetime, months: int) -> datetime:
    """
    Shift a wall-clock datetime by whole calendar months.

    The day is clamped to the last day of the target month, so Jan 31 + 1 month
    is Feb 29 in a leap year and Feb 28 otherwise. Time of day is kept.
    """
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    day = min(current.day, calendar.monthrange(year, month)[1])
    return current.replace(year=year, month=month, day=day)


def next_occurrence(current: datetime, frequency: Frequency) -> datetime:
    """
    Compute the next run of a repeating task.

    Pure function: same input, same output; the result is always later than
    ``current``. ``once`` tasks have no next run and raise RecurrenceError.
    """
    frequency = Frequency(frequency)

    if frequency == Frequency.DAILY:
        return current + timedelta(days=1)
    if frequency == Frequency.WEEKLY:
        return current + timedelta(days=7)
    if frequency == Frequency.MONTHLY:
        return add_months(current, 1)

    raise RecurrenceError(f"Frequency '{frequency.value}' does not repeat")
