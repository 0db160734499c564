"""Calendar helpers for date-based filter predicates.

Weekdays follow Python's ``date.weekday()`` internally (Monday=0) while the
public day-of-week convention of schedules is Sunday=0, see
:func:`sunday_based_weekday`.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta


def sunday_based_weekday(value: date | datetime) -> int:
    """Return the weekday with Sunday=0 ... Saturday=6."""
    return (value.weekday() + 1) % 7


def is_working_day(value: date) -> bool:
    """Monday through Friday."""
    return value.weekday() < 5


def add_working_days(n: int, start: date) -> date:
    """Return the date ``n`` working days after ``start``, skipping weekends.

    With ``n == 0`` the start date is returned when it is a working day,
    otherwise the following Monday.
    """
    result = start
    if n == 0:
        while not is_working_day(result):
            result += timedelta(days=1)
        return result

    added = 0
    while added < n:
        result += timedelta(days=1)
        if is_working_day(result):
            added += 1
    return result


def count_working_days_between(start: date, end: date) -> int:
    """Count working days strictly between ``start`` and ``end``."""
    count = 0
    current = start + timedelta(days=1)
    while current < end:
        if is_working_day(current):
            count += 1
        current += timedelta(days=1)
    return count


def last_day_of_month(year: int, month: int) -> int:
    """Number of days in the given month."""
    return calendar.monthrange(year, month)[1]


def start_of_week(value: date) -> date:
    """Monday of the week containing ``value``."""
    return value - timedelta(days=value.weekday())


def add_months(value: date, months: int) -> date:
    """First day of the month ``months`` after the month of ``value``."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)
