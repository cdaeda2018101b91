"""
Date helpers for recurring expense renewal.
"""

import calendar
from datetime import datetime, timedelta

__all__ = ["add_days", "add_years", "days_in_month", "day_offset"]

ONE_DAY = timedelta(days=1)


def add_days(moment: datetime, count: int) -> datetime:
    """Move a timestamp by a number of days using absolute time."""
    return moment + count * ONE_DAY


def add_years(moment: datetime, count: int) -> datetime:
    """
    Move a timestamp by whole calendar years, keeping month and day.
    Feb 29 rolls over to Mar 1 when the target year is not a leap year.
    """
    year = moment.year + count
    if moment.month == 2 and moment.day == 29 and not calendar.isleap(year):
        return moment.replace(year=year, month=3, day=1)
    return moment.replace(year=year)


def days_in_month(month: int, year: int) -> int:
    """Return the day count of a zero-based month (0 = January)."""
    return calendar.monthrange(year, month + 1)[1]


def day_offset(first: datetime, second: datetime) -> float:
    """Days from second to first; positive when first is later."""
    return (first - second) / ONE_DAY
