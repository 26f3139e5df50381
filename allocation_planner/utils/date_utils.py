"""Date manipulation utilities"""

import calendar
from datetime import date


def subtract_months(from_date: date, months: int) -> date:
    """Same day-of-month `months` earlier, clamped to the target month's length"""
    month_index = from_date.year * 12 + (from_date.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(from_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def whole_months_between(start: date, end: date) -> int:
    """Completed calendar months from start to end (0 when under a month)"""
    if end < start:
        return 0
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(0, months)
