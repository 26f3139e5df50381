"""Unit tests for date helpers"""

from datetime import date
from allocation_planner.utils.date_utils import subtract_months, whole_months_between


def test_subtract_months_clamps_day():
    assert subtract_months(date(2024, 3, 31), 1) == date(2024, 2, 29)
    assert subtract_months(date(2024, 1, 15), 6) == date(2023, 7, 15)


def test_whole_months_between():
    assert whole_months_between(date(2024, 1, 15), date(2024, 6, 15)) == 5
    assert whole_months_between(date(2024, 1, 15), date(2024, 6, 14)) == 4
    assert whole_months_between(date(2024, 6, 1), date(2024, 1, 1)) == 0
