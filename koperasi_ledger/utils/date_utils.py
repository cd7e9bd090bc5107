"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, timezone
from typing import Tuple

# Reports look one month past the period end; datetime stops at year 9999
MIN_PERIOD_YEAR = 1900
MAX_PERIOD_YEAR = 9998


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_storage_datetime(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def days_in_month(month: int, year: int) -> int:
    return calendar.monthrange(year, month)[1]


def shift_month(month: int, year: int, offset: int) -> Tuple[int, int]:
    """Move a (month, year) period by offset months"""
    index = year * 12 + (month - 1) + offset
    return index % 12 + 1, index // 12


def month_range(month: int, year: int) -> Tuple[datetime, datetime]:
    """Half-open [start, end) datetime range covering one month"""
    start = datetime(year, month, 1)
    next_month, next_year = shift_month(month, year, 1)
    return start, datetime(next_year, next_month, 1)


def add_months(from_date: date, months: int) -> date:
    """Same day-of-month N months later, clamped to the month's last day"""
    month, year = shift_month(from_date.month, from_date.year, months)
    return date(year, month, min(from_date.day, days_in_month(month, year)))


def days_until_month_end(today: date) -> int:
    return days_in_month(today.month, today.year) - today.day


def subtract_months(value: datetime, months: int) -> datetime:
    month, year = shift_month(value.month, value.year, -months)
    day = min(value.day, days_in_month(month, year))
    return value.replace(year=year, month=month, day=day)
