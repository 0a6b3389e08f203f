"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from typing import List, Union

DateLike = Union[date, datetime]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def month_start(value: DateLike) -> datetime:
    """First instant of the calendar month containing value"""
    return datetime(value.year, value.month, 1)


def add_months(value: DateLike, months: int) -> datetime:
    """First day of the month that is `months` after the month of value"""
    index = value.year * 12 + (value.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


def calendar_months_between(start: DateLike, end: DateLike) -> int:
    """Calendar-month difference, ignoring the day of month (Dec 25 -> Jan 1 is 1)"""
    return (end.year - start.year) * 12 + (end.month - start.month)


def full_months_between(start: DateLike, end: DateLike) -> int:
    """Completed months from start to end (Jan 31 -> Feb 28 is 0)"""
    months = calendar_months_between(start, end)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


def month_starts_between(after: DateLike, through: DateLike) -> List[datetime]:
    """Month starts strictly after `after` and on or before `through`"""
    starts = []
    candidate = add_months(after, 1)
    limit = _as_datetime(through)
    while candidate <= limit:
        starts.append(candidate)
        candidate = add_months(candidate, 1)
    return starts


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)
