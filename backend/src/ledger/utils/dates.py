"""Calendar helpers for billing periods.

All timestamps are stored as naive UTC datetimes.
"""
import calendar
from datetime import datetime, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(value: datetime, months: int, day: Optional[int] = None) -> datetime:
    """
    Add calendar months, clamping the day to the end of the target month.

    Args:
        value: Starting datetime
        months: Number of months to add
        day: Day of month to land on instead of ``value.day``, clamped the same way

    Returns:
        Datetime with the same time of day in the target month

    Examples:
        >>> add_months(datetime(2025, 1, 31), 1)
        datetime.datetime(2025, 2, 28, 0, 0)
        >>> add_months(datetime(2025, 1, 15, 9, 30), 1)
        datetime.datetime(2025, 2, 15, 9, 30)
        >>> add_months(datetime(2025, 2, 28), 1, day=31)
        datetime.datetime(2025, 3, 31, 0, 0)
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(day or value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_period_range(start: datetime, anchor_day: Optional[int] = None) -> Tuple[datetime, datetime]:
    """
    Half-open monthly billing period beginning at ``start``.

    ``anchor_day`` is the subscription's billing day: a period starting on a
    clamped date (Feb 28 for a 31st anchor) ends back on the anchor day.
    """
    return start, add_months(start, 1, day=anchor_day)


def format_period_date(value: datetime) -> str:
    """Render a date as ``Jan 5, 2025``."""
    return f"{value:%b} {value.day}, {value.year}"
