"""
Scan window used when materializing the schedule.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.utils import timezone

from ..exceptions import InvalidArgument


@dataclass(frozen=True)
class ScheduleWindow:
    """Inclusive range of calendar dates."""

    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidArgument(f"Window end {self.end} is before start {self.start}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def build_window(
    today: Optional[date] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    show_past: bool = False,
    horizon_months: Optional[int] = None,
) -> ScheduleWindow:
    """
    Build the window a schedule read scans.

    Without an explicit range the window starts a few days back (or a year
    back when past events are requested) and ends `horizon_months` ahead.
    """
    if today is None:
        today = timezone.localdate()
    if horizon_months is None:
        horizon_months = settings.SCHEDULE_HORIZON_MONTHS

    if date_from is not None:
        start = date_from
    elif show_past:
        start = today - timedelta(days=settings.SCHEDULE_HISTORY_DAYS)
    else:
        start = today - timedelta(days=settings.SCHEDULE_LOOKBACK_DAYS)

    end = date_to if date_to is not None else today + relativedelta(months=horizon_months)
    return ScheduleWindow(start=start, end=end)


def local_date(value, tz) -> date:
    """
    Calendar date of `value` in `tz`.

    Accepts a date, an aware or naive datetime (naive is read as local to
    `tz`) or an ISO string of either.
    """
    if isinstance(value, str):
        try:
            value = date_parser.isoparse(value)
        except ValueError:
            raise InvalidArgument(f"Not an ISO date or datetime: {value!r}")

    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return value.date()
        return value.astimezone(tz).date()

    if isinstance(value, date):
        return value

    raise InvalidArgument(f"Cannot read a calendar date from {value!r}")
