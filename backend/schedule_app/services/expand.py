"""
Service for expanding a weekly event series into individual occurrences.
Exceptions are not applied here; see resolve.py.
"""

from datetime import date, datetime, time
from typing import List, Tuple

from dateutil import rrule
from dateutil.rrule import MO, TU, WE, TH, FR, SA, SU

from ..exceptions import InvalidArgument
from ..models import EventSeries, OccurrenceKind
from .occurrences import Occurrence, OccurrenceKey


# Index is the model's weekday number (0 = Monday)
WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)


def validate_series(series: EventSeries) -> None:
    if not series.is_recurring:
        raise InvalidArgument(f"Series {series.pk} is not recurring")
    if series.recurring_weekday is None or not 0 <= series.recurring_weekday <= 6:
        raise InvalidArgument(f"Series {series.pk} has no valid weekday")
    if series.anchor_end <= series.anchor_start:
        raise InvalidArgument(f"Series {series.pk} ends before it starts")


def create_rrule_for_series(series: EventSeries, first_day: date, last_day: date) -> rrule.rrule:
    """
    Weekly rule on the series weekday between two calendar dates (inclusive).
    Yields naive midnights; the time of day is applied by the caller.
    """
    return rrule.rrule(
        rrule.WEEKLY,
        dtstart=datetime.combine(first_day, time()),
        until=datetime.combine(last_day, time()),
        byweekday=WEEKDAYS[series.recurring_weekday],
    )


def occurrence_times(series: EventSeries, day: date, tz=None) -> Tuple[datetime, datetime]:
    """
    Start and end of the series occurrence on `day`.

    The start is the anchor's local wall-clock time on that date; the end adds
    the anchor duration as elapsed time, so a DST change never stretches or
    shrinks an occurrence.
    """
    tz = tz or series.church.tzinfo
    anchor_local = series.anchor_start.astimezone(tz)
    start = tz.normalize(tz.localize(datetime.combine(day, anchor_local.time())))
    end = tz.normalize(start + series.duration)
    return start, end


def first_occurrence_date(series: EventSeries, tz=None) -> date:
    tz = tz or series.church.tzinfo
    return series.anchor_start.astimezone(tz).date()


def is_occurrence_date(series: EventSeries, day: date, tz=None) -> bool:
    return day.weekday() == series.recurring_weekday and day >= first_occurrence_date(series, tz)


def expand_series(series: EventSeries, window_start: date, window_end: date, tz=None) -> List[Occurrence]:
    """
    Expand a series into virtual occurrences within the given date window.

    Args:
        series: recurring EventSeries to expand
        window_start: first calendar date of the window (inclusive)
        window_end: last calendar date of the window (inclusive)
        tz: timezone of the dates; defaults to the series' church timezone

    Returns:
        Occurrences of kind VIRTUAL in chronological order. Nothing starting
        at or after the series' termination instant is returned.
    """
    validate_series(series)
    if window_end < window_start:
        raise InvalidArgument(f"Window end {window_end} is before start {window_start}")

    tz = tz or series.church.tzinfo
    first_day = max(window_start, first_occurrence_date(series, tz))
    if first_day > window_end:
        return []

    occurrences = []
    for occurrence_dt in create_rrule_for_series(series, first_day, window_end):
        day = occurrence_dt.date()
        start, end = occurrence_times(series, day, tz)
        if series.terminated_at is not None and start >= series.terminated_at:
            break
        occurrences.append(Occurrence(
            key=OccurrenceKey.for_series(series.id, series.church_id, day),
            kind=OccurrenceKind.VIRTUAL,
            start=start,
            end=end,
            name=series.name,
            description=series.description,
        ))

    return occurrences


def single_occurrence(series: EventSeries, window_start: date, window_end: date, tz=None) -> List[Occurrence]:
    """
    The one occurrence of a non-recurring series, taken from its anchor, as a
    list of zero or one item depending on the window and termination.
    """
    if series.is_recurring:
        raise InvalidArgument(f"Series {series.pk} is recurring")
    if series.anchor_end <= series.anchor_start:
        raise InvalidArgument(f"Series {series.pk} ends before it starts")

    day = first_occurrence_date(series, tz)
    if not window_start <= day <= window_end:
        return []
    if series.terminated_at is not None and series.anchor_start >= series.terminated_at:
        return []

    return [Occurrence(
        key=OccurrenceKey.for_series(series.id, series.church_id, day),
        kind=OccurrenceKind.STANDALONE,
        start=series.anchor_start,
        end=series.anchor_end,
        name=series.name,
        description=series.description,
    )]
