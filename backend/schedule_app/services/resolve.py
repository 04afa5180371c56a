"""
Merges expanded series with their exceptions and with standalone events
into the list of occurrences shown on the schedule.
"""

from datetime import date
from typing import Iterable, List

from ..exceptions import InvalidArgument
from ..models import OccurrenceKind
from .expand import expand_series, single_occurrence
from .occurrences import Occurrence


def resolve(
    series_list: Iterable,
    standalone_events: Iterable,
    exceptions: Iterable,
    window_start: date,
    window_end: date,
    include_cancelled: bool = False,
) -> List[Occurrence]:
    """
    Build the visible schedule for a date window.

    For each series date, in order of precedence:
    1. a cancellation hides the occurrence (or yields a CANCELLATION entry
       when `include_cancelled` is set, for history views);
    2. an override replaces it with the override's persisted event;
    3. a standalone event of the same church on the same date replaces it;
    4. otherwise the virtual occurrence is shown.

    A non-recurring series contributes its anchor as one STANDALONE
    occurrence when that date is in the window.

    Standalone events inside the window are always included. Inputs are
    snapshots; nothing is read or written here. Returns occurrences sorted
    by start.
    """
    if window_end < window_start:
        raise InvalidArgument(f"Window end {window_end} is before start {window_start}")

    series_list = list(series_list)
    standalone_events = [
        event for event in standalone_events
        if event.kind == OccurrenceKind.STANDALONE and window_start <= event.occurrence_date <= window_end
    ]

    exceptions_by_key = {
        (exception.series_id, exception.occurrence_date): exception
        for exception in exceptions
    }
    standalone_days = {(event.church_id, event.occurrence_date) for event in standalone_events}

    resolved = []
    for series in series_list:
        if not series.is_recurring:
            resolved.extend(single_occurrence(series, window_start, window_end))
            continue
        for occurrence in expand_series(series, window_start, window_end):
            exception = exceptions_by_key.get((series.id, occurrence.occurrence_date))
            if exception is not None:
                if exception.is_cancellation and include_cancelled:
                    resolved.append(occurrence.cancelled(exception))
                continue
            if (occurrence.church_id, occurrence.occurrence_date) in standalone_days:
                continue
            resolved.append(occurrence)

    # Overrides are persisted rows: they stay visible even when the series
    # no longer generates their date (e.g. after termination).
    for exception in exceptions_by_key.values():
        if exception.is_cancellation:
            continue
        if window_start <= exception.occurrence_date <= window_end:
            resolved.append(Occurrence.from_override(exception))

    resolved.extend(Occurrence.from_event(event) for event in standalone_events)

    resolved.sort(key=lambda occ: (occ.start, occ.name, str(occ.key)))
    return resolved
