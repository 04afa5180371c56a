"""
Read operations used by the API and commands: the schedule of a church,
its issues, a dashboard summary, and the services of one occurrence.
"""

from typing import List, Optional

from django.utils import timezone

from .issues import Issue, detect
from .occurrences import Occurrence, OccurrenceKey
from .resolve import resolve
from .store import ScheduleStore
from .window import ScheduleWindow, build_window


def default_window(church, show_past=False) -> ScheduleWindow:
    return build_window(
        today=timezone.localdate(timezone=church.tzinfo),
        show_past=show_past,
        horizon_months=church.horizon_months,
    )


def _matches(occurrence, term):
    term = term.lower()
    return term in occurrence.name.lower() or term in (occurrence.description or '').lower()


def get_schedule(
    church_id,
    window: Optional[ScheduleWindow] = None,
    search: Optional[str] = None,
    include_cancelled: bool = False,
    show_past: bool = False,
    store=None,
) -> List[Occurrence]:
    """
    Occurrences of a church inside `window` (default: the church's default
    window), sorted by start. Any storage error aborts the read.
    """
    store = store or ScheduleStore()
    church = store.get_church(church_id)
    window = window or default_window(church, show_past=show_past)

    series_list = store.list_series(church.pk)
    exceptions = store.list_exceptions([series.pk for series in series_list], window)
    events = store.list_standalone_events(church.pk, window)

    occurrences = resolve(
        series_list, events, exceptions, window.start, window.end,
        include_cancelled=include_cancelled,
    )
    if search:
        occurrences = [occ for occ in occurrences if _matches(occ, search)]
    return occurrences


def _user_ids(services_by_occurrence):
    ids = set()
    for services in services_by_occurrence.values():
        for service in services:
            for user_id in (service.assignments or {}).values():
                if isinstance(user_id, int) or (isinstance(user_id, str) and user_id.isdigit()):
                    ids.add(int(user_id))
    return ids


def _scan(church_id, window, store):
    store = store or ScheduleStore()
    church = store.get_church(church_id)
    window = window or default_window(church)

    occurrences = get_schedule(church.pk, window=window, store=store)
    services = store.services_by_occurrence(occurrences)
    unavailability = store.list_unavailability(window, _user_ids(services))
    return window, occurrences, services, detect(occurrences, services, unavailability)


def get_issues(church_id, window: Optional[ScheduleWindow] = None, store=None) -> List[Issue]:
    return _scan(church_id, window, store)[3]


def get_summary(church_id, window: Optional[ScheduleWindow] = None, store=None) -> dict:
    """Counts shown on the dashboard."""
    window, occurrences, services, issues = _scan(church_id, window, store)

    return {
        'upcoming_events': len(occurrences),
        'open_positions': sum(
            1 for service_list in services.values() for service in service_list if service.leader_id is None
        ),
        'issues': len(issues),
        'window_start': window.start,
        'window_end': window.end,
    }


def get_occurrence_services(key: OccurrenceKey, store=None):
    store = store or ScheduleStore()
    return store.list_services_for_occurrence(key)
