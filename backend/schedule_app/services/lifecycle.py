"""
Write operations on series: per-date overrides and cancellations, series
termination, and creation of standalone events.

Each operation runs in one transaction. Failed writes are raised to the
caller and never retried here.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..exceptions import Conflict, InvalidArgument, PreconditionFailed
from ..models import OccurrenceKind
from .expand import is_occurrence_date, occurrence_times, validate_series
from .occurrences import Occurrence
from .store import ScheduleStore
from .window import local_date

logger = logging.getLogger(__name__)

EVENT_FIELDS = {'name', 'description', 'start', 'end'}


def _occurrence_day(series, occurrence_date):
    """Resolve the requested date to a valid occurrence date of `series`."""
    validate_series(series)
    tz = series.church.tzinfo
    day = local_date(occurrence_date, tz)

    if not is_occurrence_date(series, day, tz):
        raise InvalidArgument(f"{day} is not an occurrence date of series {series.pk}")

    start, _ = occurrence_times(series, day, tz)
    if series.terminated_at is not None and start >= series.terminated_at:
        raise PreconditionFailed(f"Series {series.pk} was terminated before {day}")
    return day


def _aware(fields, tz):
    """Read naive start/end values as wall-clock time in `tz`."""
    for name in ('start', 'end'):
        value = fields.get(name)
        if value is not None and timezone.is_naive(value):
            fields[name] = tz.localize(value)
    return fields


def _reject_existing(store, series, day):
    existing = store.get_exception(series.pk, day)
    if existing is not None:
        logger.warning(
            "Rejected second exception for series %s on %s (existing %s #%s)",
            series.pk, day, existing.kind, existing.pk,
        )
        raise Conflict(
            f"Series {series.pk} already has a {existing.kind} on {day}",
            existing=existing,
        )


def create_override(series_id, occurrence_date, fields=None, actor=None, store=None) -> Occurrence:
    """
    Replace one date of a series with a persisted, independently editable event.

    `fields` may carry name, description, start and end; anything missing is
    taken from the series. The services of that date are copied onto the new
    event.
    """
    store = store or ScheduleStore()
    fields = dict(fields or {})
    unknown = set(fields) - EVENT_FIELDS
    if unknown:
        raise InvalidArgument(f"Unknown override fields: {sorted(unknown)}")

    with transaction.atomic():
        series = store.get_series(series_id, for_update=True)
        day = _occurrence_day(series, occurrence_date)
        _reject_existing(store, series, day)
        _aware(fields, series.church.tzinfo)

        start, end = occurrence_times(series, day)
        if fields.get('start') is not None:
            start = fields['start']
            end = start + series.duration
        if fields.get('end') is not None:
            end = fields['end']
        if end <= start:
            raise InvalidArgument("Override end must be after its start")

        event = store.create_event(
            church=series.church,
            series=series,
            kind=OccurrenceKind.OVERRIDE,
            occurrence_date=day,
            start=start,
            end=end,
            name=fields.get('name') or f"{settings.SCHEDULE_OVERRIDE_NAME_PREFIX}{series.name}",
            description=fields.get('description', series.description),
        )
        exception = store.create_exception(series, day, OccurrenceKind.OVERRIDE, event=event, actor=actor)
        store.copy_services(series, day, event)

    logger.info("Override #%s created for series %s on %s", exception.pk, series.pk, day)
    return Occurrence.from_override(exception)


def create_cancellation(series_id, occurrence_date, actor=None, reason='', store=None):
    """
    Record a tombstone for one date of a series. The date disappears from the
    schedule; services already attached to it stay in place.
    """
    store = store or ScheduleStore()

    with transaction.atomic():
        series = store.get_series(series_id, for_update=True)
        day = _occurrence_day(series, occurrence_date)
        _reject_existing(store, series, day)
        exception = store.create_exception(
            series, day, OccurrenceKind.CANCELLATION, actor=actor, reason=reason or '',
        )

    logger.info(
        "Cancellation #%s created for series %s on %s by %s",
        exception.pk, series.pk, day, actor or 'system',
    )
    return exception


def terminate_series(series_id, actor=None, now=None, store=None):
    """
    Stop a series from generating occurrences from `now` on.

    Past occurrences, exceptions and services are left untouched. Terminating
    an already terminated series returns it unchanged.
    """
    store = store or ScheduleStore()
    now = now or timezone.now()

    with transaction.atomic():
        series = store.get_series(series_id, for_update=True)
        if series.is_terminated:
            logger.info("Series %s already terminated at %s", series.pk, series.terminated_at)
            return series
        store.update_series(series, terminated_at=now, terminated_by=actor)

    logger.info("Series %s terminated at %s by %s", series.pk, now, actor or 'system')
    return series


def create_standalone_event(church_id, fields, template_id=None, store=None):
    """
    Create a one-off event. Overlapping another standalone event of the same
    church is a Conflict.

    With `template_id`, the event gets one service per service template of
    that event template, and takes the template name when none is given.
    """
    store = store or ScheduleStore()
    fields = dict(fields)
    unknown = set(fields) - EVENT_FIELDS
    if unknown:
        raise InvalidArgument(f"Unknown event fields: {sorted(unknown)}")

    with transaction.atomic():
        church = store.get_church(church_id)
        template = store.get_event_template(template_id) if template_id is not None else None
        if template is not None and not fields.get('name'):
            fields['name'] = template.name

        missing = {'name', 'start', 'end'} - set(fields)
        if missing:
            raise InvalidArgument(f"Missing event fields: {sorted(missing)}")
        _aware(fields, church.tzinfo)
        if fields['end'] <= fields['start']:
            raise InvalidArgument("Event end must be after its start")

        overlapping = store.list_overlapping_events(church.pk, fields['start'], fields['end'])
        if overlapping:
            logger.warning("Rejected event overlapping #%s in church %s", overlapping[0].pk, church.pk)
            raise Conflict(
                f"An event already exists in this time range for church {church.pk}",
                existing=overlapping[0],
            )
        event = store.create_event(
            church=church,
            kind=OccurrenceKind.STANDALONE,
            occurrence_date=local_date(fields['start'], church.tzinfo),
            **fields,
        )
        if template is not None:
            store.create_services_from_template(template, event)

    logger.info("Standalone event #%s created for church %s on %s", event.pk, church.pk, event.occurrence_date)
    return event


def update_event(event, fields, store=None):
    """
    Edit a persisted event. Standalone events are re-dated from their start
    and re-checked for overlaps; an override keeps the series date it replaces.
    """
    store = store or ScheduleStore()
    fields = _aware(dict(fields), event.church.tzinfo)
    unknown = set(fields) - EVENT_FIELDS
    if unknown:
        raise InvalidArgument(f"Unknown event fields: {sorted(unknown)}")

    start = fields.get('start', event.start)
    end = fields.get('end', event.end)
    if end <= start:
        raise InvalidArgument("Event end must be after its start")

    with transaction.atomic():
        if event.kind == OccurrenceKind.STANDALONE:
            overlapping = store.list_overlapping_events(event.church_id, start, end, exclude_id=event.pk)
            if overlapping:
                raise Conflict(
                    f"An event already exists in this time range for church {event.church_id}",
                    existing=overlapping[0],
                )
            fields['occurrence_date'] = local_date(start, event.church.tzinfo)
        for name, value in fields.items():
            setattr(event, name, value)
        event.save()

    logger.info("Event #%s updated (%s)", event.pk, ', '.join(sorted(fields)))
    return event
