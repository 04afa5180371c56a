"""
Storage collaborator backed by the Django ORM.

The schedule services only talk to storage through this class, so a test or
another backend can pass its own object with the same methods.
"""

from collections import defaultdict
from typing import Dict, Iterable, List

from django.db import IntegrityError, transaction
from django.db.models import Q

from ..exceptions import Conflict, NotFound
from ..models import (
    Church,
    Event,
    EventException,
    EventSeries,
    EventTemplate,
    OccurrenceKind,
    Service,
    UnavailabilityPeriod,
)
from .occurrences import Occurrence, OccurrenceKey
from .window import ScheduleWindow


class ScheduleStore:

    def get_church(self, church_id) -> Church:
        try:
            return Church.objects.get(pk=church_id)
        except Church.DoesNotExist:
            raise NotFound(f"Church {church_id} does not exist")

    def get_series(self, series_id, for_update=False) -> EventSeries:
        queryset = EventSeries.objects.select_related('church')
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=series_id)
        except EventSeries.DoesNotExist:
            raise NotFound(f"Series {series_id} does not exist")

    def list_series(self, church_id) -> List[EventSeries]:
        return list(EventSeries.objects.filter(church_id=church_id).select_related('church'))

    def list_standalone_events(self, church_id, window: ScheduleWindow) -> List[Event]:
        return list(Event.objects.filter(
            church_id=church_id,
            kind=OccurrenceKind.STANDALONE,
            occurrence_date__range=(window.start, window.end),
        ))

    def list_overlapping_events(self, church_id, start, end, exclude_id=None) -> List[Event]:
        queryset = Event.objects.filter(
            church_id=church_id,
            kind=OccurrenceKind.STANDALONE,
            start__lt=end,
            end__gt=start,
        )
        if exclude_id is not None:
            queryset = queryset.exclude(pk=exclude_id)
        return list(queryset)

    def list_exceptions(self, series_ids: Iterable, window: ScheduleWindow = None) -> List[EventException]:
        queryset = EventException.objects.filter(series_id__in=list(series_ids)).select_related('event')
        if window is not None:
            queryset = queryset.filter(occurrence_date__range=(window.start, window.end))
        return list(queryset)

    def get_exception(self, series_id, occurrence_date):
        return (
            EventException.objects
            .filter(series_id=series_id, occurrence_date=occurrence_date)
            .select_related('event')
            .first()
        )

    def create_event(self, **fields) -> Event:
        return Event.objects.create(**fields)

    def create_exception(self, series, occurrence_date, kind, event=None, actor=None, reason='') -> EventException:
        """
        Insert an exception; a concurrent insert for the same key that wins the
        race makes this raise Conflict through the unique constraint.
        """
        try:
            with transaction.atomic():
                return EventException.objects.create(
                    series=series,
                    occurrence_date=occurrence_date,
                    kind=kind,
                    event=event,
                    actor=actor,
                    reason=reason,
                )
        except IntegrityError as exc:
            raise Conflict(
                f"An exception already exists for series {series.pk} on {occurrence_date}",
                existing=self.get_exception(series.pk, occurrence_date),
            ) from exc

    def update_series(self, series, **fields) -> EventSeries:
        for name, value in fields.items():
            setattr(series, name, value)
        series.save(update_fields=list(fields))
        return series

    def copy_services(self, series, occurrence_date, event) -> List[Service]:
        """Copy the services of a series date onto the event replacing it."""
        copies = []
        for service in self._series_services(series.pk, occurrence_date):
            copies.append(Service.objects.create(
                church_id=service.church_id,
                event=event,
                name=service.name,
                description=service.description,
                positions=list(service.positions or []),
                leader_id=service.leader_id,
                assignments=dict(service.assignments or {}),
            ))
        return copies

    def get_event_template(self, template_id) -> EventTemplate:
        try:
            return EventTemplate.objects.get(pk=template_id)
        except EventTemplate.DoesNotExist:
            raise NotFound(f"Event template {template_id} does not exist")

    def create_services_from_template(self, template, event) -> List[Service]:
        """One empty service per service template, with its positions and leader."""
        return [
            Service.objects.create(
                church_id=event.church_id,
                event=event,
                name=service_template.name,
                description=service_template.description,
                positions=list(service_template.positions or []),
                leader_id=service_template.leader_id,
                assignments={},
            )
            for service_template in template.service_templates.all()
        ]

    def _series_services(self, series_id, occurrence_date, cancelled=False) -> List[Service]:
        dated = list(Service.objects.filter(series_id=series_id, occurrence_date=occurrence_date))
        if dated or cancelled:
            return dated
        return list(Service.objects.filter(series_id=series_id, occurrence_date__isnull=True))

    def list_services_for_occurrence(self, key: OccurrenceKey) -> List[Service]:
        """
        Services of one occurrence, looked up directly by key. Works for
        cancelled dates too: their date-specific services are kept as history.
        """
        if key.event_id is not None:
            return list(Service.objects.filter(event_id=key.event_id))

        exception = self.get_exception(key.series_id, key.occurrence_date)
        if exception is not None and not exception.is_cancellation:
            return list(Service.objects.filter(event_id=exception.event_id))
        return self._series_services(
            key.series_id,
            key.occurrence_date,
            cancelled=exception is not None,
        )

    def services_by_occurrence(self, occurrences: Iterable[Occurrence]) -> Dict[OccurrenceKey, List[Service]]:
        """Batched service lookup for a resolved schedule."""
        occurrences = list(occurrences)
        series_ids = {occ.series_id for occ in occurrences if occ.event_id is None}
        event_ids = {occ.event_id for occ in occurrences if occ.event_id is not None}
        if not series_ids and not event_ids:
            return {}

        templates = defaultdict(list)
        dated = defaultdict(list)
        by_event = defaultdict(list)
        services = Service.objects.filter(Q(series_id__in=series_ids) | Q(event_id__in=event_ids))
        for service in services:
            if service.event_id is not None:
                by_event[service.event_id].append(service)
            elif service.occurrence_date is None:
                templates[service.series_id].append(service)
            else:
                dated[(service.series_id, service.occurrence_date)].append(service)

        result = {}
        for occ in occurrences:
            if occ.event_id is not None:
                result[occ.key] = by_event.get(occ.event_id, [])
                continue
            pinned = dated.get((occ.series_id, occ.occurrence_date), [])
            if pinned or occ.kind == OccurrenceKind.CANCELLATION:
                result[occ.key] = pinned
            else:
                result[occ.key] = templates.get(occ.series_id, [])
        return result

    def list_unavailability(self, window: ScheduleWindow, user_ids: Iterable = None) -> List[UnavailabilityPeriod]:
        queryset = UnavailabilityPeriod.objects.filter(
            start_date__lte=window.end,
            end_date__gte=window.start,
        )
        if user_ids is not None:
            queryset = queryset.filter(user_id__in=list(user_ids))
        return list(queryset)
