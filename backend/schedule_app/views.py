"""
Views for the schedule API.
Provides CRUD for churches, series, events, services and unavailability,
the occurrence-level operations on series, and the schedule reads.
"""

from django.http import JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from django.views.decorators.http import require_GET
from pytz import UnknownTimeZoneError
from pytz import timezone as pytz_timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from .exceptions import Conflict, InvalidArgument, NotFound, PreconditionFailed, ScheduleError
from .models import (
    Church,
    Event,
    EventException,
    EventSeries,
    EventTemplate,
    OccurrenceKind,
    Service,
    ServiceTemplate,
    UnavailabilityPeriod,
)
from .serializers import (
    ChurchSerializer,
    EventExceptionSerializer,
    EventSerializer,
    EventSeriesSerializer,
    EventTemplateSerializer,
    IssueSerializer,
    OccurrenceSerializer,
    ServiceSerializer,
    ServiceTemplateSerializer,
    UnavailabilityPeriodSerializer,
)
from .services import lifecycle
from .services.occurrences import OccurrenceKey
from .services.schedule import get_issues, get_occurrence_services, get_schedule, get_summary
from .services.store import ScheduleStore
from .services.window import build_window


ERROR_CODES = [
    (InvalidArgument, 'invalid_argument', status.HTTP_400_BAD_REQUEST),
    (NotFound, 'not_found', status.HTTP_404_NOT_FOUND),
    (Conflict, 'conflict', status.HTTP_409_CONFLICT),
    (PreconditionFailed, 'precondition_failed', status.HTTP_412_PRECONDITION_FAILED),
]


def error_body(exc: ScheduleError):
    """
    JSON body and status for a schedule error. Conflicts point at the record
    holding the key so the client can offer to edit it instead of retrying.
    """
    for error_class, code, http_status in ERROR_CODES:
        if isinstance(exc, error_class):
            break
    else:
        raise exc

    body = {'error': str(exc), 'code': code}
    if isinstance(exc, Conflict) and exc.existing is not None:
        if isinstance(exc.existing, EventException):
            body['existing_exception_id'] = exc.existing.pk
        else:
            body['existing_event_id'] = exc.existing.pk
    return body, http_status


def error_response(exc: ScheduleError) -> Response:
    body, http_status = error_body(exc)
    return Response(body, status=http_status)


def _actor(request):
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user
    return None


def _parse_instant(value, field, tz):
    """Parse an ISO datetime; naive values are read in `tz`."""
    parsed = parse_datetime(value) if isinstance(value, str) else None
    if parsed is None:
        raise InvalidArgument(f"{field} must be a valid ISO datetime")
    if timezone.is_naive(parsed):
        parsed = tz.localize(parsed)
    return parsed


def _parse_day(value, field):
    try:
        parsed = parse_date(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise InvalidArgument(f"{field} must be a valid ISO date")
    return parsed


def _flag(params, name):
    return params.get(name, '').lower() in ('1', 'true', 'yes')


class ChurchViewSet(viewsets.ModelViewSet):
    queryset = Church.objects.all()
    serializer_class = ChurchSerializer


class EventSeriesViewSet(viewsets.ModelViewSet):
    """
    ViewSet for CRUD operations on EventSeries.
    Deleting a series terminates it; rows are never removed.
    """
    queryset = EventSeries.objects.select_related('church').prefetch_related('exceptions')
    serializer_class = EventSeriesSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        church_id = self.request.query_params.get('church')
        if church_id:
            queryset = queryset.filter(church_id=church_id)
        return queryset

    @action(detail=True, methods=['post', 'delete'], url_path='occurrence')
    def occurrence(self, request: Request, pk=None):
        """
        Handle occurrence-level operations on one date of the series.

        POST - Create an override for that date:
        {
            "occurrence_date": "2025-04-20",
            "name": "Easter Special",  // optional
            "description": "...",  // optional
            "start": "2025-04-20T09:00:00+02:00",  // optional
            "end": "2025-04-20T11:00:00+02:00"  // optional
        }

        DELETE - Cancel that date:
        Query parameters: occurrence_date (ISO date), reason (optional)
        """
        series = self.get_object()

        try:
            if request.method == 'DELETE':
                return self._handle_cancel_occurrence(request, series)
            return self._handle_create_override(request, series)
        except ScheduleError as exc:
            return error_response(exc)

    def _handle_create_override(self, request: Request, series):
        occurrence_date = request.data.get('occurrence_date')
        if not occurrence_date:
            raise InvalidArgument('occurrence_date is required')

        tz = series.church.tzinfo
        fields = {}
        for field in ('name', 'description'):
            if field in request.data:
                fields[field] = request.data[field]
        for field in ('start', 'end'):
            if request.data.get(field):
                fields[field] = _parse_instant(request.data[field], field, tz)

        occurrence = lifecycle.create_override(series.pk, occurrence_date, fields, actor=_actor(request))
        return Response(OccurrenceSerializer(occurrence).data, status=status.HTTP_201_CREATED)

    def _handle_cancel_occurrence(self, request: Request, series):
        occurrence_date = request.query_params.get('occurrence_date')
        if not occurrence_date:
            raise InvalidArgument('occurrence_date query parameter is required')

        exception = lifecycle.create_cancellation(
            series.pk,
            occurrence_date,
            actor=_actor(request),
            reason=request.query_params.get('reason', ''),
        )
        return Response(EventExceptionSerializer(exception).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def terminate(self, request: Request, pk=None):
        """Stop generating occurrences from now on, keeping all history."""
        series = self.get_object()
        try:
            series = lifecycle.terminate_series(series.pk, actor=_actor(request))
        except ScheduleError as exc:
            return error_response(exc)
        return Response(self.get_serializer(series).data, status=status.HTTP_200_OK)

    def perform_destroy(self, instance):
        lifecycle.terminate_series(instance.pk, actor=_actor(self.request))


class EventViewSet(viewsets.ModelViewSet):
    """Standalone events, and the events behind overrides (edit only)."""
    queryset = Event.objects.select_related('church')
    serializer_class = EventSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        church_id = self.request.query_params.get('church')
        if church_id:
            queryset = queryset.filter(church_id=church_id)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        church = data.pop('church')
        template = data.pop('template', None)
        try:
            event = lifecycle.create_standalone_event(
                church.pk, data, template_id=template.pk if template is not None else None,
            )
        except ScheduleError as exc:
            return error_response(exc)
        return Response(self.get_serializer(event).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        event = self.get_object()
        serializer = self.get_serializer(event, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        church = data.pop('church', None)
        if church is not None and church.pk != event.church_id:
            return error_response(InvalidArgument("An event cannot move to another church"))
        if data.pop('template', None) is not None:
            return error_response(InvalidArgument("Templates only apply when an event is created"))
        try:
            event = lifecycle.update_event(event, data)
        except ScheduleError as exc:
            return error_response(exc)
        return Response(self.get_serializer(event).data)

    def destroy(self, request, *args, **kwargs):
        event = self.get_object()
        if event.kind == OccurrenceKind.OVERRIDE:
            return error_response(PreconditionFailed("Override events stay as the record of their date"))
        event.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class ServiceViewSet(viewsets.ModelViewSet):
    queryset = Service.objects.all()
    serializer_class = ServiceSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        for param in ('church', 'series', 'event'):
            value = self.request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{f'{param}_id': value})
        return queryset


class ServiceTemplateViewSet(viewsets.ModelViewSet):
    queryset = ServiceTemplate.objects.all()
    serializer_class = ServiceTemplateSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        church_id = self.request.query_params.get('church')
        if church_id:
            queryset = queryset.filter(church_id=church_id)
        return queryset


class EventTemplateViewSet(viewsets.ModelViewSet):
    queryset = EventTemplate.objects.prefetch_related('service_templates')
    serializer_class = EventTemplateSerializer


class UnavailabilityPeriodViewSet(viewsets.ModelViewSet):
    queryset = UnavailabilityPeriod.objects.all()
    serializer_class = UnavailabilityPeriodSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        user_id = self.request.query_params.get('user')
        if user_id:
            queryset = queryset.filter(user_id=user_id)
        return queryset


def _church_and_window(request):
    """
    Read the church and the optional window from query parameters:
    church (required), start / end (ISO dates), show_past.
    """
    church_id = request.GET.get('church')
    if not church_id or not church_id.isdigit():
        raise InvalidArgument('church query parameter is required')
    church = ScheduleStore().get_church(church_id)

    start_str = request.GET.get('start')
    end_str = request.GET.get('end')
    window = None
    if start_str or end_str:
        window = build_window(
            today=timezone.localdate(timezone=church.tzinfo),
            date_from=_parse_day(start_str, 'start') if start_str else None,
            date_to=_parse_day(end_str, 'end') if end_str else None,
            show_past=_flag(request.GET, 'show_past'),
            horizon_months=church.horizon_months,
        )
    return church, window


@require_GET
def occurrences_view(request):
    """
    Get the resolved schedule of a church.

    Query parameters:
    - church: church id (required)
    - start / end: ISO dates (optional, default window otherwise)
    - show_past: include the last year when no start is given
    - q: search in name and description
    - include_cancelled: list cancelled dates as kind=cancellation
    - tz: timezone name for an extra local_start field (e.g. 'Europe/London')
    """
    tz_name = request.GET.get('tz')
    local_tz = None
    if tz_name:
        try:
            local_tz = pytz_timezone(tz_name)
        except UnknownTimeZoneError:
            return JsonResponse({'error': f'Invalid timezone: {tz_name}', 'code': 'invalid_argument'}, status=400)

    try:
        church, window = _church_and_window(request)
        occurrences = get_schedule(
            church.pk,
            window=window,
            search=request.GET.get('q'),
            include_cancelled=_flag(request.GET, 'include_cancelled'),
            show_past=_flag(request.GET, 'show_past'),
        )
    except ScheduleError as exc:
        body, http_status = error_body(exc)
        return JsonResponse(body, status=http_status)

    data = OccurrenceSerializer(occurrences, many=True).data
    if local_tz:
        for item, occ in zip(data, occurrences):
            item['local_start'] = occ.start.astimezone(local_tz).isoformat()

    return JsonResponse({'occurrences': data})


@require_GET
def issues_view(request):
    """Issues of the church schedule (same query parameters as occurrences)."""
    try:
        church, window = _church_and_window(request)
        issues = get_issues(church.pk, window=window)
    except ScheduleError as exc:
        body, http_status = error_body(exc)
        return JsonResponse(body, status=http_status)

    return JsonResponse({'issues': IssueSerializer(issues, many=True).data})


@require_GET
def summary_view(request):
    try:
        church, window = _church_and_window(request)
        summary = get_summary(church.pk, window=window)
    except ScheduleError as exc:
        body, http_status = error_body(exc)
        return JsonResponse(body, status=http_status)

    return JsonResponse(summary)


@require_GET
def occurrence_services_view(request):
    """
    Services of one occurrence, cancelled dates included.

    Query parameters: church, date, and either series or event.
    """
    try:
        church_id = request.GET.get('church')
        date_str = request.GET.get('date')
        if not church_id or not date_str:
            raise InvalidArgument('church and date query parameters are required')
        series_id = request.GET.get('series')
        event_id = request.GET.get('event')
        key = OccurrenceKey(
            church_id=int(church_id),
            occurrence_date=_parse_day(date_str, 'date'),
            series_id=int(series_id) if series_id else None,
            event_id=int(event_id) if event_id else None,
        )
        services = get_occurrence_services(key)
    except ScheduleError as exc:
        body, http_status = error_body(exc)
        return JsonResponse(body, status=http_status)
    except ValueError as exc:
        body, http_status = error_body(InvalidArgument(str(exc)))
        return JsonResponse(body, status=http_status)

    return JsonResponse({'services': ServiceSerializer(services, many=True).data})
