"""
Command to list the overrides and cancellations recorded per series
"""

from django.core.management.base import BaseCommand

from schedule_app.models import EventException, EventSeries, OccurrenceKind


class Command(BaseCommand):
    help = 'List overrides and cancellations of every series'

    def add_arguments(self, parser):
        parser.add_argument('--church', type=int, help='Only series of this church')

    def handle(self, *args, **options):
        exceptions = EventException.objects.select_related('series', 'event').order_by('series_id', 'occurrence_date')
        series_list = EventSeries.objects.all()
        if options['church']:
            exceptions = exceptions.filter(series__church_id=options['church'])
            series_list = series_list.filter(church_id=options['church'])

        if not exceptions:
            self.stdout.write('No exceptions found.')
        for exception in exceptions:
            if exception.is_cancellation:
                detail = f'cancelled ({exception.reason or "no reason"})'
            else:
                detail = f'override -> "{exception.event.name}" {exception.event.start} - {exception.event.end}'
            self.stdout.write(f'Series {exception.series_id} on {exception.occurrence_date}: {detail}')

        self.stdout.write(f'\nTotal exceptions: {exceptions.count()}')

        self.stdout.write('\n=== Series ===')
        for series in series_list:
            cancelled = series.exceptions.filter(kind=OccurrenceKind.CANCELLATION).count()
            state = f'terminated at {series.terminated_at}' if series.is_terminated else 'active'
            self.stdout.write(
                f'Series {series.id}: "{series.name}" '
                f'(exceptions: {series.exceptions.count()}, cancelled: {cancelled}, {state})'
            )
