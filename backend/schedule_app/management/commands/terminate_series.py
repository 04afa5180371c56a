"""
Management command to terminate a series from now on
"""

from django.core.management.base import BaseCommand, CommandError

from schedule_app.exceptions import ScheduleError
from schedule_app.services import lifecycle


class Command(BaseCommand):
    help = 'Stop a series from generating future occurrences, keeping its history'

    def add_arguments(self, parser):
        parser.add_argument('series_id', type=int)

    def handle(self, *args, **options):
        try:
            series = lifecycle.terminate_series(options['series_id'])
        except ScheduleError as exc:
            raise CommandError(str(exc))

        self.stdout.write(
            self.style.SUCCESS(f'Series {series.pk} "{series.name}" terminated at {series.terminated_at}')
        )
