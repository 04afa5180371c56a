"""
Management command to seed the schedule with sample data.
Creates a church with a Sunday service series, one override, one
cancellation, services with open positions and an unavailability period.
"""

from datetime import datetime, time, timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from schedule_app.models import Church, EventSeries, Service, UnavailabilityPeriod
from schedule_app.services import lifecycle


class Command(BaseCommand):
    help = 'Seed the schedule with a sample church, series, exceptions and services'

    def add_arguments(self, parser):
        parser.add_argument(
            '--timezone',
            default='Europe/Rome',
            help='Timezone of the sample church',
        )

    def handle(self, *args, **options):
        # Check if data already exists
        if EventSeries.objects.exists():
            self.stdout.write(
                self.style.WARNING(
                    f'Schedule already has {EventSeries.objects.count()} series. '
                    'Skipping seed to avoid duplicates.'
                )
            )
            return

        self.stdout.write('Seeding schedule data...')

        church = Church.objects.create(name="St. Mark's", timezone=options['timezone'])
        tz = church.tzinfo

        # Find next Sunday in the church timezone
        today = timezone.localdate(timezone=tz)
        next_sunday = today + timedelta(days=(6 - today.weekday()) % 7 or 7)
        anchor_start = tz.localize(datetime.combine(next_sunday, time(10, 0)))

        # 1. Weekly Sunday 10:00 "Sunday Service" (90 minutes)
        sunday = EventSeries.objects.create(
            church=church,
            name="Sunday Service",
            description="Main weekly worship service",
            recurring_weekday=6,
            anchor_start=anchor_start,
            anchor_end=anchor_start + timedelta(minutes=90),
        )
        self.stdout.write(f'Created weekly Sunday Service starting {anchor_start}')

        User = get_user_model()
        leader, _ = User.objects.get_or_create(username='worship_leader')
        vocalist, _ = User.objects.get_or_create(username='vocalist')

        # 2. Template service for every Sunday, drummer left open
        Service.objects.create(
            church=church,
            series=sunday,
            name="Worship",
            positions=['Vocalist', 'Drummer'],
            leader=leader,
            assignments={'Vocalist': str(vocalist.pk)},
        )
        self.stdout.write('Created Worship service with an open Drummer position')

        # 3. Override: the third Sunday starts an hour earlier
        third_sunday = next_sunday + timedelta(days=14)
        override = lifecycle.create_override(
            sunday.pk,
            third_sunday,
            {
                'name': "Sunday Service (Early)",
                'start': tz.localize(datetime.combine(third_sunday, time(9, 0))),
            },
        )
        self.stdout.write(f'Created override for {third_sunday}: {override.name} at {override.start}')

        # 4. Cancellation of the fifth Sunday
        fifth_sunday = next_sunday + timedelta(days=28)
        lifecycle.create_cancellation(sunday.pk, fifth_sunday, reason="Church retreat")
        self.stdout.write(f'Cancelled Sunday Service on {fifth_sunday}')

        # 5. Vocalist away on the second Sunday
        second_sunday = next_sunday + timedelta(days=7)
        UnavailabilityPeriod.objects.create(
            user=vocalist,
            start_date=second_sunday,
            end_date=second_sunday,
            reason="Travelling",
        )
        self.stdout.write(f'Marked {vocalist.username} unavailable on {second_sunday}')

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully seeded {church.name} with {church.series.count()} series '
                f'and {sunday.exceptions.count()} exceptions'
            )
        )
