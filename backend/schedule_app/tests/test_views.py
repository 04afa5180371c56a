"""
Test cases for schedule API views.
Tests CRUD operations, occurrence-level operations and schedule reads.
"""

import json
from datetime import date, datetime, timedelta

import pytz
from django.contrib.auth import get_user_model
from django.test import Client, TestCase
from django.urls import reverse
from django.utils.dateparse import parse_datetime

from schedule_app.models import (
    Church,
    Event,
    EventException,
    EventSeries,
    EventTemplate,
    OccurrenceKind,
    Service,
    ServiceTemplate,
)
from schedule_app.services import lifecycle


class ScheduleAPITestCase(TestCase):

    def setUp(self):
        self.client = Client()
        self.tz = pytz.timezone('Europe/Rome')
        self.church = Church.objects.create(name="St. Mark's", timezone='Europe/Rome')
        self.anchor = self.tz.localize(datetime(2025, 1, 5, 10, 0))
        self.series = EventSeries.objects.create(
            church=self.church,
            name="Sunday Service",
            recurring_weekday=6,
            anchor_start=self.anchor,
            anchor_end=self.anchor + timedelta(minutes=90),
        )

    def post_json(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def occurrences(self, **params):
        params.setdefault('church', self.church.id)
        params.setdefault('start', '2025-01-05')
        params.setdefault('end', '2025-01-19')
        return self.client.get(reverse('occurrences'), params)


class EventSeriesViewSetTest(ScheduleAPITestCase):
    """Test EventSeries CRUD operations"""

    def test_list_series(self):
        response = self.client.get('/api/series/', {'church': self.church.id})
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['name'], "Sunday Service")
        self.assertEqual(data[0]['recurring_weekday'], 6)
        self.assertEqual(data[0]['exceptions'], [])

    def test_create_series(self):
        response = self.post_json('/api/series/', {
            'church': self.church.id,
            'name': 'Wednesday Prayer',
            'recurring_weekday': 2,
            'anchor_start': '2025-01-08T19:00:00+01:00',
            'anchor_end': '2025-01-08T20:00:00+01:00',
        })

        self.assertEqual(response.status_code, 201)
        created = EventSeries.objects.get(name='Wednesday Prayer')
        self.assertEqual(created.duration, timedelta(hours=1))

    def test_create_series_validation(self):
        # Recurring without a weekday
        response = self.post_json('/api/series/', {
            'church': self.church.id,
            'name': 'No Weekday',
            'anchor_start': '2025-01-08T19:00:00+01:00',
            'anchor_end': '2025-01-08T20:00:00+01:00',
        })
        self.assertEqual(response.status_code, 400)

        # End before start
        response = self.post_json('/api/series/', {
            'church': self.church.id,
            'name': 'Backwards',
            'recurring_weekday': 2,
            'anchor_start': '2025-01-08T19:00:00+01:00',
            'anchor_end': '2025-01-08T18:00:00+01:00',
        })
        self.assertEqual(response.status_code, 400)

    def test_delete_series_terminates(self):
        """DELETE keeps the row and stops future occurrences"""
        response = self.client.delete(f'/api/series/{self.series.id}/')

        self.assertEqual(response.status_code, 204)
        self.series.refresh_from_db()
        self.assertTrue(self.series.is_terminated)

    def test_terminate(self):
        response = self.client.post(f'/api/series/{self.series.id}/terminate/')

        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.json()['terminated_at'])

        # Idempotent
        first = response.json()['terminated_at']
        response = self.client.post(f'/api/series/{self.series.id}/terminate/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['terminated_at'], first)

    def test_unknown_series(self):
        response = self.client.post('/api/series/9999/terminate/')
        self.assertEqual(response.status_code, 404)


class OccurrenceOperationsTest(ScheduleAPITestCase):
    """Test overrides and cancellations through /api/series/{id}/occurrence/"""

    def test_create_override(self):
        response = self.post_json(f'/api/series/{self.series.id}/occurrence/', {
            'occurrence_date': '2025-01-12',
            'name': 'Easter Special',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['kind'], 'override')
        self.assertEqual(data['name'], 'Easter Special')
        self.assertEqual(data['key'], f'series:{self.series.id}@2025-01-12')

        exception = EventException.objects.get(series=self.series, occurrence_date=date(2025, 1, 12))
        self.assertEqual(exception.event.name, 'Easter Special')

    def test_override_with_naive_start(self):
        """Naive times are read in the church timezone"""
        response = self.post_json(f'/api/series/{self.series.id}/occurrence/', {
            'occurrence_date': '2025-01-12',
            'start': '2025-01-12T09:00:00',
        })

        self.assertEqual(response.status_code, 201)
        event = Event.objects.get(kind=OccurrenceKind.OVERRIDE)
        self.assertEqual(event.start, self.tz.localize(datetime(2025, 1, 12, 9, 0)))
        self.assertEqual(event.end - event.start, timedelta(minutes=90))

    def test_second_exception_conflicts(self):
        self.post_json(f'/api/series/{self.series.id}/occurrence/', {'occurrence_date': '2025-01-12'})

        response = self.post_json(f'/api/series/{self.series.id}/occurrence/', {'occurrence_date': '2025-01-12'})

        self.assertEqual(response.status_code, 409)
        data = response.json()
        self.assertEqual(data['code'], 'conflict')
        existing = EventException.objects.get(series=self.series, occurrence_date=date(2025, 1, 12))
        self.assertEqual(data['existing_exception_id'], existing.id)

    def test_cancel_occurrence(self):
        response = self.client.delete(
            f'/api/series/{self.series.id}/occurrence/?occurrence_date=2025-01-05&reason=Snow'
        )

        self.assertEqual(response.status_code, 201)
        exception = EventException.objects.get(series=self.series, occurrence_date=date(2025, 1, 5))
        self.assertTrue(exception.is_cancellation)
        self.assertEqual(exception.reason, 'Snow')

    def test_occurrence_validation(self):
        # Missing occurrence_date
        response = self.post_json(f'/api/series/{self.series.id}/occurrence/', {'name': 'No Date'})
        self.assertEqual(response.status_code, 400)

        # Not a Sunday
        response = self.post_json(f'/api/series/{self.series.id}/occurrence/', {'occurrence_date': '2025-01-13'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'invalid_argument')

        # Invalid datetime format
        response = self.post_json(f'/api/series/{self.series.id}/occurrence/', {
            'occurrence_date': '2025-01-12',
            'start': 'invalid-datetime',
        })
        self.assertEqual(response.status_code, 400)

        # Missing occurrence_date on cancel
        response = self.client.delete(f'/api/series/{self.series.id}/occurrence/')
        self.assertEqual(response.status_code, 400)

    def test_override_after_termination(self):
        lifecycle.terminate_series(self.series.id, now=self.tz.localize(datetime(2025, 1, 8, 12, 0)))

        response = self.post_json(f'/api/series/{self.series.id}/occurrence/', {'occurrence_date': '2025-01-12'})

        self.assertEqual(response.status_code, 412)
        self.assertEqual(response.json()['code'], 'precondition_failed')


class EventViewSetTest(ScheduleAPITestCase):
    """Test standalone events"""

    def test_create_event(self):
        response = self.post_json('/api/events/', {
            'church': self.church.id,
            'name': 'Prayer Meeting',
            'start': '2025-01-08T19:00:00+01:00',
            'end': '2025-01-08T20:00:00+01:00',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['kind'], 'standalone')
        self.assertEqual(data['occurrence_date'], '2025-01-08')

    def test_overlapping_event(self):
        payload = {
            'church': self.church.id,
            'name': 'Prayer Meeting',
            'start': '2025-01-08T19:00:00+01:00',
            'end': '2025-01-08T20:00:00+01:00',
        }
        first = self.post_json('/api/events/', payload).json()

        response = self.post_json('/api/events/', dict(payload, name='Choir'))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['existing_event_id'], first['id'])

    def test_event_end_before_start(self):
        response = self.post_json('/api/events/', {
            'church': self.church.id,
            'name': 'Backwards',
            'start': '2025-01-08T19:00:00+01:00',
            'end': '2025-01-08T18:00:00+01:00',
        })
        self.assertEqual(response.status_code, 400)

    def test_create_event_from_template(self):
        worship = ServiceTemplate.objects.create(church=self.church, name='Worship', positions=['Vocalist'])
        template = EventTemplate.objects.create(name='Concert')
        template.service_templates.add(worship)

        response = self.post_json('/api/events/', {
            'church': self.church.id,
            'name': 'Christmas Concert',
            'start': '2025-01-08T19:00:00+01:00',
            'end': '2025-01-08T21:00:00+01:00',
            'template': template.id,
        })

        self.assertEqual(response.status_code, 201)
        services = Service.objects.filter(event_id=response.json()['id'])
        self.assertEqual([s.positions for s in services], [['Vocalist']])

    def test_update_override_event(self):
        occurrence = lifecycle.create_override(self.series.id, date(2025, 1, 12))

        response = self.client.patch(
            f'/api/events/{occurrence.event_id}/',
            data=json.dumps({'name': 'Easter Special'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Event.objects.get(pk=occurrence.event_id).name, 'Easter Special')

    def test_override_event_cannot_be_deleted(self):
        occurrence = lifecycle.create_override(self.series.id, date(2025, 1, 12))

        response = self.client.delete(f'/api/events/{occurrence.event_id}/')

        self.assertEqual(response.status_code, 412)
        self.assertTrue(Event.objects.filter(pk=occurrence.event_id).exists())


class OccurrencesViewTest(ScheduleAPITestCase):
    """Test GET /api/occurrences/"""

    def test_get_occurrences(self):
        response = self.occurrences()

        self.assertEqual(response.status_code, 200)
        occurrences = response.json()['occurrences']
        self.assertEqual(len(occurrences), 3)
        self.assertEqual(
            [occ['occurrence_date'] for occ in occurrences],
            ['2025-01-05', '2025-01-12', '2025-01-19'],
        )
        start_times = [parse_datetime(occ['start']) for occ in occurrences]
        self.assertEqual(start_times, sorted(start_times))

    def test_occurrences_with_exceptions(self):
        lifecycle.create_override(self.series.id, date(2025, 1, 12), {'name': 'Easter Special'})
        lifecycle.create_cancellation(self.series.id, date(2025, 1, 5))

        occurrences = self.occurrences().json()['occurrences']

        self.assertEqual([occ['kind'] for occ in occurrences], ['override', 'virtual'])
        self.assertEqual(occurrences[0]['name'], 'Easter Special')

        occurrences = self.occurrences(include_cancelled='true').json()['occurrences']
        self.assertEqual([occ['kind'] for occ in occurrences], ['cancellation', 'override', 'virtual'])

    def test_search(self):
        lifecycle.create_override(self.series.id, date(2025, 1, 12), {'name': 'Easter Special'})

        occurrences = self.occurrences(q='easter').json()['occurrences']

        self.assertEqual(len(occurrences), 1)
        self.assertEqual(occurrences[0]['occurrence_date'], '2025-01-12')

    def test_get_occurrences_with_timezone(self):
        occurrences = self.occurrences(tz='Europe/London').json()['occurrences']

        for occ in occurrences:
            self.assertIn('local_start', occ)
            self.assertEqual(parse_datetime(occ['local_start']).hour, 9)

    def test_non_recurring_series(self):
        anchor = self.tz.localize(datetime(2025, 1, 8, 19, 0))
        EventSeries.objects.create(
            church=self.church,
            name='Prayer Night',
            is_recurring=False,
            anchor_start=anchor,
            anchor_end=anchor + timedelta(hours=1),
        )

        occurrences = self.occurrences().json()['occurrences']

        self.assertEqual(len(occurrences), 4)
        self.assertEqual(occurrences[1]['name'], 'Prayer Night')
        self.assertEqual(occurrences[1]['kind'], 'standalone')

    def test_occurrences_validation(self):
        # Missing church
        response = self.client.get(reverse('occurrences'), {'start': '2025-01-05', 'end': '2025-01-19'})
        self.assertEqual(response.status_code, 400)

        # Unknown church
        response = self.occurrences(church=9999)
        self.assertEqual(response.status_code, 404)

        # Invalid dates
        response = self.occurrences(start='invalid')
        self.assertEqual(response.status_code, 400)

        # Inverted window
        response = self.occurrences(start='2025-01-19', end='2025-01-05')
        self.assertEqual(response.status_code, 400)

        # Invalid timezone
        response = self.occurrences(tz='Invalid/Timezone')
        self.assertEqual(response.status_code, 400)


class IssuesViewTest(ScheduleAPITestCase):
    """Test /api/issues/, /api/summary/ and /api/occurrence-services/"""

    def setUp(self):
        super().setUp()
        self.volunteer = get_user_model().objects.create(username='u1')
        Service.objects.create(
            church=self.church,
            series=self.series,
            name='Worship',
            positions=['Vocalist', 'Drummer'],
            assignments={'Vocalist': str(self.volunteer.pk)},
        )
        self.params = {'church': self.church.id, 'start': '2025-01-05', 'end': '2025-01-19'}

    def test_issues(self):
        response = self.client.get(reverse('issues'), self.params)

        self.assertEqual(response.status_code, 200)
        issues = response.json()['issues']
        self.assertEqual(len(issues), 6)
        self.assertEqual(
            [(issue['kind'], issue['position']) for issue in issues[:2]],
            [('leader_missing', None), ('position_unfilled', 'Drummer')],
        )
        self.assertEqual(issues[0]['service_name'], 'Worship')
        self.assertEqual(issues[0]['occurrence']['occurrence_date'], '2025-01-05')

    def test_summary(self):
        response = self.client.get(reverse('summary'), self.params)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['upcoming_events'], 3)
        self.assertEqual(data['issues'], 6)
        self.assertEqual(data['window_start'], '2025-01-05')

    def test_cancelled_occurrence_services(self):
        """Services pinned to a cancelled date are still returned"""
        Service.objects.create(
            church=self.church,
            series=self.series,
            occurrence_date=date(2025, 1, 5),
            name='Baptism',
            positions=['Usher'],
        )
        lifecycle.create_cancellation(self.series.id, date(2025, 1, 5))

        response = self.client.get(reverse('occurrence-services'), {
            'church': self.church.id,
            'series': self.series.id,
            'date': '2025-01-05',
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual([s['name'] for s in response.json()['services']], ['Baptism'])

    def test_occurrence_services_validation(self):
        response = self.client.get(reverse('occurrence-services'), {'church': self.church.id, 'date': '2025-01-05'})
        self.assertEqual(response.status_code, 400)

        response = self.client.get(reverse('occurrence-services'), {'church': self.church.id, 'series': 'abc', 'date': '2025-01-05'})
        self.assertEqual(response.status_code, 400)


class TemplateViewSetTest(ScheduleAPITestCase):

    def test_create_templates(self):
        response = self.post_json('/api/service-templates/', {
            'church': self.church.id,
            'name': 'Worship',
            'positions': ['Vocalist', 'Drummer'],
        })
        self.assertEqual(response.status_code, 201)
        service_template_id = response.json()['id']

        response = self.post_json('/api/event-templates/', {
            'name': 'Concert',
            'service_templates': [service_template_id],
        })

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['service_templates'], [service_template_id])

    def test_service_template_positions_validation(self):
        response = self.post_json('/api/service-templates/', {
            'church': self.church.id,
            'name': 'Worship',
            'positions': 'Vocalist',
        })
        self.assertEqual(response.status_code, 400)
