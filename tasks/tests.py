from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from .exceptions import InvalidPattern, NoOccurrenceFound, StoreError
from .models import Task
from .recurrence import RecurrencePattern, next_occurrence, occurrences
from .services import RecurringTaskService

# Monday
MONDAY = datetime(2025, 1, 20, 9, 0, tzinfo=dt_timezone.utc)
MWF = {'type': 'weekly', 'interval': 1, 'days': ['monday', 'wednesday', 'friday']}


class RecurrenceEvaluatorTest(SimpleTestCase):
    def test_daily_adds_interval_days(self):
        result = next_occurrence(MONDAY, {'type': 'daily', 'interval': 2})
        self.assertEqual(result, MONDAY + timedelta(days=2))

    def test_weekly_without_days_adds_weeks(self):
        result = next_occurrence(MONDAY, {'type': 'weekly', 'interval': 2})
        self.assertEqual(result, MONDAY + timedelta(days=14))

    def test_weekly_with_days_scans_to_next_matching_day(self):
        self.assertEqual(next_occurrence(MONDAY, MWF), datetime(2025, 1, 22, 9, 0, tzinfo=dt_timezone.utc))
        friday = datetime(2025, 1, 24, 9, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(next_occurrence(friday, MWF), datetime(2025, 1, 27, 9, 0, tzinfo=dt_timezone.utc))

    def test_custom_single_day_lands_a_week_later(self):
        result = next_occurrence(MONDAY, {'type': 'custom', 'days': ['Mon']})
        self.assertEqual(result, MONDAY + timedelta(days=7))

    def test_empty_day_set_fails_explicitly(self):
        with self.assertRaises(NoOccurrenceFound):
            next_occurrence(MONDAY, {'type': 'custom', 'days': []})
        with self.assertRaises(NoOccurrenceFound):
            next_occurrence(MONDAY, {'type': 'weekly', 'days': []})
        # custom without any days behaves like an empty set
        with self.assertRaises(InvalidPattern):
            next_occurrence(MONDAY, {'type': 'custom'})

    def test_monthly_clamps_to_last_day(self):
        jan_31 = datetime(2025, 1, 31, 8, 30, tzinfo=dt_timezone.utc)
        self.assertEqual(
            next_occurrence(jan_31, {'type': 'monthly', 'interval': 1}),
            datetime(2025, 2, 28, 8, 30, tzinfo=dt_timezone.utc)
        )

    def test_monthly_pins_day_of_month(self):
        march_15 = datetime(2025, 3, 15, tzinfo=dt_timezone.utc)
        self.assertEqual(
            next_occurrence(march_15, {'type': 'monthly', 'interval': 1, 'day_of_month': 31}),
            datetime(2025, 4, 30, tzinfo=dt_timezone.utc)
        )
        self.assertEqual(
            next_occurrence(march_15, {'type': 'monthly', 'interval': 11, 'day_of_month': 2}),
            datetime(2026, 2, 2, tzinfo=dt_timezone.utc)
        )

    def test_yearly_handles_leap_day(self):
        leap_day = datetime(2024, 2, 29, tzinfo=dt_timezone.utc)
        self.assertEqual(
            next_occurrence(leap_day, {'type': 'yearly', 'interval': 1}),
            datetime(2025, 2, 28, tzinfo=dt_timezone.utc)
        )

    def test_invalid_patterns_raise(self):
        for pattern in [
            {'type': 'hourly'},
            {},
            {'type': 'daily', 'interval': 0},
            {'type': 'daily', 'interval': '2'},
            {'type': 'weekly', 'days': ['funday']},
            {'type': 'monthly', 'day_of_month': 32},
            None,
        ]:
            with self.subTest(pattern=pattern):
                with self.assertRaises(InvalidPattern):
                    next_occurrence(MONDAY, pattern)

    def test_legacy_weekday_indices_are_sunday_based(self):
        pattern = RecurrencePattern.from_dict({'type': 'weekly', 'days': [1, 3, 5]})
        self.assertEqual(pattern.days, frozenset({'monday', 'wednesday', 'friday'}))
        self.assertEqual(pattern.to_dict()['days'], ['monday', 'wednesday', 'friday'])

    def test_repeated_evaluation_is_strictly_increasing(self):
        patterns = [
            {'type': 'daily', 'interval': 1},
            {'type': 'weekly', 'interval': 1},
            MWF,
            {'type': 'custom', 'days': ['sunday']},
            {'type': 'monthly', 'interval': 1},
            {'type': 'monthly', 'interval': 1, 'day_of_month': 31},
            {'type': 'yearly', 'interval': 1},
        ]
        for pattern in patterns:
            with self.subTest(pattern=pattern):
                dates = list(occurrences(MONDAY, pattern, limit=30))
                self.assertEqual(len(dates), 30)
                self.assertTrue(all(a < b for a, b in zip([MONDAY] + dates, dates)))

    def test_evaluation_is_deterministic(self):
        self.assertEqual(next_occurrence(MONDAY, MWF), next_occurrence(MONDAY, MWF))

    def test_occurrences_stop_at_end_date(self):
        until = MONDAY + timedelta(days=3)
        dates = list(occurrences(MONDAY, {'type': 'daily'}, until=until, limit=10))
        self.assertEqual(dates, [MONDAY + timedelta(days=i) for i in (1, 2, 3)])


class TaskModelTest(TestCase):
    def test_task_defaults(self):
        task = Task.objects.create(title='Write report')
        self.assertEqual(task.status, Task.STATUS_PENDING)
        self.assertEqual(task.priority, 1)
        self.assertTrue(task.notifications_enabled)
        self.assertIsNone(task.due_date)
        self.assertIsNone(task.pattern)
        self.assertEqual(str(task), 'Write report')

    def test_ordering_puts_undated_tasks_last(self):
        undated = Task.objects.create(title='Someday')
        later = Task.objects.create(title='Later', due_date=MONDAY + timedelta(days=1))
        sooner = Task.objects.create(title='Sooner', due_date=MONDAY)
        self.assertEqual(list(Task.objects.all()), [sooner, later, undated])

    def test_clean_rejects_recurring_without_pattern(self):
        from django.core.exceptions import ValidationError
        with self.assertRaises(ValidationError):
            Task(title='Gym', is_recurring=True).clean()
        with self.assertRaises(ValidationError):
            Task(title='Gym', recurrence_pattern={'type': 'daily'}).clean()
        with self.assertRaises(ValidationError):
            Task(title='Gym', is_recurring=True, recurrence_pattern={'type': 'hourly'}).clean()


class RecurringTaskServiceTest(TestCase):
    def setUp(self):
        self.template = Task.objects.create(
            title='Gym',
            description='Leg day',
            priority=2,
            due_date=MONDAY - timedelta(days=7),
            is_recurring=True,
            recurrence_pattern=MWF,
            next_due_date=MONDAY,
        )

    def test_advance_creates_instance_and_moves_template(self):
        instance = RecurringTaskService.advance(self.template)

        self.assertIsNotNone(instance)
        self.assertEqual(instance.due_date, MONDAY)
        self.assertEqual(instance.parent_task_id, self.template.id)
        self.assertEqual(instance.status, Task.STATUS_PENDING)
        self.assertEqual(instance.title, 'Gym')
        self.assertEqual(instance.description, 'Leg day')
        self.assertEqual(instance.priority, 2)
        self.assertEqual(instance.next_due_date, datetime(2025, 1, 22, 9, 0, tzinfo=dt_timezone.utc))

        self.template.refresh_from_db()
        self.assertEqual(self.template.next_due_date, datetime(2025, 1, 22, 9, 0, tzinfo=dt_timezone.utc))

    def test_advance_twice_with_same_state_creates_one_instance(self):
        first = Task.objects.get(pk=self.template.pk)
        second = Task.objects.get(pk=self.template.pk)

        self.assertIsNotNone(RecurringTaskService.advance(first))
        self.assertIsNone(RecurringTaskService.advance(second))
        self.assertEqual(Task.objects.filter(parent_task=self.template, due_date=MONDAY).count(), 1)

    def test_end_date_before_following_occurrence_stops_chain(self):
        self.template.recurrence_end_date = MONDAY + timedelta(days=1)
        self.template.save()

        self.assertIsNone(RecurringTaskService.advance(self.template))
        self.assertFalse(Task.objects.filter(parent_task=self.template).exists())
        self.template.refresh_from_db()
        self.assertEqual(self.template.next_due_date, MONDAY)

    def test_completing_instance_continues_lineage(self):
        instance = RecurringTaskService.advance(self.template)
        successor = RecurringTaskService.complete(instance)

        instance.refresh_from_db()
        self.assertEqual(instance.status, Task.STATUS_COMPLETED)
        self.assertEqual(successor.parent_task_id, self.template.id)
        self.assertEqual(successor.due_date, datetime(2025, 1, 22, 9, 0, tzinfo=dt_timezone.utc))

        self.template.refresh_from_db()
        self.assertEqual(self.template.next_due_date, datetime(2025, 1, 24, 9, 0, tzinfo=dt_timezone.utc))

        # The time-based run for the same slot does not duplicate it
        self.assertIsNone(RecurringTaskService.advance(Task.objects.get(pk=instance.pk)))

    def test_completing_one_off_task_creates_nothing(self):
        task = Task.objects.create(title='Call bank', due_date=MONDAY)
        self.assertIsNone(RecurringTaskService.complete(task))
        task.refresh_from_db()
        self.assertEqual(task.status, Task.STATUS_COMPLETED)

    def test_advance_due_walks_only_due_templates(self):
        Task.objects.create(
            title='Later',
            is_recurring=True,
            recurrence_pattern={'type': 'daily'},
            next_due_date=MONDAY + timedelta(days=5),
        )
        created = RecurringTaskService.advance_due(now=MONDAY + timedelta(days=1))
        self.assertEqual([task.title for task in created], ['Gym'])

    def test_advance_due_skips_invalid_pattern(self):
        broken = Task.objects.create(
            title='Broken',
            is_recurring=True,
            recurrence_pattern={'type': 'fortnightly'},
            next_due_date=MONDAY,
        )
        created = RecurringTaskService.advance_due(now=MONDAY + timedelta(days=1))
        self.assertEqual(len(created), 1)
        self.assertFalse(Task.objects.filter(parent_task=broken).exists())

    def test_store_failure_leaves_template_untouched(self):
        with mock.patch.object(Task.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertRaises(StoreError):
                RecurringTaskService.advance(self.template)

        self.template.refresh_from_db()
        self.assertEqual(self.template.next_due_date, MONDAY)
        self.assertFalse(Task.objects.filter(parent_task=self.template).exists())

    def test_prepare_new_seeds_next_due_date(self):
        task = Task(title='Standup', due_date=MONDAY, is_recurring=True, recurrence_pattern={'type': 'daily'})
        RecurringTaskService.prepare_new(task)
        self.assertEqual(task.next_due_date, MONDAY + timedelta(days=1))

    def test_prepare_new_pins_monthly_day_to_due_date(self):
        jan_31 = datetime(2025, 1, 31, 9, 0, tzinfo=dt_timezone.utc)
        task = Task(title='Rent', due_date=jan_31, is_recurring=True, recurrence_pattern={'type': 'monthly'})
        RecurringTaskService.prepare_new(task)

        self.assertEqual(task.recurrence_pattern, {'type': 'monthly', 'interval': 1, 'day_of_month': 31})
        self.assertEqual(task.next_due_date, datetime(2025, 2, 28, 9, 0, tzinfo=dt_timezone.utc))
        self.assertEqual(
            next_occurrence(task.next_due_date, task.recurrence_pattern),
            datetime(2025, 3, 31, 9, 0, tzinfo=dt_timezone.utc)
        )

    def test_reschedule_restarts_from_due_date(self):
        self.template.due_date = MONDAY + timedelta(days=1)
        RecurringTaskService.reschedule(self.template)
        self.assertEqual(self.template.next_due_date, datetime(2025, 1, 22, 9, 0, tzinfo=dt_timezone.utc))

    def test_deleting_template_turns_instances_into_one_off_tasks(self):
        instances = [RecurringTaskService.advance(self.template) for _ in range(3)]
        self.assertEqual(
            [instance.due_date.day for instance in instances],
            [20, 22, 24]
        )

        self.template.delete()

        self.assertEqual(RecurringTaskService.advance_due(now=MONDAY + timedelta(days=30)), [])
        for instance in Task.objects.filter(pk__in=[i.pk for i in instances]):
            self.assertIsNone(instance.parent_task_id)
            self.assertFalse(instance.is_recurring)
            self.assertIsNone(instance.recurrence_pattern)
            self.assertIsNone(instance.next_due_date)
        self.assertEqual(Task.objects.count(), 3)

    def test_deleting_instance_keeps_template_recurring(self):
        instance = RecurringTaskService.advance(self.template)
        instance.delete()

        self.template.refresh_from_db()
        self.assertTrue(self.template.is_recurring)
        self.assertEqual(self.template.next_due_date, datetime(2025, 1, 22, 9, 0, tzinfo=dt_timezone.utc))

    def test_preview_lists_upcoming_occurrences(self):
        upcoming = RecurringTaskService.preview(self.template, count=3)
        self.assertEqual(upcoming, [
            MONDAY,
            datetime(2025, 1, 22, 9, 0, tzinfo=dt_timezone.utc),
            datetime(2025, 1, 24, 9, 0, tzinfo=dt_timezone.utc),
        ])


class TaskAPITest(APITestCase):
    def test_create_recurring_task_seeds_next_due_date(self):
        data = {
            'title': 'Water plants',
            'due_date': '2025-01-20T09:00:00Z',
            'is_recurring': True,
            'recurrence_pattern': {'type': 'weekly', 'days': ['Mon', 'thu']},
        }
        response = self.client.post('/api/tasks/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        task = Task.objects.get(pk=response.data['id'])
        self.assertEqual(task.next_due_date, datetime(2025, 1, 23, 9, 0, tzinfo=dt_timezone.utc))
        self.assertEqual(task.recurrence_pattern, {'type': 'weekly', 'interval': 1, 'days': ['monday', 'thursday']})

    def test_create_with_invalid_pattern_fails(self):
        data = {'title': 'Nope', 'is_recurring': True, 'recurrence_pattern': {'type': 'hourly'}}
        response = self.client.post('/api/tasks/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('recurrence_pattern', response.data)

    def test_pattern_requires_recurring_flag(self):
        data = {'title': 'Nope', 'recurrence_pattern': {'type': 'daily'}}
        response = self.client.post('/api/tasks/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_toggle_completes_recurring_task_and_returns_next_instance(self):
        task = Task.objects.create(
            title='Standup',
            due_date=MONDAY,
            is_recurring=True,
            recurrence_pattern={'type': 'daily'},
            next_due_date=MONDAY + timedelta(days=1),
        )
        response = self.client.post(f'/api/tasks/{task.id}/toggle/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['task']['status'], 'completed')
        self.assertEqual(response.data['next_instance']['parent_task'], task.id)

        response = self.client.post(f'/api/tasks/{task.id}/toggle/')
        self.assertEqual(response.data['task']['status'], 'pending')
        self.assertIsNone(response.data['next_instance'])

    def test_patch_to_completed_advances_chain(self):
        task = Task.objects.create(
            title='Standup',
            due_date=MONDAY,
            is_recurring=True,
            recurrence_pattern={'type': 'daily'},
            next_due_date=MONDAY + timedelta(days=1),
        )
        response = self.client.patch(f'/api/tasks/{task.id}/', {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(Task.objects.filter(parent_task=task, due_date=MONDAY + timedelta(days=1)).exists())

    def test_patch_to_recurring_starts_chain(self):
        task = Task.objects.create(title='Standup', due_date=MONDAY)
        data = {'is_recurring': True, 'recurrence_pattern': {'type': 'daily'}}
        response = self.client.patch(f'/api/tasks/{task.id}/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        task.refresh_from_db()
        self.assertEqual(task.next_due_date, MONDAY + timedelta(days=1))

        created = RecurringTaskService.advance_due(now=MONDAY + timedelta(days=5))
        self.assertEqual([(t.parent_task_id, t.due_date) for t in created], [(task.id, MONDAY + timedelta(days=1))])

    def test_patch_due_date_recomputes_next_due_date(self):
        task = Task.objects.create(
            title='Standup',
            due_date=MONDAY,
            is_recurring=True,
            recurrence_pattern={'type': 'daily', 'interval': 1},
            next_due_date=MONDAY + timedelta(days=1),
        )
        data = {'due_date': '2025-01-27T09:00:00Z'}
        response = self.client.patch(f'/api/tasks/{task.id}/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        task.refresh_from_db()
        self.assertEqual(task.next_due_date, datetime(2025, 1, 28, 9, 0, tzinfo=dt_timezone.utc))

    def test_patch_to_one_off_clears_next_due_date(self):
        task = Task.objects.create(
            title='Standup',
            due_date=MONDAY,
            is_recurring=True,
            recurrence_pattern={'type': 'daily', 'interval': 1},
            next_due_date=MONDAY + timedelta(days=1),
        )
        data = {'is_recurring': False, 'recurrence_pattern': None}
        response = self.client.patch(f'/api/tasks/{task.id}/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        task.refresh_from_db()
        self.assertIsNone(task.next_due_date)
        self.assertEqual(RecurringTaskService.advance_due(now=MONDAY + timedelta(days=5)), [])

    def test_delete_template_through_api_detaches_instances(self):
        task = Task.objects.create(
            title='Standup',
            due_date=MONDAY,
            is_recurring=True,
            recurrence_pattern={'type': 'daily'},
            next_due_date=MONDAY + timedelta(days=1),
        )
        instance = RecurringTaskService.advance(task)

        response = self.client.delete(f'/api/tasks/{task.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

        instance.refresh_from_db()
        self.assertFalse(instance.is_recurring)
        self.assertEqual(RecurringTaskService.advance_due(now=MONDAY + timedelta(days=30)), [])

    def test_toggle_notifications(self):
        task = Task.objects.create(title='Quiet', due_date=MONDAY)
        response = self.client.post(f'/api/tasks/{task.id}/toggle-notifications/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['notifications_enabled'])

    def test_list_filters_by_view_and_status(self):
        Task.objects.create(title='Overdue', due_date=datetime(2000, 1, 1, tzinfo=dt_timezone.utc))
        Task.objects.create(title='Future', due_date=datetime(2100, 1, 1, tzinfo=dt_timezone.utc))
        Task.objects.create(
            title='Done', status='completed', due_date=datetime(2000, 1, 1, tzinfo=dt_timezone.utc)
        )

        response = self.client.get('/api/tasks/', {'view': 'overdue'})
        self.assertEqual([t['title'] for t in response.data], ['Overdue'])

        response = self.client.get('/api/tasks/', {'status': 'completed'})
        self.assertEqual([t['title'] for t in response.data], ['Done'])

        response = self.client.get('/api/tasks/', {'view': 'someday'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_occurrence_preview(self):
        task = Task.objects.create(
            title='Rent',
            due_date=datetime(2025, 1, 31, tzinfo=dt_timezone.utc),
            is_recurring=True,
            recurrence_pattern={'type': 'monthly', 'day_of_month': 31},
            next_due_date=datetime(2025, 2, 28, tzinfo=dt_timezone.utc),
        )
        response = self.client.get(f'/api/tasks/{task.id}/occurrences/', {'count': 3})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['occurrences'], [
            '2025-02-28T00:00:00Z', '2025-03-31T00:00:00Z', '2025-04-30T00:00:00Z'
        ])

    def test_generate_recurring_tasks(self):
        Task.objects.create(
            title='Standup',
            is_recurring=True,
            recurrence_pattern={'type': 'daily'},
            next_due_date=datetime(2000, 1, 1, tzinfo=dt_timezone.utc),
        )
        response = self.client.post('/api/tasks/recurring/generate/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['due_date'], '2000-01-01T00:00:00Z')
