from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.core import mail
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from tasks.exceptions import StoreError
from tasks.models import Task
from .channels import EmailChannel, SmsChannel
from .conf import ReminderSettings, resolve_settings
from .dispatcher import NotificationDispatcher, format_due_text, normalize_phone, succeeded_channels
from .exceptions import ChannelError, NoContactConfigured
from .ledger import NotificationLedger
from .models import NotificationRecord, NotificationSettings
from .scheduler import compute_due
from .services import ReminderService
from .tasks import check_and_send_reminders

NOW = datetime(2025, 1, 20, 12, 0, tzinfo=dt_timezone.utc)

SETTINGS = ReminderSettings(
    email='me@example.com',
    phone='+15550001111',
    reminder_times=(1440, 60, 0),
)


class FakeLedger:
    def __init__(self, sent=()):
        self.sent = set(sent)
        self.lookups = 0

    def exists(self, task_id, reminder_minutes):
        self.lookups += 1
        return (task_id, reminder_minutes) in self.sent


class FakeChannel:
    def __init__(self, name, fail=False):
        self.name = name
        self.fail = fail
        self.calls = []

    def send(self, *args, **kwargs):
        self.calls.append(args)
        if self.fail:
            raise ChannelError(self.name, 'gateway down')
        return True


def make_task(task_id, minutes, **kwargs):
    kwargs.setdefault('title', f'Task {task_id}')
    return Task(id=task_id, due_date=NOW + timedelta(minutes=minutes), **kwargs)


class ComputeDueTest(SimpleTestCase):
    def test_fires_inside_window(self):
        due = compute_due(NOW, [make_task(1, 70)], SETTINGS, FakeLedger())
        self.assertEqual([(d.task.id, d.reminder_minutes) for d in due], [(1, 60)])

    def test_exact_lead_time_fires(self):
        for minutes in (1440, 60, 0):
            with self.subTest(minutes=minutes):
                due = compute_due(NOW, [make_task(1, minutes)], SETTINGS, FakeLedger(), window_minutes=0)
                self.assertEqual(due[0].reminder_minutes, minutes)

    def test_outside_window_does_not_fire(self):
        due = compute_due(NOW, [make_task(1, 120), make_task(2, -20)], SETTINGS, FakeLedger())
        self.assertEqual(due, [])

    def test_at_most_one_reminder_per_task(self):
        settings = ReminderSettings(email='me@example.com', reminder_times=(30, 20, 10))
        due = compute_due(NOW, [make_task(1, 20)], settings, FakeLedger())
        self.assertEqual([(d.task.id, d.reminder_minutes) for d in due], [(1, 30)])

    def test_ledger_entry_skips_lead_time(self):
        due = compute_due(NOW, [make_task(1, 60)], SETTINGS, FakeLedger(sent={(1, 60)}))
        self.assertEqual(due, [])

    def test_ignores_completed_undated_and_muted_tasks(self):
        tasks = [
            make_task(1, 60, status=Task.STATUS_COMPLETED),
            make_task(2, 60, notifications_enabled=False),
            Task(id=3, title='No deadline'),
            make_task(4, 60),
        ]
        due = compute_due(NOW, tasks, SETTINGS, FakeLedger())
        self.assertEqual([d.task.id for d in due], [4])

    def test_output_follows_input_order(self):
        tasks = [make_task(3, 0), make_task(1, 1440), make_task(2, 60)]
        due = compute_due(NOW, tasks, SETTINGS, FakeLedger())
        self.assertEqual([d.task.id for d in due], [3, 1, 2])

    def test_bypass_ignores_window_and_ledger(self):
        ledger = FakeLedger(sent={(1, 60), (2, 0)})
        tasks = [make_task(1, 100), make_task(2, 5000), make_task(3, -30)]

        first = compute_due(NOW, tasks, SETTINGS, ledger, bypass=True)
        second = compute_due(NOW, tasks, SETTINGS, ledger, bypass=True)

        self.assertEqual([(d.task.id, d.reminder_minutes) for d in first], [(1, 60), (2, 1440), (3, 0)])
        self.assertEqual(len(first), len(second))
        self.assertEqual(ledger.lookups, 0)


class DispatcherHelpersTest(SimpleTestCase):
    def test_due_text_thresholds(self):
        self.assertEqual(format_due_text(-1), 'overdue')
        self.assertEqual(format_due_text(0), 'in 0 minutes')
        self.assertEqual(format_due_text(1), 'in 1 minute')
        self.assertEqual(format_due_text(59), 'in 59 minutes')
        self.assertEqual(format_due_text(60), 'in 1 hour')
        self.assertEqual(format_due_text(1439), 'in 23 hours')
        self.assertEqual(format_due_text(1440), 'in 1 day')
        self.assertEqual(format_due_text(4320), 'in 3 days')

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone('(555) 123-4567', '+1'), '+15551234567')
        self.assertEqual(normalize_phone('+359 88 123 4567', '+1'), '+359881234567')
        self.assertEqual(normalize_phone('0888 123 45', '+1'), '+088812345')
        self.assertEqual(normalize_phone('5551234567', '359'), '+3595551234567')

    @override_settings(DEFAULT_PHONE_COUNTRY_CODE='+44')
    def test_normalize_phone_uses_configured_country_code(self):
        self.assertEqual(normalize_phone('7700900123'), '+447700900123')

    def test_succeeded_channels(self):
        self.assertEqual(succeeded_channels({'email': True, 'sms': False}), ['email'])
        self.assertEqual(succeeded_channels({}), [])


class NotificationDispatcherTest(SimpleTestCase):
    def setUp(self):
        self.email = FakeChannel('email')
        self.sms = FakeChannel('sms')
        self.dispatcher = NotificationDispatcher(email_channel=self.email, sms_channel=self.sms)
        self.task = make_task(1, 60, description='Bring slides', priority=3)

    def test_sends_on_both_channels(self):
        result = self.dispatcher.send(self.task, 60, SETTINGS, now=NOW)

        self.assertEqual(result, {'email': True, 'sms': True})
        to, subject, html_body, text_body = self.email.calls[0]
        self.assertEqual(to, 'me@example.com')
        self.assertEqual(subject, 'Reminder: Task 1 is due in 1 hour')
        self.assertIn('Bring slides', text_body)
        self.assertIn('High', html_body)
        self.assertEqual(self.sms.calls[0], ('+15550001111', 'Reminder: Task 1 is due in 1 hour.'))

    def test_overdue_task_reads_as_overdue(self):
        task = make_task(3, -5)
        self.dispatcher.send(task, 0, SETTINGS, now=NOW)

        _, subject, html_body, _ = self.email.calls[0]
        self.assertEqual(subject, 'Reminder: Task 3 is overdue')
        self.assertIn('is overdue.', html_body)
        self.assertEqual(self.sms.calls[0], ('+15550001111', 'Reminder: Task 3 is overdue.'))

    def test_channel_failure_does_not_block_other_channel(self):
        self.email.fail = True
        result = self.dispatcher.send(self.task, 60, SETTINGS, now=NOW)
        self.assertEqual(result, {'email': False, 'sms': True})
        self.assertEqual(len(self.sms.calls), 1)

    def test_disabled_channels_are_not_attempted(self):
        settings = ReminderSettings(email='me@example.com', phone='+15550001111', sms_notifications=False)
        result = self.dispatcher.send(self.task, 60, settings, now=NOW)
        self.assertEqual(result, {'email': True})
        self.assertEqual(self.sms.calls, [])

    def test_html_body_is_escaped(self):
        task = make_task(2, 60, title='<b>Launch</b>')
        _, html_body, _ = NotificationDispatcher.build_email(task, 'in 1 hour')
        self.assertIn('&lt;b&gt;Launch&lt;/b&gt;', html_body)


class ChannelTest(SimpleTestCase):
    def test_email_channel_uses_django_mail(self):
        EmailChannel(from_email='reminders@example.com').send('me@example.com', 'Subject', '<p>Hi</p>', 'Hi')

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['me@example.com'])
        self.assertEqual(message.from_email, 'reminders@example.com')
        self.assertEqual(message.body, 'Hi')
        self.assertEqual(message.alternatives[0][0], '<p>Hi</p>')

    def test_email_channel_wraps_backend_errors(self):
        with mock.patch('reminders.channels.send_mail', side_effect=OSError('connection refused')):
            with self.assertRaises(ChannelError):
                EmailChannel().send('me@example.com', 'Subject', '<p>Hi</p>', 'Hi')

    def test_sms_channel_sends_through_twilio_client(self):
        client = mock.MagicMock()
        SmsChannel(from_number='+15550009999', client=client).send('+15550001111', 'Hello')
        client.messages.create.assert_called_once_with(to='+15550001111', from_='+15550009999', body='Hello')

    def test_sms_channel_wraps_client_errors(self):
        client = mock.MagicMock()
        client.messages.create.side_effect = RuntimeError('invalid number')
        with self.assertRaises(ChannelError):
            SmsChannel(from_number='+15550009999', client=client).send('+1', 'Hello')

    @override_settings(TWILIO_ACCOUNT_SID='', TWILIO_AUTH_TOKEN='', TWILIO_PHONE_NUMBER='+15550009999')
    def test_sms_channel_without_credentials_fails(self):
        with self.assertRaises(ChannelError):
            SmsChannel().send('+15550001111', 'Hello')


@override_settings(DEFAULT_NOTIFICATION_EMAIL='env@example.com', DEFAULT_NOTIFICATION_PHONE='',
                   DEFAULT_REMINDER_TIMES=[1440, 60])
class ResolveSettingsTest(TestCase):
    def test_environment_defaults(self):
        resolved = resolve_settings()
        self.assertEqual(resolved.email, 'env@example.com')
        self.assertEqual(resolved.reminder_times, (1440, 60))

    def test_stored_settings_then_overrides(self):
        NotificationSettings.objects.create(phone='5551234567', reminder_times=[0, 60, 60])
        resolved = resolve_settings({'reminder_times': [15, 30], 'email': ''})

        self.assertEqual(resolved.email, 'env@example.com')
        self.assertEqual(resolved.phone, '5551234567')
        self.assertEqual(resolved.reminder_times, (30, 15))

    @override_settings(DEFAULT_NOTIFICATION_EMAIL='')
    def test_no_contact_configured(self):
        with self.assertRaises(NoContactConfigured):
            resolve_settings()


class NotificationLedgerTest(TestCase):
    def test_upsert_is_keyed_on_task_and_lead_time(self):
        task = Task.objects.create(title='Pay rent', due_date=NOW)
        ledger = NotificationLedger()

        self.assertFalse(ledger.exists(task.id, 60))
        ledger.upsert(task.id, 60, ['email'])
        ledger.upsert(task.id, 60, ['email', 'sms'])

        self.assertTrue(ledger.exists(task.id, 60))
        self.assertFalse(ledger.exists(task.id, 0))
        record = NotificationRecord.objects.get(task=task, reminder_minutes=60)
        self.assertEqual(record.notification_type, ['email', 'sms'])
        self.assertEqual(NotificationRecord.objects.count(), 1)

    def test_store_errors_are_wrapped(self):
        with mock.patch.object(NotificationRecord.objects, 'update_or_create', side_effect=DatabaseError('locked')):
            with self.assertRaises(StoreError):
                NotificationLedger().upsert(1, 60, ['email'])


@override_settings(DEFAULT_NOTIFICATION_EMAIL='me@example.com', DEFAULT_NOTIFICATION_PHONE='+15550001111',
                   DEFAULT_REMINDER_TIMES=[1440, 60, 0], REMINDER_WINDOW_MINUTES=15)
class ReminderServiceTest(TestCase):
    def setUp(self):
        self.sms = FakeChannel('sms')
        self.service = ReminderService(
            dispatcher=NotificationDispatcher(email_channel=EmailChannel(), sms_channel=self.sms)
        )
        self.task = Task.objects.create(title='Dentist', due_date=NOW + timedelta(minutes=60))

    def test_due_reminder_is_sent_once_and_recorded(self):
        result = self.service.run(now=NOW)

        self.assertEqual(result.notifications_sent, 1)
        self.assertEqual(result.tasks_checked, 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(len(self.sms.calls), 1)
        record = NotificationRecord.objects.get(task=self.task, reminder_minutes=60)
        self.assertEqual(record.notification_type, ['email', 'sms'])

        again = self.service.run(now=NOW + timedelta(minutes=5))
        self.assertEqual(again.notifications_sent, 0)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(len(self.sms.calls), 1)

    def test_failed_dispatch_is_not_recorded(self):
        self.sms.fail = True
        with mock.patch('reminders.channels.send_mail', side_effect=OSError('smtp down')):
            result = self.service.run(now=NOW)

        self.assertEqual(result.notifications_sent, 0)
        self.assertFalse(NotificationRecord.objects.exists())

    def test_partial_success_records_succeeded_channel(self):
        self.sms.fail = True
        result = self.service.run(now=NOW)
        self.assertEqual(result.notifications_sent, 1)
        self.assertEqual(NotificationRecord.objects.get().notification_type, ['email'])

    def test_test_mode_bypasses_ledger(self):
        NotificationRecord.objects.create(task=self.task, reminder_minutes=60, notification_type=['email'])

        first = self.service.run(now=NOW, test_mode=True)
        second = self.service.run(now=NOW, test_mode=True)

        self.assertEqual(first.tasks_checked, second.tasks_checked)
        self.assertEqual(first.notifications_sent, 1)
        self.assertEqual(second.notifications_sent, 1)
        self.assertEqual(NotificationRecord.objects.count(), 1)

    def test_run_propagates_recurring_templates_first(self):
        template = Task.objects.create(
            title='Standup',
            is_recurring=True,
            recurrence_pattern={'type': 'daily'},
            due_date=NOW - timedelta(days=1, minutes=-60),
            next_due_date=NOW + timedelta(minutes=-1),
        )
        self.service.run(now=NOW)
        self.assertTrue(Task.objects.filter(parent_task=template, due_date=NOW - timedelta(minutes=1)).exists())

    def test_store_error_on_task_read_aborts(self):
        with mock.patch.object(Task.objects, 'remindable', side_effect=DatabaseError('gone')):
            with self.assertRaises(StoreError):
                self.service.run(now=NOW)
        self.assertEqual(len(mail.outbox), 0)

    @override_settings(DEFAULT_NOTIFICATION_EMAIL='', DEFAULT_NOTIFICATION_PHONE='')
    def test_no_contact_processes_nothing(self):
        with self.assertRaises(NoContactConfigured):
            self.service.run(now=NOW)
        self.assertEqual(len(mail.outbox), 0)


@override_settings(DEFAULT_NOTIFICATION_EMAIL='', DEFAULT_NOTIFICATION_PHONE='',
                   TWILIO_ACCOUNT_SID='AC123', TWILIO_AUTH_TOKEN='secret', TWILIO_PHONE_NUMBER='+15550009999')
class NotificationTriggerViewTest(APITestCase):
    def setUp(self):
        self.task = Task.objects.create(title='Submit taxes', due_date=datetime(2100, 1, 1, tzinfo=dt_timezone.utc))

    def test_test_mode_with_settings_override(self):
        data = {'testMode': True, 'settings': {'email': 'me@example.com', 'reminder_times': [1440, 60]}}
        response = self.client.post('/api/notifications/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tasksChecked'], 1)
        self.assertEqual(response.data['notificationsSent'], 1)
        self.assertIn('Test completed', response.data['message'])
        self.assertEqual(len(mail.outbox), 1)
        self.assertFalse(NotificationRecord.objects.exists())

    @mock.patch('reminders.channels.Client')
    def test_sms_goes_through_twilio(self, client_class):
        data = {'sendNow': True, 'settings': {'phone': '555 123 4567', 'email_notifications': False}}
        response = self.client.post('/api/notifications/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        client_class.assert_called_once_with('AC123', 'secret')
        client_class.return_value.messages.create.assert_called_once()
        kwargs = client_class.return_value.messages.create.call_args.kwargs
        self.assertEqual(kwargs['to'], '+15551234567')
        self.assertEqual(kwargs['from_'], '+15550009999')

    def test_missing_contact_is_a_client_error(self):
        response = self.client.post('/api/notifications/', {'testMode': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_invalid_reminder_times_rejected(self):
        data = {'settings': {'email': 'me@example.com', 'reminder_times': [-5]}}
        response = self.client.post('/api/notifications/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(DEFAULT_NOTIFICATION_EMAIL='me@example.com')
    def test_get_runs_regular_check(self):
        response = self.client.get('/api/notifications/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['notificationsSent'], 0)

    @override_settings(DEFAULT_NOTIFICATION_EMAIL='me@example.com')
    def test_store_error_is_a_server_error(self):
        with mock.patch.object(Task.objects, 'remindable', side_effect=DatabaseError('gone')):
            response = self.client.get('/api/notifications/')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertIn('error', response.data)


class NotificationSettingsViewTest(APITestCase):
    def test_update_normalizes_reminder_times(self):
        data = {'email': 'me@example.com', 'reminder_times': [0, 1440, 60, 60]}
        response = self.client.put('/api/notifications/settings/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['reminder_times'], [1440, 60, 0])
        self.assertEqual(NotificationSettings.objects.count(), 1)
        self.assertEqual(NotificationSettings.load().email, 'me@example.com')

    def test_sent_reminders_listing(self):
        task = Task.objects.create(title='Pay rent', due_date=NOW)
        NotificationRecord.objects.create(task=task, reminder_minutes=60, notification_type=['sms'])
        response = self.client.get('/api/notifications/sent/', {'task': task.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['notification_type'], ['sms'])


@override_settings(DEFAULT_NOTIFICATION_EMAIL='', DEFAULT_NOTIFICATION_PHONE='')
class CheckAndSendRemindersTaskTest(TestCase):
    def test_without_contact_reports_error(self):
        result = check_and_send_reminders()
        self.assertIn('error', result)

    @override_settings(DEFAULT_NOTIFICATION_EMAIL='me@example.com', DEFAULT_REMINDER_TIMES=[0])
    def test_sends_due_reminders(self):
        from django.utils import timezone
        Task.objects.create(title='Now', due_date=timezone.now())
        result = check_and_send_reminders()
        self.assertEqual(result['notificationsSent'], 1)
        self.assertEqual(len(mail.outbox), 1)
