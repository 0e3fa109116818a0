import logging
from dataclasses import dataclass

from django.conf import settings as django_settings
from django.db import DatabaseError
from django.utils import timezone

from tasks.exceptions import StoreError
from tasks.models import Task
from tasks.services import RecurringTaskService
from .conf import resolve_settings
from .dispatcher import NotificationDispatcher, succeeded_channels
from .ledger import NotificationLedger
from .scheduler import compute_due

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    tasks_checked: int
    notifications_sent: int
    message: str

    def as_response(self):
        return {
            "success": True,
            "tasksChecked": self.tasks_checked,
            "notificationsSent": self.notifications_sent,
            "message": self.message,
        }


class ReminderService:
    """
    One reminder run: propagate recurring tasks, pick due reminders, send them
    and record what was sent.
    """

    def __init__(self, dispatcher=None, ledger=None, window_minutes=None):
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.ledger = ledger or NotificationLedger()
        self.window_minutes = (
            window_minutes if window_minutes is not None else django_settings.REMINDER_WINDOW_MINUTES
        )

    def run(self, now=None, overrides=None, test_mode=False, send_now=False):
        """
        Args:
            now (datetime): reference time, defaults to the current time.
            overrides (dict): per-request settings layered over stored defaults.
            test_mode (bool): bypass windowing and the ledger.
            send_now (bool): same selection as test mode.

        Returns:
            TickResult

        Raises:
            NoContactConfigured: nowhere to send anything.
            StoreError: tasks or the ledger could not be read or written.
        """
        now = now or timezone.now()
        bypass = test_mode or send_now
        effective = resolve_settings(overrides)

        if not bypass:
            created = RecurringTaskService.advance_due(now)
            if created:
                logger.info(f"Created {len(created)} recurring task instance(s)")

        try:
            tasks = list(Task.objects.remindable())
        except DatabaseError as e:
            raise StoreError("Failed to load pending tasks") from e

        due = compute_due(
            now, tasks, effective, self.ledger,
            window_minutes=self.window_minutes,
            bypass=bypass
        )

        sent = 0
        for reminder in due:
            result = self.dispatcher.send(reminder.task, reminder.reminder_minutes, effective, now=now)
            channels = succeeded_channels(result)
            if not channels:
                continue
            sent += 1
            if not bypass:
                self.ledger.upsert(reminder.task.id, reminder.reminder_minutes, channels)

        if test_mode:
            message = f"Test completed: {sent} of {len(due)} reminder(s) sent"
        else:
            message = f"Checked {len(tasks)} task(s), sent {sent} notification(s)"
        logger.info(message)
        return TickResult(tasks_checked=len(tasks), notifications_sent=sent, message=message)
