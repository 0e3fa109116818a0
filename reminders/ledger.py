import logging

from django.db import DatabaseError

from tasks.exceptions import StoreError
from .models import NotificationRecord

logger = logging.getLogger(__name__)


class NotificationLedger:
    """Record of reminders already sent, keyed on (task, lead time)."""

    def exists(self, task_id, reminder_minutes):
        try:
            return NotificationRecord.objects.filter(
                task_id=task_id,
                reminder_minutes=reminder_minutes
            ).exists()
        except DatabaseError as e:
            raise StoreError(f"Failed to read notification ledger for task {task_id}") from e

    def upsert(self, task_id, reminder_minutes, channels):
        try:
            record, created = NotificationRecord.objects.update_or_create(
                task_id=task_id,
                reminder_minutes=reminder_minutes,
                defaults={'notification_type': list(channels)}
            )
        except DatabaseError as e:
            raise StoreError(f"Failed to record notification for task {task_id}") from e
        logger.debug(f"Ledger {'created' if created else 'updated'}: task {task_id}, {reminder_minutes} min")
        return record
