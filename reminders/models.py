from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from tasks.models import Task


def default_reminder_times():
    return list(settings.DEFAULT_REMINDER_TIMES)


def normalize_reminder_times(values):
    """Deduplicated non-negative minutes, largest first."""
    return sorted({int(value) for value in values if int(value) >= 0}, reverse=True)


class NotificationSettings(models.Model):
    """Deployment-wide contact targets and reminder lead times (single row)."""

    SINGLETON_ID = 1

    email = models.EmailField(blank=True, default='')
    phone = models.CharField(max_length=32, blank=True, default='')
    email_notifications = models.BooleanField(default=True)
    sms_notifications = models.BooleanField(default=True)
    reminder_times = models.JSONField(default=default_reminder_times, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'notification settings'

    def __str__(self):
        return f"Notification settings ({self.email or 'no email'}, {self.phone or 'no phone'})"

    def save(self, *args, **kwargs):
        self.pk = self.SINGLETON_ID
        self.reminder_times = normalize_reminder_times(self.reminder_times or [])
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=cls.SINGLETON_ID)
        return obj


class NotificationRecord(models.Model):
    CHANNEL_EMAIL = 'email'
    CHANNEL_SMS = 'sms'

    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name='notification_records')
    reminder_minutes = models.PositiveIntegerField(validators=[MinValueValidator(0)])
    notification_type = models.JSONField(default=list)
    sent_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-sent_at']
        constraints = [
            models.UniqueConstraint(
                fields=['task', 'reminder_minutes'],
                name='unique_notification_per_task_lead_time'
            ),
        ]

    def __str__(self):
        return f"Reminder for {self.task.title} ({self.reminder_minutes} min, {', '.join(self.notification_type)})"
