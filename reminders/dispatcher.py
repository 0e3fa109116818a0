import logging
import re

from django.conf import settings as django_settings
from django.utils import timezone
from django.utils.html import escape

from .channels import EmailChannel, SmsChannel
from .exceptions import ChannelError
from .scheduler import minutes_until

logger = logging.getLogger(__name__)


def format_due_text(minutes_until_due):
    """Human-readable time left: overdue, or in N minutes / hours / days."""
    if minutes_until_due < 0:
        return "overdue"
    if minutes_until_due < 60:
        value, unit = int(minutes_until_due), "minute"
    elif minutes_until_due < 1440:
        value, unit = int(minutes_until_due // 60), "hour"
    else:
        value, unit = int(minutes_until_due // 1440), "day"
    return f"in {value} {unit}{'' if value == 1 else 's'}"


def due_phrase(due_text):
    """Verb phrase after the task title: "is overdue" or "is due in 2 hours"."""
    if due_text == "overdue":
        return "is overdue"
    return f"is due {due_text}"


def normalize_phone(phone, default_country_code=None):
    """
    Best-effort E.164 shaping; not validation.

    Keeps digits and a leading '+'. A bare 10-digit number gets the default
    country code, anything else without '+' just gets the prefix.
    """
    if default_country_code is None:
        default_country_code = django_settings.DEFAULT_PHONE_COUNTRY_CODE
    raw = (phone or '').strip()
    digits = re.sub(r'\D', '', raw)
    if raw.startswith('+'):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+{default_country_code.lstrip('+')}{digits}"
    return f"+{digits}"


def succeeded_channels(result):
    return [channel for channel, ok in result.items() if ok]


class NotificationDispatcher:
    """Formats a reminder and sends it over every enabled channel."""

    def __init__(self, email_channel=None, sms_channel=None):
        self.email_channel = email_channel or EmailChannel()
        self.sms_channel = sms_channel or SmsChannel()

    def send(self, task, reminder_minutes, settings, now=None):
        """
        Args:
            task (Task): the pending task.
            reminder_minutes (int): lead time that triggered the reminder.
            settings (ReminderSettings): effective contact settings.

        Returns:
            dict: channel name -> True/False for each channel attempted.
        """
        now = now or timezone.now()
        due_text = format_due_text(minutes_until(task.due_date, now))
        result = {}

        if settings.email_notifications and settings.email:
            subject, html_body, text_body = self.build_email(task, due_text)
            result[EmailChannel.name] = self._attempt(
                task, EmailChannel.name,
                lambda: self.email_channel.send(settings.email, subject, html_body, text_body)
            )

        if settings.sms_notifications and settings.phone:
            text = self.build_sms(task, due_text)
            result[SmsChannel.name] = self._attempt(
                task, SmsChannel.name,
                lambda: self.sms_channel.send(normalize_phone(settings.phone), text)
            )

        if not result:
            logger.warning(f"No channel enabled for reminder of task {task.id}")
        return result

    def _attempt(self, task, channel, send):
        try:
            send()
        except ChannelError as e:
            logger.error(f"Reminder for task {task.id} failed on {channel}: {e}")
            return False
        logger.info(f"Reminder for task {task.id} sent via {channel}")
        return True

    @staticmethod
    def build_email(task, due_text):
        priority = task.get_priority_display()
        due = task.due_date.strftime('%Y-%m-%d %H:%M %Z')
        subject = f"Reminder: {task.title} {due_phrase(due_text)}"

        text_body = (
            f"Task: {task.title}\n"
            f"Description: {task.description or '-'}\n"
            f"Due: {due} ({due_text})\n"
            f"Priority: {priority}"
        )
        html_body = (
            f"<h2>Task reminder</h2>"
            f"<p><strong>{escape(task.title)}</strong> {escape(due_phrase(due_text))}.</p>"
            f"<p>{escape(task.description or '')}</p>"
            f"<ul><li>Due: {escape(due)}</li><li>Priority: {escape(priority)}</li></ul>"
        )
        return subject, html_body, text_body

    @staticmethod
    def build_sms(task, due_text):
        return f"Reminder: {task.title} {due_phrase(due_text)}."
