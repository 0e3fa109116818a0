from dataclasses import dataclass, field

from django.conf import settings
from django.db import DatabaseError

from tasks.exceptions import StoreError
from .exceptions import NoContactConfigured
from .models import NotificationSettings, normalize_reminder_times

SETTING_FIELDS = ('email', 'phone', 'email_notifications', 'sms_notifications', 'reminder_times')


@dataclass(frozen=True)
class ReminderSettings:
    """Effective notification settings for one run."""
    email: str = ''
    phone: str = ''
    email_notifications: bool = True
    sms_notifications: bool = True
    reminder_times: tuple = field(default_factory=tuple)

    @property
    def has_contact(self):
        return bool(self.email or self.phone)


def default_settings():
    return {
        'email': settings.DEFAULT_NOTIFICATION_EMAIL,
        'phone': settings.DEFAULT_NOTIFICATION_PHONE,
        'email_notifications': True,
        'sms_notifications': True,
        'reminder_times': list(settings.DEFAULT_REMINDER_TIMES),
    }


def resolve_settings(overrides=None, use_stored=True):
    """
    Builds the effective settings: environment defaults, then the stored
    settings row, then per-request overrides. Blank contact values never
    replace a configured one from a lower layer.

    Raises:
        NoContactConfigured: neither email nor phone is available.
        StoreError: the stored settings could not be read.
    """
    values = default_settings()

    if use_stored:
        try:
            stored = NotificationSettings.objects.filter(pk=NotificationSettings.SINGLETON_ID).first()
        except DatabaseError as e:
            raise StoreError("Failed to load notification settings") from e
        if stored is not None:
            _merge(values, {name: getattr(stored, name) for name in SETTING_FIELDS})

    if overrides:
        _merge(values, overrides)

    resolved = ReminderSettings(
        email=(values['email'] or '').strip(),
        phone=(values['phone'] or '').strip(),
        email_notifications=bool(values['email_notifications']),
        sms_notifications=bool(values['sms_notifications']),
        reminder_times=tuple(normalize_reminder_times(values['reminder_times'] or [])),
    )
    if not resolved.has_contact:
        raise NoContactConfigured()
    return resolved


def _merge(values, layer):
    for name in SETTING_FIELDS:
        if name not in layer or layer[name] is None:
            continue
        if name in ('email', 'phone') and not layer[name]:
            continue
        values[name] = layer[name]
