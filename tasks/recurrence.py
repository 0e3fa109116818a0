# task_manager\tasks\recurrence.py
import calendar
from dataclasses import dataclass
from datetime import timedelta

from .exceptions import InvalidPattern, NoOccurrenceFound

DAILY = 'daily'
WEEKLY = 'weekly'
MONTHLY = 'monthly'
YEARLY = 'yearly'
CUSTOM = 'custom'

PATTERN_TYPES = (DAILY, WEEKLY, MONTHLY, YEARLY, CUSTOM)

# Indexed by datetime.weekday(), Monday=0
WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

# Legacy weekday indices follow the 0=Sunday convention
LEGACY_WEEKDAYS = ('sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday')

MAX_WEEKDAY_SCAN = 14


def _normalize_day(value):
    if isinstance(value, bool):
        raise InvalidPattern(f"Invalid weekday: {value!r}")
    if isinstance(value, int):
        if not 0 <= value < 7:
            raise InvalidPattern(f"Weekday index out of range: {value}")
        return LEGACY_WEEKDAYS[value]
    if isinstance(value, str):
        name = value.strip().lower()
        for day in WEEKDAYS:
            if name == day or name == day[:3]:
                return day
    raise InvalidPattern(f"Invalid weekday: {value!r}")


@dataclass(frozen=True)
class RecurrencePattern:
    """
    Normalized recurrence description.

    `days` is None when no explicit weekday set was given, which for weekly
    patterns means "every `interval` weeks from the current date".
    """
    type: str
    interval: int = 1
    days: frozenset = None
    day_of_month: int = None

    def __post_init__(self):
        if self.type not in PATTERN_TYPES:
            raise InvalidPattern(f"Unknown recurrence type: {self.type!r}")
        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 1:
            raise InvalidPattern(f"Interval must be a positive integer, got {self.interval!r}")
        if self.day_of_month is not None:
            if isinstance(self.day_of_month, bool) or not isinstance(self.day_of_month, int) \
                    or not 1 <= self.day_of_month <= 31:
                raise InvalidPattern(f"Invalid day of month: {self.day_of_month!r}")

    @classmethod
    def from_dict(cls, data):
        """
        Builds a pattern from its stored JSON form.

        Args:
            data (dict): {"type", "interval", "days", "day_of_month"}; days may be
                weekday names, three-letter abbreviations or legacy 0=Sunday indices.

        Returns:
            RecurrencePattern

        Raises:
            InvalidPattern: if the data cannot describe a pattern.
        """
        if isinstance(data, RecurrencePattern):
            return data
        if not isinstance(data, dict):
            raise InvalidPattern("Recurrence pattern must be an object.")

        pattern_type = data.get('type')
        if not pattern_type:
            raise InvalidPattern("Recurrence pattern type is required.")

        interval = data.get('interval', 1)
        if interval is None:
            interval = 1

        days = data.get('days')
        if days is not None:
            if isinstance(days, (str, bytes)) or not hasattr(days, '__iter__'):
                raise InvalidPattern("Recurrence days must be a list of weekdays.")
            days = frozenset(_normalize_day(day) for day in days)

        return cls(
            type=str(pattern_type).strip().lower(),
            interval=interval,
            days=days,
            day_of_month=data.get('day_of_month'),
        )

    def to_dict(self):
        data = {'type': self.type, 'interval': self.interval}
        if self.days is not None:
            data['days'] = [day for day in WEEKDAYS if day in self.days]
        if self.day_of_month is not None:
            data['day_of_month'] = self.day_of_month
        return data


def _add_months(value, months, day=None):
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(day or value.day, last_day))


def _next_matching_weekday(current, days):
    candidate = current
    for _ in range(MAX_WEEKDAY_SCAN):
        candidate = candidate + timedelta(days=1)
        if WEEKDAYS[candidate.weekday()] in days:
            return candidate
    raise NoOccurrenceFound(
        f"No matching weekday within {MAX_WEEKDAY_SCAN} days of {current.isoformat()}"
    )


def next_occurrence(current_due, pattern):
    """
    Computes the occurrence following `current_due`.

    Time of day and tzinfo of `current_due` are kept.

    Raises:
        InvalidPattern: unknown or malformed pattern.
        NoOccurrenceFound: weekday scan without a match.
    """
    if current_due is None:
        raise ValueError("current_due is required")
    pattern = RecurrencePattern.from_dict(pattern)

    if pattern.type == DAILY:
        return current_due + timedelta(days=pattern.interval)

    if pattern.type in (WEEKLY, CUSTOM):
        if pattern.type == WEEKLY and pattern.days is None:
            return current_due + timedelta(weeks=pattern.interval)
        return _next_matching_weekday(current_due, pattern.days or frozenset())

    if pattern.type == MONTHLY:
        return _add_months(current_due, pattern.interval, pattern.day_of_month)

    if pattern.type == YEARLY:
        return _add_months(current_due, 12 * pattern.interval)

    raise InvalidPattern(f"Unknown recurrence type: {pattern.type!r}")


def occurrences(start, pattern, until=None, limit=10):
    """Yields up to `limit` occurrences after `start`, stopping past `until`."""
    current = start
    for _ in range(limit):
        current = next_occurrence(current, pattern)
        if until is not None and current > until:
            return
        yield current
