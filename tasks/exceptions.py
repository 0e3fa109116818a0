class InvalidPattern(ValueError):
    """Raised when a recurrence pattern is malformed or of an unknown type."""


class NoOccurrenceFound(InvalidPattern):
    """Raised when a weekday scan finds no matching day within its bound."""


class StoreError(Exception):
    """Raised when reading or writing tasks or the notification ledger fails."""
