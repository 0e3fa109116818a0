class ChannelError(Exception):
    """Raised by a notification channel when a message could not be sent."""

    def __init__(self, channel, message):
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class NoContactConfigured(Exception):
    """Raised when neither an email address nor a phone number is configured."""

    def __init__(self, message="No email or phone number configured for notifications."):
        super().__init__(message)
