import logging

from django.conf import settings
from django.core.mail import send_mail
from twilio.rest import Client

from .exceptions import ChannelError

logger = logging.getLogger(__name__)


class EmailChannel:
    name = 'email'

    def __init__(self, from_email=None):
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL

    def send(self, to, subject, html_body, text_body):
        try:
            sent = send_mail(
                subject=subject,
                message=text_body,
                from_email=self.from_email,
                recipient_list=[to],
                html_message=html_body,
                fail_silently=False,
            )
        except Exception as e:
            raise ChannelError(self.name, str(e)) from e
        if not sent:
            raise ChannelError(self.name, f"mail backend accepted no message for {to}")
        return True


class SmsChannel:
    name = 'sms'

    def __init__(self, account_sid=None, auth_token=None, from_number=None, client=None):
        self.account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number or settings.TWILIO_PHONE_NUMBER
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.account_sid or not self.auth_token:
                raise ChannelError(self.name, "Twilio credentials are not configured")
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send(self, to, text, from_=None):
        sender = from_ or self.from_number
        if not sender:
            raise ChannelError(self.name, "no sender phone number configured")
        client = self.client
        try:
            message = client.messages.create(to=to, from_=sender, body=text)
        except Exception as e:
            raise ChannelError(self.name, str(e)) from e
        logger.debug(f"SMS queued: {getattr(message, 'sid', None)}")
        return True
