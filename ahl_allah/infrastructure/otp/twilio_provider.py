import logging
from typing import Optional
from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient
from twilio.base.exceptions import TwilioException

from ...core.config import Settings
from ...application.ports.sms_sender import SmsSender

logger = logging.getLogger(__name__)


class TwilioSmsSender(SmsSender):
    """Deliver OTP messages through Twilio Programmable Messaging (SMS or WhatsApp)."""

    def __init__(self, settings: Settings, client: Optional[Client] = None):
        self.channel = settings.SMS_CHANNEL
        if self.channel == "whatsapp":
            self.from_number = f"whatsapp:{settings.TWILIO_WHATSAPP_NUMBER}"
        else:
            self.from_number = settings.TWILIO_PHONE_NUMBER
        if client is None:
            http_client = TwilioHttpClient(timeout=settings.TWILIO_TIMEOUT, max_retries=settings.TWILIO_MAX_RETRIES)
            client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, http_client=http_client)
        self.client = client

    def send(self, to: str, message: str) -> bool:
        recipient = f"whatsapp:{to}" if self.channel == "whatsapp" else to
        try:
            result = self.client.messages.create(to=recipient, from_=self.from_number, body=message)
            logger.info(f"Twilio {self.channel} message queued, SID: {result.sid}")
            return True
        except (TwilioException, OSError) as e:
            logger.error(f"Twilio error: {e}")
            return False


class ConsoleSmsSender(SmsSender):
    """Development sender used when Twilio credentials are not configured."""

    def send(self, to: str, message: str) -> bool:
        logger.info(f"[SMS] to={to} message={message}")
        return True


def build_sms_sender(settings: Settings) -> SmsSender:
    if settings.twilio_configured:
        return TwilioSmsSender(settings)
    logger.warning("Twilio is not configured; OTP messages will be written to the log")
    return ConsoleSmsSender()
