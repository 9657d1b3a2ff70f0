"""SMTP email delivery for password reset codes."""
import logging
import smtplib
from contextlib import contextmanager
from email.message import EmailMessage
from typing import Optional

from ...core.config import Settings
from ...application.ports.mail_sender import MailSender

logger = logging.getLogger(__name__)


class SmtpMailSender(MailSender):
    def __init__(self, settings: Settings, timeout: int = 15):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.use_ssl = settings.SMTP_USE_SSL
        self.sender = settings.EMAIL_FROM
        self.timeout = timeout

    @contextmanager
    def _connection(self):
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if not self.use_ssl:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            yield server
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                logger.debug("SMTP quit failed", exc_info=True)

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(text or "This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")
        try:
            with self._connection() as server:
                server.send_message(msg)
            logger.info(f"Email '{subject}' sent")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending email: {e}")
            return False


class LogMailSender(MailSender):
    """Development sender used when SMTP is not configured."""

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        logger.info(f"[EMAIL] to={to} subject={subject} body={text or html}")
        return True


def build_mail_sender(settings: Settings) -> MailSender:
    if settings.smtp_configured:
        return SmtpMailSender(settings)
    logger.warning("SMTP is not configured; emails will be written to the log")
    return LogMailSender()
