from dataclasses import dataclass
import logging

from ..ports.user_repo import UserRepository
from ..ports.mail_sender import MailSender
from ..ports.audit_logger import AuditLogger
from .otp_ledger import OtpLedger
from .passwords import PasswordHasher
from ...db.models import User, OtpChallenge, OtpChannel, OtpPurpose
from ...exceptions import ValidationError, NotFound, InternalError
from ...utils import normalize_email

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Password Reset OTP - Ahl Allah"


def _reset_email(name: str, code: str, ttl_minutes: int) -> tuple:
    html = (
        f"<h2>Password Reset Request</h2>"
        f"<p>Hello {name},</p>"
        f"<p>Your password reset code is:</p>"
        f"<h1 style=\"letter-spacing: 4px;\">{code}</h1>"
        f"<p>This code will expire in {ttl_minutes} minutes.</p>"
        f"<p>If you did not request a password reset, please ignore this email.</p>"
    )
    text = (
        f"Hello {name},\n\nYour password reset code is {code}.\n"
        f"This code will expire in {ttl_minutes} minutes.\n"
    )
    return html, text


@dataclass
class PasswordResetService:
    ledger: OtpLedger
    user_repo: UserRepository
    mail_sender: MailSender
    passwords: PasswordHasher
    audit: AuditLogger
    ttl_minutes: int = 10
    password_min_length: int = 6

    def _user(self, email: str) -> User:
        user = self.user_repo.get_by_email(normalize_email(email))
        if user is None:
            raise NotFound("User not found")
        return user

    def forgot(self, email: str) -> None:
        user = self._user(email)
        code = self.ledger.issue(
            OtpChannel.EMAIL.value, user.email, OtpPurpose.PASSWORD_RESET.value, self.ttl_minutes,
            throttle=False, fresh=True,
        )
        html, text = _reset_email(user.name, code, self.ttl_minutes)
        if not self.mail_sender.send(user.email, RESET_SUBJECT, html, text):
            self.audit.log("password_reset_request", subject=user.email, user_id=user.id, success=False)
            raise InternalError("Failed to send OTP email")
        self.audit.log("password_reset_request", subject=user.email, user_id=user.id)

    def _check(self, user: User, otp: str) -> OtpChallenge:
        return self.ledger.check(
            user.email,
            otp,
            purpose=OtpPurpose.PASSWORD_RESET.value,
            consume=False,
            missing_message="No OTP found for this user",
            expired_message="OTP has expired",
        )

    def verify(self, email: str, otp: str) -> None:
        user = self._user(email)
        self._check(user, otp)

    def reset(self, email: str, otp: str, new_password: str) -> None:
        if len(new_password) < self.password_min_length:
            raise ValidationError(f"Password must be at least {self.password_min_length} characters long")
        user = self._user(email)
        challenge = self._check(user, otp)
        self.user_repo.update(user, {"password_hash": self.passwords.hash(new_password)})
        # consumed only once the new hash is stored
        self.ledger.consume(challenge)
        self.audit.log("password_reset", subject=user.email, user_id=user.id)
        logger.info(f"Password reset for user {user.id}")
