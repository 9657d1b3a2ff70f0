from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
import logging

from ..ports.user_repo import UserRepository
from ..ports.sms_sender import SmsSender
from ..ports.audit_logger import AuditLogger
from .auth_service import AuthService, AuthResult
from .otp_ledger import OtpLedger
from ...db.models import User, UserRole, OtpChannel, OtpPurpose
from ...exceptions import APIException, ValidationError, NotFound, Conflict, InternalError
from ...utils import normalize_phone, is_valid_phone, mask_destination, utc_now

logger = logging.getLogger(__name__)


@dataclass
class PhoneOtpService:
    """SMS / WhatsApp one-time code sign-in and phone linking."""

    ledger: OtpLedger
    user_repo: UserRepository
    sms_sender: SmsSender
    auth: AuthService
    audit: AuditLogger
    ttl_minutes: int = 5
    clock: Callable[[], datetime] = field(default=utc_now)

    def _normalized(self, phone: str) -> str:
        normalized = normalize_phone(phone)
        if not is_valid_phone(normalized):
            raise ValidationError("Invalid phone number")
        return normalized

    def request_otp(self, phone: str, purpose: Optional[str] = None) -> dict:
        normalized = self._normalized(phone)
        effective = OtpPurpose.LINK.value if purpose == OtpPurpose.LINK.value else OtpPurpose.LOGIN.value

        code = self.ledger.issue(OtpChannel.PHONE.value, normalized, effective, self.ttl_minutes)
        message = f"Your verification code is {code}. It expires in {self.ttl_minutes} minutes."
        if not self.sms_sender.send(normalized, message):
            self.audit.log("otp_send", subject=normalized, success=False, details={"purpose": effective})
            raise InternalError("Failed to send OTP")

        self.audit.log("otp_send", subject=normalized, details={"purpose": effective})
        return {"phone": mask_destination(normalized), "expiresIn": self.ttl_minutes * 60}

    def verify_otp(self, phone: str, otp: str, link_to_user_id: Optional[str] = None) -> AuthResult:
        normalized = self._normalized(phone)
        try:
            challenge = self.ledger.check(normalized, otp)
        except APIException:
            self.audit.log("otp_verify", subject=normalized, success=False)
            raise

        if challenge.purpose == OtpPurpose.LINK.value and link_to_user_id:
            return self._link(normalized, link_to_user_id)
        return self._login(normalized)

    def _link(self, phone: str, user_id: str) -> AuthResult:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        owner = self.user_repo.get_by_phone(phone)
        if owner is not None and owner.id != user.id:
            raise Conflict("Phone already linked to another account")

        user = self.user_repo.update(user, {
            "phone": phone,
            "phone_verified": True,
            "last_activity_at": self.clock(),
        })
        self.audit.log("phone_link", subject=phone, user_id=user.id)
        result = self.auth.issue_session(user)
        result.linked = True
        return result

    def _login(self, phone: str) -> AuthResult:
        now = self.clock()
        user = self.user_repo.get_by_phone(phone)
        if user is None:
            user = self.user_repo.create(User(
                name=f"User {phone[-4:]}",
                phone=phone,
                phone_verified=True,
                role_id=int(UserRole.NORMAL),
                created_at=now,
                last_activity_at=now,
            ))
            logger.info(f"Created phone account {user.id}")
        else:
            user = self.user_repo.update(user, {"phone_verified": True, "last_activity_at": now})

        self.audit.log("otp_verify", subject=phone, user_id=user.id)
        return self.auth.issue_session(user)
