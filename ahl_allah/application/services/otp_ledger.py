from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional
import hmac
import logging

from ..ports.otp_repo import OtpRepository
from ...db.models import OtpChallenge
from ...exceptions import ValidationError, TooManyRequests
from ...utils import generate_otp, sha256_hex, utc_now

logger = logging.getLogger(__name__)


@dataclass
class OtpLedger:
    """Hashed one-time codes with expiry, attempt and resend accounting.

    One destination (a phone number or an email address) has at most one
    non-consumed challenge. Re-requesting a code for the same purpose while
    the challenge is still alive replaces the code in place and keeps the
    attempt counter, so resending never refills the guessing budget. A
    ``fresh`` issue always starts a new challenge that supersedes the old one.
    """

    repo: OtpRepository
    max_attempts: int = 5
    max_resends: int = 3
    resend_interval_seconds: int = 60
    clock: Callable[[], datetime] = field(default=utc_now)

    def issue(self, channel: str, destination: str, purpose: str, ttl_minutes: int,
              throttle: bool = True, fresh: bool = False) -> str:
        """Create or refresh the challenge for a destination; returns the plaintext code."""
        now = self.clock()
        existing = self.repo.get_active(destination, for_update=True)
        active = existing if existing is not None and existing.expires_at > now else None

        if throttle and active is not None:
            if active.resend_count >= self.max_resends:
                raise TooManyRequests("Resend limit reached")
            if (now - active.last_sent_at).total_seconds() < self.resend_interval_seconds:
                raise TooManyRequests("Please wait before requesting another OTP")

        code = generate_otp()
        expires_at = now + timedelta(minutes=ttl_minutes)

        if not fresh and active is not None and active.purpose == purpose:
            active.code_hash = sha256_hex(code)
            active.expires_at = expires_at
            active.resend_count += 1
            active.last_sent_at = now
            self.repo.save(active)
        else:
            self.repo.create(OtpChallenge(
                channel=channel,
                destination=destination,
                code_hash=sha256_hex(code),
                purpose=purpose,
                expires_at=expires_at,
                attempts_used=0,
                resend_count=0,
                last_sent_at=now,
                consumed=False,
                created_at=now,
            ))
        return code

    def check(
        self,
        destination: str,
        code: str,
        purpose: Optional[str] = None,
        consume: bool = True,
        missing_message: str = "No active OTP found",
        expired_message: str = "OTP expired",
    ) -> OtpChallenge:
        challenge = self.repo.get_active(destination, for_update=True)
        if challenge is None or (purpose is not None and challenge.purpose != purpose):
            raise ValidationError(missing_message)
        if self.clock() > challenge.expires_at:
            raise ValidationError(expired_message)
        if challenge.attempts_used >= self.max_attempts:
            raise TooManyRequests("Maximum verification attempts reached")

        if not hmac.compare_digest(sha256_hex(str(code)), challenge.code_hash):
            challenge.attempts_used += 1
            self.repo.save(challenge)
            raise ValidationError("Invalid OTP")

        if consume:
            challenge.consumed = True
            self.repo.save(challenge)
        return challenge

    def consume(self, challenge: OtpChallenge) -> None:
        challenge.consumed = True
        self.repo.save(challenge)
