# ahl_allah/dependencies.py
import logging
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from .core.config import Settings, get_settings
from .database import get_session
from .db.models import UserRole
from .exceptions import Unauthorized, Forbidden
from .utils import utc_now
from .application.ports.sms_sender import SmsSender
from .application.ports.mail_sender import MailSender
from .application.ports.audit_logger import AuditLogger
from .application.ports.oauth_provider import OAuthProvider
from .application.services.token_service import TokenService, TokenIdentity
from .application.services.passwords import PasswordHasher
from .application.services.otp_ledger import OtpLedger
from .application.services.auth_service import AuthService
from .application.services.phone_otp_service import PhoneOtpService
from .application.services.password_reset_service import PasswordResetService
from .application.services.admin_service import AdminService
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.email.smtp_sender import build_mail_sender
from .infrastructure.otp.twilio_provider import build_sms_sender
from .infrastructure.oauth.google_provider import GoogleOAuthProvider
from .infrastructure.oauth.apple_provider import AppleOAuthProvider
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository
from .infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOtpRepository
from .infrastructure.persistence.sqlalchemy.repositories.refresh_token_repository_sql import SqlRefreshTokenRepository

logger = logging.getLogger(__name__)

# Auth scheme
oauth2_scheme = HTTPBearer(auto_error=False)


# =========================
# Configuration and transports
# =========================
def get_app_settings() -> Settings:
    return get_settings()


def get_clock() -> Callable[[], datetime]:
    return utc_now


@lru_cache()
def _sms_sender() -> SmsSender:
    return build_sms_sender(get_settings())


@lru_cache()
def _mail_sender() -> MailSender:
    return build_mail_sender(get_settings())


@lru_cache()
def _password_hasher(rounds: int) -> PasswordHasher:
    return PasswordHasher(rounds)


def get_sms_sender() -> SmsSender:
    return _sms_sender()


def get_mail_sender() -> MailSender:
    return _mail_sender()


def get_audit_logger() -> AuditLogger:
    return StdAuditLogger()


def get_password_hasher(settings: Settings = Depends(get_app_settings)) -> PasswordHasher:
    return _password_hasher(settings.BCRYPT_ROUNDS)


def get_google_provider(settings: Settings = Depends(get_app_settings)) -> OAuthProvider:
    return GoogleOAuthProvider(settings)


@lru_cache()
def _apple_provider() -> AppleOAuthProvider:
    # one provider per process so its JWKS client keeps Apple's keys cached
    return AppleOAuthProvider(get_settings())


def get_apple_provider() -> OAuthProvider:
    return _apple_provider()


# =========================
# Services
# =========================
def get_token_service(
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> TokenService:
    tokens = TokenService.from_settings(settings)
    tokens.clock = clock
    return tokens


def get_otp_ledger(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OtpLedger:
    return OtpLedger(
        repo=SqlOtpRepository(session),
        max_attempts=settings.OTP_MAX_ATTEMPTS,
        max_resends=settings.OTP_MAX_RESENDS,
        resend_interval_seconds=settings.OTP_RESEND_INTERVAL_SECONDS,
        clock=clock,
    )


def get_auth_service(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    tokens: TokenService = Depends(get_token_service),
    passwords: PasswordHasher = Depends(get_password_hasher),
    audit: AuditLogger = Depends(get_audit_logger),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AuthService:
    return AuthService(
        user_repo=SqlUserRepository(session),
        refresh_repo=SqlRefreshTokenRepository(session),
        tokens=tokens,
        passwords=passwords,
        audit=audit,
        refresh_token_days=settings.REFRESH_TOKEN_EXPIRE_DAYS,
        rotate_refresh_tokens=settings.REFRESH_TOKEN_ROTATION,
        password_min_length=settings.PASSWORD_MIN_LENGTH,
        clock=clock,
    )


def get_phone_otp_service(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    ledger: OtpLedger = Depends(get_otp_ledger),
    sms_sender: SmsSender = Depends(get_sms_sender),
    auth: AuthService = Depends(get_auth_service),
    audit: AuditLogger = Depends(get_audit_logger),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> PhoneOtpService:
    return PhoneOtpService(
        ledger=ledger,
        user_repo=SqlUserRepository(session),
        sms_sender=sms_sender,
        auth=auth,
        audit=audit,
        ttl_minutes=settings.PHONE_OTP_TTL_MINUTES,
        clock=clock,
    )


def get_password_reset_service(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    ledger: OtpLedger = Depends(get_otp_ledger),
    mail_sender: MailSender = Depends(get_mail_sender),
    passwords: PasswordHasher = Depends(get_password_hasher),
    audit: AuditLogger = Depends(get_audit_logger),
) -> PasswordResetService:
    return PasswordResetService(
        ledger=ledger,
        user_repo=SqlUserRepository(session),
        mail_sender=mail_sender,
        passwords=passwords,
        audit=audit,
        ttl_minutes=settings.RESET_OTP_TTL_MINUTES,
        password_min_length=settings.PASSWORD_MIN_LENGTH,
    )


def get_admin_service(
    session: Session = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AdminService:
    return AdminService(user_repo=SqlUserRepository(session), audit=audit)


# =========================
# Identity and role gate
# =========================
def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(oauth2_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[TokenIdentity]:
    """Identity from a bearer token, or None when no token was sent. A bad token is still a 401."""
    if credentials is None or not credentials.credentials:
        return None
    return tokens.validate(credentials.credentials)


def get_current_identity(identity: Optional[TokenIdentity] = Depends(get_optional_identity)) -> TokenIdentity:
    if identity is None:
        raise Unauthorized()
    return identity


def require_role(*roles: UserRole):
    allowed = {int(r) for r in roles}

    def dependency(identity: TokenIdentity = Depends(get_current_identity)) -> TokenIdentity:
        if identity.role_id not in allowed:
            logger.info(f"Role {identity.role_id} denied for user {identity.user_id}")
            raise Forbidden()
        return identity

    return dependency


require_admin = require_role(UserRole.ADMIN)
require_tutor = require_role(UserRole.TUTOR)
require_normal_user = require_role(UserRole.NORMAL)
