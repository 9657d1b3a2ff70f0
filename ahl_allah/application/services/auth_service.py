from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional
import logging

from ..ports.user_repo import UserRepository
from ..ports.refresh_token_repo import RefreshTokenRepository
from ..ports.audit_logger import AuditLogger
from ..ports.oauth_provider import FederatedProfile
from .token_service import TokenService
from .passwords import PasswordHasher
from ...db.models import User, StudentProfile, TutorProfile, UserRole
from ...exceptions import ValidationError, Unauthorized, NotFound, Conflict
from ...schemas.auth.auth import (
    LoginRequest,
    StudentRegisterRequest,
    TutorRegisterRequest,
    CompleteProfileRequest,
    LinkOAuthRequest,
)
from ...utils import normalize_email, utc_now

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    token: str
    user: User
    refresh_token: Optional[str] = None
    student_profile: Optional[StudentProfile] = None
    tutor_profile: Optional[TutorProfile] = None
    linked: bool = False


@dataclass
class AuthService:
    user_repo: UserRepository
    refresh_repo: RefreshTokenRepository
    tokens: TokenService
    passwords: PasswordHasher
    audit: AuditLogger
    refresh_token_days: int = 30
    rotate_refresh_tokens: bool = True
    password_min_length: int = 6
    clock: Callable[[], datetime] = field(default=utc_now)

    # ---- sessions ----

    def issue_session(self, user: User, with_refresh: bool = True) -> AuthResult:
        """Mint an access token (and optionally a refresh token) for a user."""
        token = self.tokens.issue(user.id, user.email, user.role_id)
        refresh_token = self._issue_refresh(user.id) if with_refresh else None
        return AuthResult(
            token=token,
            user=user,
            refresh_token=refresh_token,
            student_profile=self.user_repo.get_student_profile(user.id),
            tutor_profile=self.user_repo.get_tutor_profile(user.id),
        )

    def _issue_refresh(self, user_id: str) -> str:
        raw = self.tokens.issue_opaque_refresh()
        expires_at = self.clock() + timedelta(days=self.refresh_token_days)
        self.refresh_repo.create(user_id, self.tokens.hash_opaque(raw), expires_at)
        return raw

    def refresh(self, raw_token: str) -> AuthResult:
        record = self.refresh_repo.get_by_hash(self.tokens.hash_opaque(raw_token))
        if record is None or record.revoked:
            self.audit.log("token_refresh", success=False, details={"reason": "unknown_or_revoked"})
            raise Unauthorized("Invalid refresh token")
        if record.expires_at < self.clock():
            self.audit.log("token_refresh", user_id=record.user_id, success=False, details={"reason": "expired"})
            raise Unauthorized("Refresh token expired")

        user = self.user_repo.get_by_id(record.user_id)
        if user is None:
            raise NotFound("User not found")

        if self.rotate_refresh_tokens:
            self.refresh_repo.revoke(record, self.clock())
            result = self.issue_session(user, with_refresh=True)
        else:
            result = self.issue_session(user, with_refresh=False)
        self.audit.log("token_refresh", user_id=user.id, details={"rotated": self.rotate_refresh_tokens})
        return result

    def revoke(self, raw_token: str) -> None:
        record = self.refresh_repo.get_by_hash(self.tokens.hash_opaque(raw_token))
        if record is None or record.revoked:
            return
        self.refresh_repo.revoke(record, self.clock())
        self.audit.log("token_revoke", user_id=record.user_id)

    # ---- password accounts ----

    def login(self, payload: LoginRequest) -> AuthResult:
        email = normalize_email(payload.email)
        user = self.user_repo.get_by_email(email)
        # one failure, in message and in timing, for unknown email, passwordless account and wrong password
        if user is None or not user.password_hash:
            self.passwords.dummy_verify()
            valid = False
        else:
            valid = self.passwords.verify(payload.password, user.password_hash)
        if not valid:
            self.audit.log("login", subject=email, success=False)
            raise Unauthorized("Invalid credentials")

        user = self.user_repo.update(user, {"last_activity_at": self.clock()})
        self.audit.log("login", subject=email, user_id=user.id)
        return self.issue_session(user)

    def _check_password(self, password: str) -> None:
        if len(password) < self.password_min_length:
            raise ValidationError(f"Password must be at least {self.password_min_length} characters long")

    def _new_password_user(self, payload, role: UserRole) -> User:
        self._check_password(payload.password)
        email = normalize_email(payload.email)
        if self.user_repo.get_by_email(email) is not None:
            raise Conflict("User already exists")

        now = self.clock()
        return User(
            email=email,
            password_hash=self.passwords.hash(payload.password),
            name=payload.name,
            country=payload.country,
            city=payload.city,
            birthyear=payload.birthyear,
            age=now.year - payload.birthyear,
            gender=payload.gender,
            role_id=int(role),
            created_at=now,
            last_activity_at=now,
        )

    def register_student(self, payload: StudentRegisterRequest) -> AuthResult:
        user = self._new_password_user(payload, UserRole.NORMAL)
        profile = StudentProfile(
            user_id=user.id,
            age_group=payload.age_group,
            level_at_quran=payload.level_at_quran,
            number_per_week=payload.number_per_week,
            time_for_everytime=payload.time_for_everytime,
            language=payload.language,
            method_for_hefz=payload.method_for_hefz,
        )
        user = self.user_repo.create_with_profile(user, profile)
        self.audit.log("register", subject=user.email, user_id=user.id, details={"roleId": user.role_id})
        return self.issue_session(user, with_refresh=False)

    def register_tutor(self, payload: TutorRegisterRequest) -> AuthResult:
        user = self._new_password_user(payload, UserRole.PENDING_TUTOR)
        profile = TutorProfile(
            user_id=user.id,
            arabic_name=payload.arabic_name,
            summery=payload.summery,
            ejaza=payload.ejaza,
            my_ejaza_enum=payload.my_ejaza_enum,
            degree=payload.degree,
            language=payload.language,
            phone_number=payload.phone_number,
            whatsapp_phone_number=payload.whatsapp_phone_number,
        )
        user = self.user_repo.create_with_profile(user, profile)
        self.audit.log("register", subject=user.email, user_id=user.id, details={"roleId": user.role_id})
        return self.issue_session(user, with_refresh=False)

    # ---- federated accounts ----

    def federated_login(self, profile: FederatedProfile) -> AuthResult:
        if not profile.provider_id and not profile.email:
            self.audit.log("oauth_login", success=False, details={"provider": profile.provider})
            raise Unauthorized("OAuth authentication failed")

        email = normalize_email(profile.email)
        user = None
        if profile.provider_id:
            user = self.user_repo.get_by_provider(profile.provider, profile.provider_id)
        if user is None and email:
            user = self.user_repo.get_by_email(email)

        now = self.clock()
        if user is not None:
            fields = {
                "provider": profile.provider,
                "provider_id": profile.provider_id or user.provider_id,
                "last_activity_at": now,
            }
            if profile.avatar:
                fields["avatar"] = profile.avatar
            user = self.user_repo.update(user, fields)
        else:
            user = self.user_repo.create(User(
                email=email,
                name=profile.name or (email.split("@")[0] if email else f"{profile.provider.title()} User"),
                provider=profile.provider,
                provider_id=profile.provider_id,
                avatar=profile.avatar,
                is_email_verified=True,
                role_id=int(UserRole.NORMAL),
                created_at=now,
                last_activity_at=now,
            ))
            logger.info(f"Created user {user.id} from {profile.provider} sign-in")

        self.audit.log("oauth_login", subject=email, user_id=user.id, details={"provider": profile.provider})
        return self.issue_session(user)

    def link_oauth(self, payload: LinkOAuthRequest) -> AuthResult:
        user = self.user_repo.get_by_email(normalize_email(payload.email))
        if user is None:
            raise NotFound("User not found")
        if not user.password_hash or not self.passwords.verify(payload.password, user.password_hash):
            self.audit.log("oauth_link", user_id=user.id, success=False)
            raise Unauthorized("Invalid password")

        user = self.user_repo.update(user, {
            "provider": payload.provider,
            "provider_id": payload.provider_id,
            "avatar": payload.avatar if payload.avatar is not None else user.avatar,
            "is_email_verified": True,
        })
        self.audit.log("oauth_link", user_id=user.id, details={"provider": payload.provider})
        return self.issue_session(user, with_refresh=False)

    def complete_profile(self, user_id: str, payload: CompleteProfileRequest) -> AuthResult:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")

        user = self.user_repo.update(user, {
            "country": payload.country,
            "city": payload.city,
            "birthyear": payload.birthyear,
            "age": self.clock().year - payload.birthyear,
            "gender": payload.gender,
        })
        if self.user_repo.get_student_profile(user.id) is None:
            self.user_repo.create_student_profile(StudentProfile(
                user_id=user.id,
                age_group=payload.age_group,
                level_at_quran=payload.level_at_quran,
                number_per_week=payload.number_per_week,
                time_for_everytime=payload.time_for_everytime,
                language=payload.language,
                method_for_hefz=payload.method_for_hefz,
            ))
        return self.issue_session(user, with_refresh=False)
