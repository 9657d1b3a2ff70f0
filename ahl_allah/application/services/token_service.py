from calendar import timegm
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional
import logging
import secrets

import jwt

from ...core.config import Settings
from ...exceptions import Unauthorized
from ...utils import sha256_hex, utc_now

logger = logging.getLogger(__name__)


@dataclass
class TokenIdentity:
    user_id: str
    email: Optional[str]
    role_id: int


@dataclass
class TokenService:
    """Signs and validates access tokens and mints opaque refresh tokens."""

    secret_key: str
    algorithm: str
    issuer: str
    audience: str
    expire_minutes: int
    clock: Callable[[], datetime] = field(default=utc_now)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        )

    def issue(self, user_id: str, email: Optional[str], role_id: int) -> str:
        now = self.clock()
        payload = {
            "userId": user_id,
            "email": email,
            "roleId": int(role_id),
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def validate(self, token: str) -> TokenIdentity:
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                # expiry is checked against the service clock below
                options={"require": ["exp", "iat", "iss", "aud"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as e:
            logger.info(f"Access token rejected: {e}")
            raise Unauthorized()

        try:
            expires = int(payload["exp"])
        except (TypeError, ValueError):
            raise Unauthorized()
        if expires <= timegm(self.clock().utctimetuple()):
            logger.info("Access token has expired")
            raise Unauthorized()

        user_id = payload.get("userId")
        role_id = payload.get("roleId")
        if not user_id or role_id is None:
            raise Unauthorized()
        return TokenIdentity(user_id=str(user_id), email=payload.get("email"), role_id=int(role_id))

    @staticmethod
    def issue_opaque_refresh() -> str:
        return secrets.token_hex(48)

    @staticmethod
    def hash_opaque(value: str) -> str:
        return sha256_hex(value)
