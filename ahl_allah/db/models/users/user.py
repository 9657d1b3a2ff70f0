# ahl_allah/db/models/users/user.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

from ..types import UtcDateTime
from ....utils import utc_now
import uuid

from ..enums import UserRole


class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    # Absent for phone-only accounts and for federated accounts without an email
    email: Optional[str] = Field(default=None, max_length=256, unique=True, index=True)
    password_hash: Optional[str] = Field(default=None, max_length=256)
    name: str = Field(max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    city: Optional[str] = Field(default=None, max_length=100)
    birthyear: Optional[int] = Field(default=None)
    age: Optional[int] = Field(default=None)
    gender: Optional[str] = Field(default=None, max_length=100)
    role_id: int = Field(default=int(UserRole.NORMAL), index=True)
    phone: Optional[str] = Field(default=None, max_length=20, unique=True, index=True)
    phone_verified: bool = Field(default=False)
    provider: Optional[str] = Field(default=None, max_length=20, index=True)
    provider_id: Optional[str] = Field(default=None, max_length=255, index=True)
    avatar: Optional[str] = Field(default=None, max_length=512)
    is_email_verified: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    last_activity_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)

    @property
    def needs_profile_completion(self) -> bool:
        return not self.country or not self.birthyear or not self.gender
