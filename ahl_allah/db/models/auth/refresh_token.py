# ahl_allah/db/models/auth/refresh_token.py
from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import Optional

from ..types import UtcDateTime
from ....utils import utc_now


class RefreshToken(SQLModel, table=True):
    __tablename__ = "refresh_tokens"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    token_hash: str = Field(max_length=64, unique=True, index=True)
    expires_at: datetime = Field(index=True, sa_type=UtcDateTime)
    revoked: bool = Field(default=False, index=True)
    revoked_at: Optional[datetime] = Field(default=None, sa_type=UtcDateTime)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
