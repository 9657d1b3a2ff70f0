# ahl_allah/db/models/auth/otp.py
from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import Optional

from ..types import UtcDateTime
from ....utils import utc_now


class OtpChallenge(SQLModel, table=True):
    __tablename__ = "otp_challenges"
    id: Optional[int] = Field(default=None, primary_key=True)
    channel: str = Field(max_length=10)
    destination: str = Field(max_length=256, index=True)
    code_hash: str = Field(max_length=64)
    purpose: str = Field(max_length=20)
    expires_at: datetime = Field(index=True, sa_type=UtcDateTime)
    attempts_used: int = Field(default=0)
    resend_count: int = Field(default=0)
    last_sent_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    consumed: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
