# ahl_allah/db/models/users/profile.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

from ..types import UtcDateTime
from ....utils import utc_now

from ..enums import AgeGroup, EjazaType, Language, HefzMethod


class StudentProfile(SQLModel, table=True):
    __tablename__ = "student_profiles"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", unique=True, index=True)
    available_minutes: int = Field(default=0)
    age_group: int = Field(default=int(AgeGroup.ADULT))
    level_at_quran: int = Field(default=1)
    number_per_week: int = Field(default=1)
    time_for_everytime: int = Field(default=30)
    language: int = Field(default=int(Language.ARABIC))
    method_for_hefz: int = Field(default=int(HefzMethod.VOICE))
    is_paid: bool = Field(default=False)
    is_first_time: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)


class TutorProfile(SQLModel, table=True):
    __tablename__ = "tutor_profiles"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", unique=True, index=True)
    arabic_name: Optional[str] = Field(default=None, max_length=100)
    summery: str
    ejaza: str
    my_ejaza_enum: int = Field(default=int(EjazaType.QURAN))
    degree: int = Field(default=0)
    is_available: bool = Field(default=True)
    free_days_count: int = Field(default=0)
    total_hours_count: int = Field(default=0)
    language: int = Field(default=int(Language.ARABIC))
    phone_number: Optional[str] = Field(default=None, max_length=20)
    whatsapp_phone_number: Optional[str] = Field(default=None, max_length=20)
    get_paid: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
