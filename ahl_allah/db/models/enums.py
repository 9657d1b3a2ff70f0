# ahl_allah/db/models/enums.py
from enum import IntEnum, Enum


class UserRole(IntEnum):
    ADMIN = 1
    TUTOR = 2
    NORMAL = 3
    PENDING_TUTOR = 10


class AgeGroup(IntEnum):
    CHILD = 1
    TEEN = 2
    ADULT = 3


class EjazaType(IntEnum):
    QURAN = 1
    HADITH = 2
    BOTH = 3


class Language(IntEnum):
    ARABIC = 1
    ENGLISH = 2
    ALL = 3


class HefzMethod(IntEnum):
    VOICE = 1
    VIDEO = 2
    REAL = 3


class OtpChannel(str, Enum):
    PHONE = "phone"
    EMAIL = "email"


class OtpPurpose(str, Enum):
    LOGIN = "login"
    LINK = "link"
    PASSWORD_RESET = "password_reset"
