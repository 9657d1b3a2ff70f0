# Models package (re-export feature modules for stable imports)
from .enums import UserRole, AgeGroup, EjazaType, Language, HefzMethod, OtpChannel, OtpPurpose
from .users.user import User
from .users.profile import StudentProfile, TutorProfile
from .auth.otp import OtpChallenge
from .auth.refresh_token import RefreshToken

__all__ = [
    "UserRole",
    "AgeGroup",
    "EjazaType",
    "Language",
    "HefzMethod",
    "OtpChannel",
    "OtpPurpose",
    "User",
    "StudentProfile",
    "TutorProfile",
    "OtpChallenge",
    "RefreshToken",
]
