# ahl_allah/schemas/auth/auth.py
from typing import Annotated, Optional, Dict, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from ...db.models import AgeGroup, EjazaType, Language, HefzMethod, OtpPurpose
from ...utils import normalize_phone, is_valid_phone, normalize_email, is_valid_email, utc_now


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _check_email(v: str) -> str:
    v = normalize_email(v)
    if not is_valid_email(v):
        raise ValueError('Invalid email format')
    return v


def _check_phone(v: str) -> str:
    phone_clean = normalize_phone(v)
    if not is_valid_phone(phone_clean):
        raise ValueError('Invalid phone number')
    return phone_clean


def _check_birthyear(v: int) -> int:
    if v < 1900 or v > utc_now().year:
        raise ValueError('Invalid birth year')
    return v


Email = Annotated[str, AfterValidator(_check_email)]
Phone = Annotated[str, AfterValidator(_check_phone)]
BirthYear = Annotated[int, AfterValidator(_check_birthyear)]


# =========================
# Password accounts
# =========================
class LoginRequest(CamelModel):
    email: Email
    password: str = Field(..., min_length=1)


class Preferences(CamelModel):
    """Student preferences; omitted values fall back to the profile defaults."""
    age_group: AgeGroup = Field(AgeGroup.ADULT, alias="ageGroup")
    level_at_quran: int = Field(1, ge=1, alias="levelAtQuran")
    number_per_week: int = Field(1, ge=1, le=7, alias="numberPerWeek")
    time_for_everytime: int = Field(30, ge=1, alias="timeForEverytime")
    language: Language = Language.ARABIC
    method_for_hefz: HefzMethod = Field(HefzMethod.VOICE, alias="methodForHefz")


class RegistrationBase(CamelModel):
    email: Email
    password: str
    name: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=1, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    birthyear: BirthYear
    gender: str = Field(..., min_length=1, max_length=100)

class StudentRegisterRequest(Preferences, RegistrationBase):
    pass


class TutorRegisterRequest(RegistrationBase):
    summery: str = Field(..., min_length=1)
    ejaza: str = Field(..., min_length=1)
    my_ejaza_enum: EjazaType = Field(..., alias="myEjazaEnum")
    arabic_name: Optional[str] = Field(None, max_length=100, alias="arabicName")
    degree: int = 0
    language: Language = Language.ARABIC
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    whatsapp_phone_number: Optional[str] = Field(None, alias="whatsappPhoneNumber")

    @field_validator('phone_number', 'whatsapp_phone_number')
    @classmethod
    def validate_contact(cls, v):
        if v is None or v == "":
            return None
        return _check_phone(v)


# =========================
# Email password reset
# =========================
class ForgotPasswordRequest(CamelModel):
    email: Email


class VerifyEmailOtpRequest(CamelModel):
    email: Email
    otp: str = Field(..., min_length=1, max_length=6)


class ResetPasswordRequest(VerifyEmailOtpRequest):
    new_password: str = Field(..., alias="newPassword")


# =========================
# Phone OTP
# =========================
class PhoneOtpRequest(CamelModel):
    phone: Phone
    purpose: Optional[OtpPurpose] = None

    @field_validator('purpose')
    @classmethod
    def validate_purpose(cls, v):
        if v == OtpPurpose.PASSWORD_RESET:
            raise ValueError('Purpose must be login or link')
        return v


class PhoneOtpVerifyRequest(CamelModel):
    phone: Phone
    otp: str = Field(..., min_length=1, max_length=6)
    link_to_user_id: Optional[str] = Field(None, alias="linkToUserId")


# =========================
# Refresh tokens
# =========================
class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, alias="refreshToken")


# =========================
# Federated accounts
# =========================
class CompleteProfileRequest(Preferences):
    user_id: Optional[str] = Field(None, alias="userId")
    country: str = Field(..., min_length=1, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    birthyear: BirthYear
    gender: str = Field(..., min_length=1, max_length=100)


class LinkOAuthRequest(CamelModel):
    email: Email
    password: str = Field(..., min_length=1)
    provider: str = Field(..., min_length=1, max_length=20)
    provider_id: str = Field(..., min_length=1, alias="providerId")
    avatar: Optional[str] = Field(None, max_length=512)


# =========================
# Responses
# =========================
def student_profile_out(profile) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    return {
        "availableMinutes": profile.available_minutes,
        "ageGroup": profile.age_group,
        "levelAtQuran": profile.level_at_quran,
        "numberPerWeek": profile.number_per_week,
        "timeForEverytime": profile.time_for_everytime,
        "language": profile.language,
        "methodForHefz": profile.method_for_hefz,
        "isPaid": profile.is_paid,
        "isFirstTime": profile.is_first_time,
    }


def tutor_profile_out(profile) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    return {
        "arabicName": profile.arabic_name,
        "summery": profile.summery,
        "ejaza": profile.ejaza,
        "myEjazaEnum": profile.my_ejaza_enum,
        "degree": profile.degree,
        "isAvailable": profile.is_available,
        "freeDaysCount": profile.free_days_count,
        "totalHoursCount": profile.total_hours_count,
        "language": profile.language,
        "phoneNumber": profile.phone_number,
        "whatsappPhoneNumber": profile.whatsapp_phone_number,
        "getPaid": profile.get_paid,
    }


def user_out(user, student_profile=None, tutor_profile=None) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "roleId": user.role_id,
        "country": user.country,
        "city": user.city,
        "birthyear": user.birthyear,
        "age": user.age,
        "gender": user.gender,
        "phone": user.phone,
        "phoneVerified": user.phone_verified,
        "provider": user.provider,
        "avatar": user.avatar,
        "isEmailVerified": user.is_email_verified,
        "needsProfileCompletion": user.needs_profile_completion,
        "normalUser": student_profile_out(student_profile),
        "mohafezUser": tutor_profile_out(tutor_profile),
    }


def session_out(result, include_refresh: bool = True) -> Dict[str, Any]:
    """Render an AuthResult as the `data` block of an auth response."""
    data = {
        "token": result.token,
        "user": user_out(result.user, result.student_profile, result.tutor_profile),
    }
    if include_refresh and result.refresh_token:
        data["refreshToken"] = result.refresh_token
    return data
