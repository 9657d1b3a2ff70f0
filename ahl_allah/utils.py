import re
import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional

PHONE_PATTERN = re.compile(r'^\+\d{1,4}\d{6,14}$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


# =========================
# Time
# =========================
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# Normalization
# =========================
def normalize_phone(phone: str) -> str:
    """Strip everything but digits and a leading '+'."""
    return re.sub(r'[^\d+]', '', str(phone).strip())


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(phone))


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


# =========================
# OTP / token helpers
# =========================
def generate_otp() -> str:
    """Generate a 6-digit OTP, uniform in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def sha256_hex(value: str) -> str:
    """One-way digest used for OTP codes and opaque refresh tokens."""
    return hashlib.sha256(value.encode()).hexdigest()


def mask_destination(value: str) -> str:
    """Redact a phone number or email for responses and logs."""
    if "@" in value:
        local, domain = value.split("@", 1)
        return f"{local[:2]}***@{domain}"
    return f"{value[:3]}***{value[-2:]}"
