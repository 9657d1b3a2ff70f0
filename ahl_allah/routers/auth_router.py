# ahl_allah/routers/auth_router.py
import logging
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import jwt
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from ..core.config import Settings
from ..dependencies import (
    get_app_settings,
    get_auth_service,
    get_phone_otp_service,
    get_password_reset_service,
    get_google_provider,
    get_apple_provider,
    get_optional_identity,
)
from ..application.ports.oauth_provider import OAuthProvider
from ..application.services.auth_service import AuthService
from ..application.services.phone_otp_service import PhoneOtpService
from ..application.services.password_reset_service import PasswordResetService
from ..application.services.token_service import TokenIdentity
from ..exceptions import (
    APIException,
    ValidationError,
    Unauthorized,
    Forbidden,
    InternalError,
    create_success_response,
)
from ..schemas.auth.auth import (
    LoginRequest,
    StudentRegisterRequest,
    TutorRegisterRequest,
    ForgotPasswordRequest,
    VerifyEmailOtpRequest,
    ResetPasswordRequest,
    PhoneOtpRequest,
    PhoneOtpVerifyRequest,
    RefreshTokenRequest,
    CompleteProfileRequest,
    LinkOAuthRequest,
    session_out,
)
from ..utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


# =========================
# Password accounts
# =========================
@router.post("/login")
def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.login(payload)
    return create_success_response("Login successful", session_out(result))


@router.post("/register")
def register(payload: StudentRegisterRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.register_student(payload)
    return create_success_response("Registration successful", session_out(result))


@router.post("/register-mohafez")
def register_mohafez(payload: TutorRegisterRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.register_tutor(payload)
    return create_success_response("Mohafez registration successful", session_out(result))


# =========================
# Email password reset
# =========================
@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, resets: PasswordResetService = Depends(get_password_reset_service)):
    resets.forgot(payload.email)
    return create_success_response("OTP sent to your email")


@router.post("/verify-otp")
def verify_email_otp(payload: VerifyEmailOtpRequest, resets: PasswordResetService = Depends(get_password_reset_service)):
    resets.verify(payload.email, payload.otp)
    return create_success_response("OTP verified successfully")


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, resets: PasswordResetService = Depends(get_password_reset_service)):
    resets.reset(payload.email, payload.otp, payload.new_password)
    return create_success_response("Password reset successfully")


# =========================
# Phone OTP
# =========================
@router.post("/phone/request-otp")
def request_phone_otp(payload: PhoneOtpRequest, phones: PhoneOtpService = Depends(get_phone_otp_service)):
    purpose = payload.purpose.value if payload.purpose else None
    data = phones.request_otp(payload.phone, purpose)
    return create_success_response("OTP sent", data)


@router.post("/phone/verify-otp")
def verify_phone_otp(
    payload: PhoneOtpVerifyRequest,
    identity: Optional[TokenIdentity] = Depends(get_optional_identity),
    phones: PhoneOtpService = Depends(get_phone_otp_service),
):
    if identity is not None and payload.link_to_user_id and payload.link_to_user_id != identity.user_id:
        raise Forbidden()
    result = phones.verify_otp(payload.phone, payload.otp, payload.link_to_user_id)
    message = "Phone linked and authenticated" if result.linked else "Authenticated with phone"
    return create_success_response(message, session_out(result))


# =========================
# Refresh tokens
# =========================
@router.post("/token/refresh")
def refresh_token(payload: RefreshTokenRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.refresh(payload.refresh_token)
    data = {"token": result.token}
    if result.refresh_token:
        data["refreshToken"] = result.refresh_token
    return create_success_response("Token refreshed", data)


@router.post("/token/revoke")
def revoke_token(payload: RefreshTokenRequest, auth: AuthService = Depends(get_auth_service)):
    auth.revoke(payload.refresh_token)
    return create_success_response("Token revoked")


# =========================
# Profile completion and linking
# =========================
@router.post("/complete-profile")
def complete_profile(
    payload: CompleteProfileRequest,
    identity: Optional[TokenIdentity] = Depends(get_optional_identity),
    auth: AuthService = Depends(get_auth_service),
):
    if identity is not None:
        if payload.user_id and payload.user_id != identity.user_id:
            raise Forbidden()
        user_id = identity.user_id
    else:
        if not payload.user_id:
            raise ValidationError("User ID is required")
        user_id = payload.user_id
    result = auth.complete_profile(user_id, payload)
    return create_success_response("Profile completed successfully", session_out(result))


@router.post("/link-oauth")
def link_oauth(payload: LinkOAuthRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.link_oauth(payload)
    return create_success_response("OAuth account linked successfully", session_out(result))


# =========================
# OAuth (Google / Apple)
# =========================
def _issue_state(provider: str, settings: Settings) -> str:
    now = utc_now()
    payload = {
        "provider": provider,
        "nonce": secrets.token_urlsafe(16),
        "iat": now,
        "exp": now + timedelta(minutes=settings.OAUTH_STATE_TTL_MINUTES),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _check_state(state: Optional[str], provider: str, settings: Settings) -> None:
    if not state:
        raise Unauthorized("OAuth authentication failed")
    try:
        payload = jwt.decode(state, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise Unauthorized("OAuth authentication failed")
    if payload.get("provider") != provider:
        raise Unauthorized("OAuth authentication failed")


def _failure_redirect(settings: Settings) -> RedirectResponse:
    query = urlencode({"message": "Authentication failed"})
    return RedirectResponse(f"{settings.FRONTEND_URL}/auth/error?{query}", status_code=302)


def _success_response(request: Request, result, provider: str, settings: Settings):
    if "application/json" in request.headers.get("accept", ""):
        data = session_out(result)
        data["needsProfileCompletion"] = result.user.needs_profile_completion
        return JSONResponse(content=create_success_response(f"{provider} authentication successful", data))
    query = urlencode({"token": result.token, "provider": provider})
    return RedirectResponse(f"{settings.FRONTEND_URL}/auth/callback?{query}", status_code=302)


async def _finish_oauth(request, provider: OAuthProvider, auth: AuthService, settings: Settings, state, **kwargs):
    try:
        _check_state(state, provider.name, settings)
        profile = await provider.fetch_profile(**kwargs)
        result = await run_in_threadpool(auth.federated_login, profile)
    except APIException as e:
        logger.warning(f"{provider.name} OAuth callback failed: {e.detail}")
        return _failure_redirect(settings)
    return _success_response(request, result, provider.name, settings)


@router.get("/google")
def google_login(
    settings: Settings = Depends(get_app_settings),
    provider: OAuthProvider = Depends(get_google_provider),
):
    if not settings.google_configured:
        raise InternalError("Google OAuth is not configured")
    return RedirectResponse(provider.authorization_url(_issue_state(provider.name, settings)), status_code=302)


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_app_settings),
    provider: OAuthProvider = Depends(get_google_provider),
    auth: AuthService = Depends(get_auth_service),
):
    if error:
        logger.warning(f"Google OAuth returned error: {error}")
        return _failure_redirect(settings)
    return await _finish_oauth(request, provider, auth, settings, state, code=code)


@router.get("/apple")
def apple_login(
    settings: Settings = Depends(get_app_settings),
    provider: OAuthProvider = Depends(get_apple_provider),
):
    if not settings.apple_configured:
        raise InternalError("Apple OAuth is not configured")
    return RedirectResponse(provider.authorization_url(_issue_state(provider.name, settings)), status_code=302)


@router.post("/apple/callback")
async def apple_callback(
    request: Request,
    code: Optional[str] = Form(None),
    id_token: Optional[str] = Form(None),
    state: Optional[str] = Form(None),
    user: Optional[str] = Form(None),
    error: Optional[str] = Form(None),
    settings: Settings = Depends(get_app_settings),
    provider: OAuthProvider = Depends(get_apple_provider),
    auth: AuthService = Depends(get_auth_service),
):
    if error:
        logger.warning(f"Apple OAuth returned error: {error}")
        return _failure_redirect(settings)
    return await _finish_oauth(
        request, provider, auth, settings, state, code=code, id_token=id_token, user_payload=user
    )


@router.get("/error")
def oauth_error(settings: Settings = Depends(get_app_settings)):
    return _failure_redirect(settings)
