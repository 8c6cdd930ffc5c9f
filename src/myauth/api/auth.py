"""Auth API — registration, verification, login, refresh, logout, reset.

Learn: Routes for the whole account lifecycle:
- POST /auth/register → create an unverified user, email a verify link
- GET /auth/verify-email/:token → mark the email verified
- POST /auth/resend-verification → email a fresh verify link
- POST /auth/login → email/password → access + refresh tokens
- POST /auth/refresh-token → refresh token → new access token
- POST /auth/logout → revoke the refresh token
- POST /auth/forgot-password → email a reset link
- POST /auth/reset-password/:token → set a new password
- GET /auth/me → current user from the access token

Tokens go out twice: in the JSON body and as HttpOnly cookies
(accessToken, refreshToken). Browser clients use the cookies; API
clients use the body fields.
"""

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Response

from myauth.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    get_session_service,
    get_verification_service,
)
from myauth.config import settings
from myauth.schemas.auth import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserRead,
    VerifyEmailResponse,
)
from myauth.services.session_service import SessionService
from myauth.services.verification_service import VerificationService

router = APIRouter(prefix="/auth")

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

# Same answer whether or not the address is registered
RESEND_MESSAGE = "If that account exists and is unverified, a verification email is on its way."
FORGOT_MESSAGE = "If that account exists, a password reset link has been sent to it."


def _set_cookie(response: Response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def _set_access_cookie(response: Response, token: str) -> None:
    _set_cookie(response, ACCESS_COOKIE, token, settings.access_token_expire_minutes * 60)


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    svc: VerificationService = Depends(get_verification_service),
):
    """Create a new, unverified user account."""
    fields = body.model_dump(exclude={"password"})
    user = await svc.register(fields, body.password)
    return RegisterResponse(
        message="Registration successful! Check your email to verify your account.",
        user=UserRead.model_validate(user),
    )


# ─── Email verification ──────────────────────────────────


@router.get("/verify-email/{token}", response_model=VerifyEmailResponse)
async def verify_email(
    token: str,
    svc: VerificationService = Depends(get_verification_service),
):
    result = await svc.verify_email(token)
    if result.already_verified:
        return VerifyEmailResponse(message="Email already verified", already_verified=True)
    return VerifyEmailResponse(message="Email verified successfully. You can now log in.")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    body: EmailRequest,
    svc: VerificationService = Depends(get_verification_service),
):
    await svc.resend_verification(body.email)
    return MessageResponse(message=RESEND_MESSAGE)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    response: Response,
    svc: SessionService = Depends(get_session_service),
):
    """Login with email and password → JWT tokens (body + cookies)."""
    session = await svc.login(body.email, body.password)

    _set_access_cookie(response, session.access.token)
    _set_cookie(
        response,
        REFRESH_COOKIE,
        session.refresh.token,
        settings.refresh_token_expire_days * 24 * 60 * 60,
    )

    return LoginResponse(
        message="Logged in successfully",
        access_token=session.access.token,
        refresh_token=session.refresh.token,
        expires_at=session.access.expires_at,
        user=UserRead.model_validate(session.user),
    )


# ─── Refresh / logout ────────────────────────────────────


@router.post("/refresh-token", response_model=RefreshResponse)
async def refresh_token(
    response: Response,
    body: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    svc: SessionService = Depends(get_session_service),
):
    """Exchange an active refresh token for a new access token."""
    token = (body.refresh_token if body else None) or refresh_cookie
    access = await svc.refresh(token)

    _set_access_cookie(response, access.token)
    return RefreshResponse(
        message="Access token refreshed successfully",
        access_token=access.token,
        expires_at=access.expires_at,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    body: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    svc: SessionService = Depends(get_session_service),
):
    token = (body.refresh_token if body else None) or refresh_cookie
    await svc.logout(token)

    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return MessageResponse(message="Logged out successfully")


# ─── Password reset ──────────────────────────────────────


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: EmailRequest,
    svc: VerificationService = Depends(get_verification_service),
):
    await svc.forgot_password(body.email)
    return MessageResponse(message=FORGOT_MESSAGE)


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    svc: VerificationService = Depends(get_verification_service),
):
    await svc.reset_password(token, body.password)
    return MessageResponse(message="Password reset successfully. You can now log in.")


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=MeResponse)
async def get_me(identity: CurrentIdentity = Depends(get_current_user)):
    """Get the current authenticated user's identity."""
    return MeResponse(id=identity.user_id, email=identity.email)
