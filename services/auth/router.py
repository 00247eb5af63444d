"""
User authentication API.

Passwordless: accounts are verified and logged in with email OTP codes, or
through Google sign-in. Successful logins return an access/refresh token pair.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from common.schemas import ok
from libs.auth.tokens import get_current_user
from libs.db import get_db
from libs.fastapi_service import record_business_event
from libs.rate_limit import default_rate_limiter, otp_rate_limiter
from models.user_models import User
from services.auth.schemas import (
    CapturePhoneRequest,
    EmailOnlyRequest,
    GoogleAuthRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    RequestLoginOtpRequest,
    VerifyEmailRequest,
    VerifyLoginOtpRequest,
    VerifyPhoneRequest,
)
from services.auth.service import AuthService
from services.users.legal import needs_legal_update
from services.users.schemas import sanitize_user

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
    dependencies=[Depends(default_rate_limiter)],
)


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"{action} failed: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{action} failed",
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await AuthService(db).register(body, request)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("Registration", e)

    record_business_event(request, "user_registrations_total", provider="local")
    return result


@router.post("/verify-email")
async def verify_email(body: VerifyEmailRequest, db: AsyncSession = Depends(get_db)):
    data = await AuthService(db).verify_email(body.email, body.otp_code)
    return ok(data, message="Email verified successfully")


@router.post("/resend-verification", dependencies=[Depends(otp_rate_limiter)])
async def resend_verification(
    body: EmailOnlyRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).resend_verification(body.email, request)
    record_business_event(request, "otp_sent_total", type="email_verification")
    return ok(message="A new verification code has been sent to your email.")


@router.post("/login/request-otp", dependencies=[Depends(otp_rate_limiter)])
async def request_login_otp(
    body: RequestLoginOtpRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await AuthService(db).request_login_otp(body, request)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("Login OTP request", e)

    if result["data"].get("requiresOtpVerification"):
        record_business_event(request, "otp_sent_total", type="login")
    return result


@router.post("/login/verify-otp")
async def verify_login_otp(
    body: VerifyLoginOtpRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    try:
        data = await AuthService(db).verify_login_otp(body, request)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("Login", e)
    return ok(data, message="Login successful")


@router.post("/login/resend-otp", dependencies=[Depends(otp_rate_limiter)])
async def resend_login_otp(
    body: EmailOnlyRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).resend_login_otp(body.email, request)
    record_business_event(request, "otp_sent_total", type="login")
    return ok(message="A new verification code has been sent to your email.")


@router.post("/refresh-token")
async def refresh_token(body: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    tokens = await AuthService(db).refresh(body.refresh_token)
    return ok(tokens)


@router.post("/logout")
async def logout(
    body: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).logout(current_user, body.fcm_token if body else None)
    return ok(message="Logged out successfully")


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return ok(
        {
            "user": sanitize_user(current_user),
            "needsLegalUpdate": needs_legal_update(
                current_user.terms_version, current_user.privacy_version
            ),
        }
    )


@router.post("/google")
async def google_auth(
    body: GoogleAuthRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    try:
        data = await AuthService(db).google_login(body, request)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("Google sign-in", e)

    if data.get("isNewUser"):
        record_business_event(request, "user_registrations_total", provider="google")
    return ok(data, message="Google authentication successful")


@router.post("/capture-phone", dependencies=[Depends(otp_rate_limiter)])
async def capture_phone(
    body: CapturePhoneRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await AuthService(db).capture_phone(current_user, body.phone_number, request)
    record_business_event(request, "otp_sent_total", type="phone_verification")
    return ok({"user": user}, message="Phone number saved. A verification code has been sent.")


@router.post("/verify-phone")
async def verify_phone(
    body: VerifyPhoneRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await AuthService(db).verify_phone(current_user, body.otp_code)
    return ok({"user": user}, message="Phone number verified")
