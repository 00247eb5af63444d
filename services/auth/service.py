"""
Passwordless authentication flows: email OTP registration and login,
Google sign-in, token refresh and phone capture.
"""

import logging
import uuid
from typing import Optional

import jwt
from fastapi import HTTPException, Request, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.constants import (
    CURRENT_PRIVACY_VERSION,
    CURRENT_TERMS_VERSION,
    OTP_EXPIRY_MINUTES,
    TEST_ACCOUNTS,
    TEST_SETTINGS,
)
from common.timeutils import as_utc, utcnow
from libs.auth.google_verify import verify_google_id_token
from libs.auth.tokens import (
    create_access_token,
    create_refresh_token,
    decode_token,
    refresh_token_expiry,
)
from libs.config import config
from libs.rate_limit import client_ip
from models.user_models import AuthProvider, OTPType, User, UserDevice
from services.auth.devices import DeviceService
from services.auth.otp import OTPService
from services.auth.schemas import (
    GoogleAuthRequest,
    RegisterRequest,
    RequestLoginOtpRequest,
    VerifyLoginOtpRequest,
)
from services.notification.manager import NotificationManager
from services.users.legal import needs_legal_update
from services.users.schemas import sanitize_user

logger = logging.getLogger(__name__)


def is_test_account(user_or_email) -> bool:
    if isinstance(user_or_email, User):
        return user_or_email.is_test_account or user_or_email.email.lower() in TEST_ACCOUNTS
    return (user_or_email or "").lower() in TEST_ACCOUNTS


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.otps = OTPService(db)
        self.devices = DeviceService(db)
        self.notifications = NotificationManager(db)

    # ---------- lookups ----------

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def _phone_taken(self, phone_number: str, exclude_user_id=None) -> bool:
        query = select(User.id).where(User.phone_number == phone_number)
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        result = await self.db.execute(query)
        return result.first() is not None

    # ---------- tokens ----------

    async def _issue_tokens(self, user: User) -> dict:
        """Mint an access/refresh pair, persist the refresh token and commit."""
        access_token = create_access_token(user)
        refresh_token = create_refresh_token(user)
        user.refresh_token = refresh_token
        user.refresh_token_expires_at = refresh_token_expiry()
        user.last_login_at = utcnow()
        await self.db.commit()
        return {"accessToken": access_token, "refreshToken": refresh_token}

    async def _register_device(
        self,
        user: User,
        fcm_token: Optional[str],
        request: Request,
        device_info: Optional[str],
    ) -> None:
        if not fcm_token:
            return
        await self.devices.register_or_update(
            user,
            fcm_token,
            request,
            device_info,
            skip_notification=is_test_account(user),
        )

    async def _send_email_otp(self, user: User, otp_type: OTPType, request: Request) -> None:
        otp = await self.otps.create(user.id, otp_type, client_ip(request))
        await self.db.commit()
        kind = "email_verification" if otp_type == OTPType.EMAIL_VERIFICATION else "login_otp"
        await self.notifications.send_email(
            user.email,
            kind,
            {
                "first_name": user.first_name,
                "code": otp.otp_code,
                "expiry_minutes": OTP_EXPIRY_MINUTES,
            },
        )

    def _login_payload(self, user: User, tokens: dict) -> dict:
        return {
            "user": sanitize_user(user),
            **tokens,
            "isTestAccount": is_test_account(user),
            "needsLegalUpdate": needs_legal_update(user.terms_version, user.privacy_version),
        }

    # ---------- registration ----------

    async def register(self, body: RegisterRequest, request: Request) -> dict:
        if await self.get_user_by_email(body.email):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
        if body.phone_number and await self._phone_taken(body.phone_number):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail="Phone number already exists"
            )

        test_config = TEST_ACCOUNTS.get(body.email)
        now = utcnow()
        user = User(
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            sex=body.sex,
            phone_number=body.phone_number,
            phone_number_captured=bool(body.phone_number),
            country=body.country or "Nigeria",
            language=body.language or "English",
            auth_provider=AuthProvider.LOCAL,
            is_test_account=test_config is not None,
            is_verified=test_config is not None and TEST_SETTINGS["bypass_email_verification"],
            google_id=test_config["google_id"] if test_config else None,
            terms_version=CURRENT_TERMS_VERSION,
            privacy_version=CURRENT_PRIVACY_VERSION,
            terms_accepted_at=now,
            privacy_accepted_at=now,
        )
        self.db.add(user)
        await self.db.commit()
        logger.info(f"User registered: user_id={user.id}, test_account={user.is_test_account}")

        await self._register_device(user, body.fcm_token, request, body.device_info)

        if user.is_test_account and TEST_SETTINGS["bypass_otp"]:
            tokens = await self._issue_tokens(user)
            return {
                "success": True,
                "message": "Test account registered successfully",
                "data": self._login_payload(user, tokens),
            }

        await self._send_email_otp(user, OTPType.EMAIL_VERIFICATION, request)
        return {
            "success": True,
            "message": "Registration successful. Please check your email for the verification code.",
            "data": {"user": sanitize_user(user), "requiresVerification": True},
        }

    async def verify_email(self, email: str, otp_code: str) -> dict:
        user = await self.get_user_by_email(email)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        if user.is_verified:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Email already verified"
            )

        otp = await self.otps.verify(user.id, otp_code, OTPType.EMAIL_VERIFICATION)
        if otp is None:
            await self.db.commit()
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired verification code",
            )

        user.is_verified = True
        tokens = await self._issue_tokens(user)
        logger.info(f"Email verified: user_id={user.id}")
        return self._login_payload(user, tokens)

    async def resend_verification(self, email: str, request: Request) -> None:
        user = await self.get_user_by_email(email)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        if user.is_verified:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Email already verified"
            )

        await self.otps.check_cooldown(user.id, OTPType.EMAIL_VERIFICATION)
        await self.otps.invalidate(user.id, OTPType.EMAIL_VERIFICATION)
        await self._send_email_otp(user, OTPType.EMAIL_VERIFICATION, request)

    # ---------- login ----------

    async def _get_login_user(self, email: str) -> User:
        user = await self.get_user_by_email(email)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="No account found with this email. Please sign up if you don't have an account.",
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Account has been deactivated"
            )
        return user

    async def request_login_otp(self, body: RequestLoginOtpRequest, request: Request) -> dict:
        user = await self._get_login_user(body.email)

        if is_test_account(user) and TEST_SETTINGS["bypass_otp"]:
            await self._register_device(user, body.fcm_token, request, body.device_info)
            tokens = await self._issue_tokens(user)
            return {
                "success": True,
                "message": "Test account login successful",
                "data": self._login_payload(user, tokens),
            }

        if not user.is_verified:
            await self._send_email_otp(user, OTPType.EMAIL_VERIFICATION, request)
            return {
                "success": False,
                "message": "Email not verified. A new verification code has been sent to your email.",
                "data": {"email": user.email, "requiresVerification": True},
            }

        await self.otps.check_cooldown(user.id, OTPType.LOGIN)
        await self._send_email_otp(user, OTPType.LOGIN, request)
        return {
            "success": True,
            "message": "A verification code has been sent to your email.",
            "data": {"email": user.email, "requiresOtpVerification": True},
        }

    async def verify_login_otp(self, body: VerifyLoginOtpRequest, request: Request) -> dict:
        user = await self._get_login_user(body.email)

        if not (is_test_account(user) and TEST_SETTINGS["bypass_otp"]):
            otp = await self.otps.verify(user.id, body.otp_code, OTPType.LOGIN)
            if otp is None:
                await self.db.commit()
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid or expired verification code",
                )

        tokens = await self._issue_tokens(user)
        await self._register_device(user, body.fcm_token, request, body.device_info)
        logger.info(f"Login successful: user_id={user.id}")
        return self._login_payload(user, tokens)

    async def resend_login_otp(self, email: str, request: Request) -> None:
        user = await self._get_login_user(email)
        if not user.is_verified:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Please verify your email first"
            )

        await self.otps.check_cooldown(user.id, OTPType.LOGIN)
        await self.otps.invalidate(user.id, OTPType.LOGIN)
        await self._send_email_otp(user, OTPType.LOGIN, request)

    # ---------- session ----------

    async def refresh(self, refresh_token: str) -> dict:
        invalid = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token"
        )
        try:
            payload = decode_token(refresh_token, config.JWT_REFRESH_SECRET)
        except jwt.PyJWTError as e:
            raise invalid from e

        try:
            user = await self.db.get(User, uuid.UUID(str(payload.get("userId"))))
        except ValueError as e:
            raise invalid from e
        if (
            user is None
            or not user.is_active
            or user.refresh_token != refresh_token
            or user.refresh_token_expires_at is None
            or as_utc(user.refresh_token_expires_at) <= utcnow()
        ):
            raise invalid

        tokens = await self._issue_tokens(user)
        return tokens

    async def logout(self, user: User, fcm_token: Optional[str]) -> None:
        user.refresh_token = None
        user.refresh_token_expires_at = None
        if fcm_token:
            await self.db.execute(
                update(UserDevice)
                .where(UserDevice.user_id == user.id, UserDevice.fcm_token == fcm_token)
                .values(is_active=False)
            )
        await self.db.commit()
        logger.info(f"User logged out: user_id={user.id}")

    # ---------- google ----------

    async def google_login(self, body: GoogleAuthRequest, request: Request) -> dict:
        claims = verify_google_id_token(body.id_token)
        google_id = claims["sub"]
        email = claims["email"].lower()

        result = await self.db.execute(select(User).where(User.google_id == google_id))
        user = result.scalar_one_or_none()
        is_new_user = False

        if user is None:
            user = await self.get_user_by_email(email)
            if user is not None:
                # Existing email account: link it to Google
                user.google_id = google_id
                user.is_verified = True
                if not user.profile_picture and claims.get("picture"):
                    user.profile_picture = claims["picture"]
                logger.info(f"Linked Google account: user_id={user.id}")

        if user is None:
            if body.phone_number and await self._phone_taken(body.phone_number):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT, detail="Phone number already exists"
                )
            now = utcnow()
            user = User(
                email=email,
                first_name=claims.get("given_name") or email.split("@")[0],
                last_name=claims.get("family_name") or "",
                google_id=google_id,
                auth_provider=AuthProvider.GOOGLE,
                profile_picture=claims.get("picture"),
                phone_number=body.phone_number,
                phone_number_captured=bool(body.phone_number),
                is_verified=True,
                is_test_account=email in TEST_ACCOUNTS,
                terms_version=CURRENT_TERMS_VERSION,
                privacy_version=CURRENT_PRIVACY_VERSION,
                terms_accepted_at=now,
                privacy_accepted_at=now,
            )
            self.db.add(user)
            is_new_user = True
        elif body.phone_number and not user.phone_number:
            if await self._phone_taken(body.phone_number, exclude_user_id=user.id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT, detail="Phone number already exists"
                )
            user.phone_number = body.phone_number
            user.phone_number_captured = True

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Account has been deactivated"
            )

        tokens = await self._issue_tokens(user)
        await self._register_device(user, body.fcm_token, request, body.device_info)
        return {
            **self._login_payload(user, tokens),
            "isNewUser": is_new_user,
            "requiresPhoneNumber": not user.phone_number,
        }

    # ---------- phone ----------

    async def capture_phone(self, user: User, phone_number: str, request: Request) -> dict:
        if await self._phone_taken(phone_number, exclude_user_id=user.id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail="Phone number already exists"
            )

        user.phone_number = phone_number
        user.phone_number_captured = True
        otp = await self.otps.create(user.id, OTPType.PHONE_VERIFICATION, client_ip(request))
        await self.db.commit()

        sent = await self.notifications.send_sms(
            phone_number,
            "phone_verification",
            {"code": otp.otp_code, "expiry_minutes": OTP_EXPIRY_MINUTES},
        )
        if not sent:
            logger.warning(f"Phone verification SMS not delivered: user_id={user.id}")
        return sanitize_user(user)

    async def verify_phone(self, user: User, otp_code: str) -> dict:
        otp = await self.otps.verify(user.id, otp_code, OTPType.PHONE_VERIFICATION)
        await self.db.commit()
        if otp is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired verification code",
            )
        logger.info(f"Phone verified: user_id={user.id}")
        return sanitize_user(user)
