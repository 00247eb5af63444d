"""
One-time passcodes for email verification, login and phone verification.

Codes are 6 digits, single-use and expire after OTP_EXPIRY_MINUTES. A user
may request at most one code of each type per OTP_RESEND_COOLDOWN_SECONDS.
"""

import logging
import secrets
import uuid
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.constants import OTP_EXPIRY_MINUTES, OTP_LENGTH, OTP_RESEND_COOLDOWN_SECONDS
from common.timeutils import as_utc, utcnow
from models.user_models import OTPType, UserOTP

logger = logging.getLogger(__name__)


def generate_otp_code(length: int = OTP_LENGTH) -> str:
    return str(secrets.randbelow(10**length)).zfill(length)


class OTPService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _latest(self, user_id: uuid.UUID, otp_type: OTPType) -> Optional[UserOTP]:
        result = await self.db.execute(
            select(UserOTP)
            .where(UserOTP.user_id == user_id, UserOTP.otp_type == otp_type)
            .order_by(UserOTP.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def check_cooldown(self, user_id: uuid.UUID, otp_type: OTPType) -> None:
        """Raise 400 if a code of this type was issued within the cooldown window."""
        latest = await self._latest(user_id, otp_type)
        if latest is None:
            return
        elapsed = (utcnow() - as_utc(latest.created_at)).total_seconds()
        if elapsed < OTP_RESEND_COOLDOWN_SECONDS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Please wait before requesting a new verification code",
            )

    async def invalidate(self, user_id: uuid.UUID, otp_type: OTPType) -> None:
        await self.db.execute(
            update(UserOTP)
            .where(
                UserOTP.user_id == user_id,
                UserOTP.otp_type == otp_type,
                UserOTP.is_used.is_(False),
            )
            .values(is_used=True, used_at=utcnow())
        )

    async def create(
        self,
        user_id: uuid.UUID,
        otp_type: OTPType,
        ip_address: Optional[str] = None,
    ) -> UserOTP:
        otp = UserOTP(
            user_id=user_id,
            otp_code=generate_otp_code(),
            otp_type=otp_type,
            expires_at=utcnow() + timedelta(minutes=OTP_EXPIRY_MINUTES),
            is_used=False,
            attempts=0,
            ip_address=ip_address,
        )
        self.db.add(otp)
        await self.db.flush()
        logger.info(f"OTP issued: user_id={user_id}, type={otp_type.value}")
        return otp

    async def verify(self, user_id: uuid.UUID, code: str, otp_type: OTPType) -> Optional[UserOTP]:
        """
        Consume a matching, unused, unexpired code.

        On failure the newest unused code of this type gets its attempt
        counter bumped and None is returned. The caller commits.
        """
        result = await self.db.execute(
            select(UserOTP)
            .where(
                UserOTP.user_id == user_id,
                UserOTP.otp_type == otp_type,
                UserOTP.otp_code == code,
                UserOTP.is_used.is_(False),
            )
            .order_by(UserOTP.created_at.desc())
        )
        now = utcnow()
        otp = next(
            (candidate for candidate in result.scalars() if as_utc(candidate.expires_at) > now),
            None,
        )

        if otp is None:
            newest = await self.db.execute(
                select(UserOTP)
                .where(
                    UserOTP.user_id == user_id,
                    UserOTP.otp_type == otp_type,
                    UserOTP.is_used.is_(False),
                )
                .order_by(UserOTP.created_at.desc())
                .limit(1)
            )
            pending = newest.scalar_one_or_none()
            if pending is not None:
                pending.attempts = (pending.attempts or 0) + 1
            return None

        otp.is_used = True
        otp.used_at = now
        return otp
