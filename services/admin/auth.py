"""
Admin console authentication.

Login issues a short-lived access JWT carrying the session id and a long-lived
refresh JWT (also set as an HTTP-only cookie). Every admin request re-checks
the session in Redis, so logout and deactivation apply immediately.
"""

import logging
import math
import uuid
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.auth.session import SessionManager, get_session_manager
from common.constants import (
    ADMIN_LOCKOUT_MINUTES,
    ADMIN_MAX_FAILED_ATTEMPTS,
    ADMIN_SESSION_ABSOLUTE_MAX_TTL,
)
from common.timeutils import as_utc, utcnow
from libs.audit_logger import write_audit
from libs.auth.tokens import (
    create_admin_access_token,
    create_admin_refresh_token,
    decode_token,
    security,
)
from libs.config import config
from libs.db import get_db
from models.admin import Admin, AdminSession
from models.audit import AuditEventType

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class AdminAuthService:
    def __init__(self, db: AsyncSession, sessions: Optional[SessionManager] = None):
        self.db = db
        self.sessions = sessions or get_session_manager()

    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        email = email.strip().lower()
        if not email.endswith(config.ADMIN_EMAIL_DOMAIN.lower()):
            await write_audit(
                db=self.db,
                event_type=AuditEventType.authentication,
                message=f"Admin login rejected for outside domain: {email}",
                commit=True,
            )
            raise _unauthorized("Access restricted to authorized domains")

        result = await self.db.execute(select(Admin).where(Admin.email == email))
        admin = result.scalar_one_or_none()
        if admin is None:
            raise _unauthorized("Invalid credentials")

        now = utcnow()
        locked_until = as_utc(admin.locked_until)
        if locked_until is not None and locked_until > now:
            minutes = math.ceil((locked_until - now).total_seconds() / 60)
            raise _unauthorized(
                f"Account is temporarily locked. Please try again in {minutes} minutes."
            )

        if not admin.is_active:
            raise _unauthorized("Account is deactivated")

        if not verify_password(password, admin.password_hash):
            await self._record_failure(admin)
            raise _unauthorized("Invalid credentials")

        session = AdminSession(
            admin_id=admin.id,
            ip_address=ip_address,
            user_agent=user_agent,
            is_active=True,
            expires_at=now + timedelta(seconds=config.ADMIN_SESSION_TTL),
            refresh_token_expires_at=now + timedelta(seconds=config.ADMIN_REFRESH_TTL),
            last_activity_at=now,
        )
        self.db.add(session)
        await self.db.flush()
        sid = str(session.id)

        try:
            self.sessions.create_session(
                sid, str(admin.id), admin.email, admin.role.value, ip_address, user_agent
            )
        except RuntimeError as e:
            await self.db.rollback()
            logger.error(f"Admin session could not be stored: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Session store unavailable, please try again later",
            )

        admin.failed_login_attempts = 0
        admin.locked_until = None
        admin.last_login_at = now
        admin.last_login_ip = ip_address
        await write_audit(
            db=self.db,
            event_type=AuditEventType.authentication,
            message=f"Admin logged in: {admin.email}",
            admin_id=admin.id,
            event_id=session.id,
        )
        await self.db.commit()
        logger.info(f"Admin login: admin_id={admin.id}, session_id={sid}")

        return {
            "admin": admin,
            "session_id": sid,
            "access_token": create_admin_access_token(admin, sid),
            "refresh_token": create_admin_refresh_token(admin, sid),
        }

    async def _record_failure(self, admin: Admin) -> None:
        admin.failed_login_attempts = (admin.failed_login_attempts or 0) + 1
        message = f"Failed admin login for {admin.email} (attempt {admin.failed_login_attempts})"
        if admin.failed_login_attempts >= ADMIN_MAX_FAILED_ATTEMPTS:
            admin.locked_until = utcnow() + timedelta(minutes=ADMIN_LOCKOUT_MINUTES)
            admin.failed_login_attempts = 0
            message = f"Admin account locked after repeated failures: {admin.email}"
            logger.warning(message)
        await write_audit(
            db=self.db,
            event_type=AuditEventType.authentication,
            message=message,
            admin_id=admin.id,
        )
        await self.db.commit()

    async def logout(self, admin: Admin, session_id: str) -> None:
        session = await self.db.get(AdminSession, uuid.UUID(session_id))
        if session is not None:
            session.is_active = False
        self.sessions.revoke(session_id)
        await write_audit(
            db=self.db,
            event_type=AuditEventType.authentication,
            message=f"Admin logged out: {admin.email}",
            admin_id=admin.id,
            event_id=uuid.UUID(session_id),
        )
        await self.db.commit()

    async def revoke_all_sessions(self, admin_id: uuid.UUID) -> int:
        """Shut an admin out everywhere: Redis sessions and their AdminSession rows."""
        revoked = self.sessions.revoke_all(str(admin_id))
        await self.db.execute(
            update(AdminSession)
            .where(AdminSession.admin_id == admin_id, AdminSession.is_active.is_(True))
            .values(is_active=False)
        )
        await self.db.commit()
        if revoked:
            logger.info(f"Revoked {revoked} live sessions for inactive admin {admin_id}")
        return revoked

    async def refresh(self, refresh_token: Optional[str]) -> dict:
        if not refresh_token:
            raise _unauthorized("Refresh token is required")
        try:
            payload = decode_token(refresh_token, config.ADMIN_REFRESH_SECRET)
            session_id = uuid.UUID(str(payload.get("sessionId")))
            admin_id = uuid.UUID(str(payload.get("sub")))
        except (jwt.PyJWTError, ValueError) as e:
            raise _unauthorized("Invalid refresh token") from e

        session = await self.db.get(AdminSession, session_id)
        now = utcnow()
        if (
            session is None
            or not session.is_active
            or session.admin_id != admin_id
            or as_utc(session.refresh_token_expires_at) <= now
        ):
            raise _unauthorized("Session expired or revoked")

        admin = await self.db.get(Admin, admin_id)
        if admin is None or not admin.is_active:
            await self.revoke_all_sessions(admin_id)
            raise _unauthorized("Admin account is inactive")

        started = as_utc(session.created_at)
        if now - started > timedelta(seconds=ADMIN_SESSION_ABSOLUTE_MAX_TTL):
            session.is_active = False
            await self.db.commit()
            self.sessions.revoke(str(session.id))
            raise _unauthorized("Session expired or revoked")

        sid = str(session.id)
        # The live session may have timed out in Redis while the refresh token is still valid
        if self.sessions.get_session(sid) is None:
            try:
                self.sessions.create_session(
                    sid, str(admin.id), admin.email, admin.role.value,
                    session.ip_address, session.user_agent,
                    created_at=started,
                )
            except RuntimeError as e:
                logger.error(f"Admin session could not be restored: {e}")
                raise HTTPException(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    detail="Session store unavailable, please try again later",
                )

        session.expires_at = now + timedelta(seconds=config.ADMIN_SESSION_TTL)
        session.last_activity_at = now
        await self.db.commit()
        return {"admin": admin, "access_token": create_admin_access_token(admin, sid)}


async def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Admin:
    """
    Admin guard: bearer admin JWT, live Redis session, active admin.
    The session id is left on request.state.admin_session_id.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_token(credentials.credentials, config.ADMIN_JWT_SECRET)
    except jwt.ExpiredSignatureError as e:
        raise _unauthorized("Token expired") from e
    except jwt.PyJWTError as e:
        raise _unauthorized("Invalid token") from e

    admin_id = str(payload.get("sub"))
    sid = str(payload.get("sessionId"))
    sessions = get_session_manager()
    if not sessions.is_session_valid(sid, admin_id):
        raise _unauthorized("Session expired or revoked")
    sessions.update_last_seen(sid)

    try:
        admin = await db.get(Admin, uuid.UUID(admin_id))
    except ValueError:
        admin = None
    if admin is None or not admin.is_active:
        if admin is not None:
            await AdminAuthService(db, sessions).revoke_all_sessions(admin.id)
        raise _unauthorized("Admin account is inactive")

    request.state.admin_session_id = sid
    return admin
