# libs/auth/tokens.py
"""
JWT issuing and verification for app users and admins.

- create_access_token / create_refresh_token: HS256 tokens for app users
- get_current_user:   FastAPI dependency for protected user routes
- get_optional_user:  same, but anonymous requests get None
- create_admin_access_token / create_admin_refresh_token: admin console tokens,
  signed with their own secrets so a user token can never pass as an admin one
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from libs.config import config
from libs.db import get_db
from models.user_models import User

logger = logging.getLogger(__name__)

# auto_error=False so missing credentials map to 401 rather than 403
security = HTTPBearer(auto_error=False)


def _encode(payload: dict, secret: str, expires_in: int) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        **payload,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        # keeps two tokens minted in the same second distinct
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, secret, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> dict:
    """Decode and verify a token; raises jwt.PyJWTError subclasses."""
    return jwt.decode(token, secret, algorithms=[config.JWT_ALGORITHM])


def create_access_token(user: User) -> str:
    return _encode(
        {"userId": str(user.id), "email": user.email},
        config.JWT_SECRET,
        config.JWT_EXPIRES_IN,
    )


def create_refresh_token(user: User) -> str:
    return _encode(
        {"userId": str(user.id), "email": user.email},
        config.JWT_REFRESH_SECRET,
        config.JWT_REFRESH_EXPIRES_IN,
    )


def refresh_token_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=config.JWT_REFRESH_EXPIRES_IN)


def user_id_from_access_token(token: str) -> Optional[str]:
    """Best-effort userId extraction, used by the rate limiter."""
    try:
        return decode_token(token, config.JWT_SECRET).get("userId")
    except jwt.PyJWTError:
        return None


async def _load_active_user(db: AsyncSession, user_id: str) -> Optional[User]:
    try:
        uid = uuid.UUID(str(user_id))
    except (TypeError, ValueError):
        return None
    result = await db.execute(select(User).where(User.id == uid))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Verify the bearer access token and load the active user.
    Use as a FastAPI dependency on protected routes.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_token(credentials.credentials, config.JWT_SECRET)
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired"
        ) from e
    except jwt.PyJWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        ) from e

    user = await _load_active_user(db, payload.get("userId"))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous or invalid tokens yield None."""
    if credentials is None:
        return None
    try:
        payload = decode_token(credentials.credentials, config.JWT_SECRET)
    except jwt.PyJWTError:
        return None
    return await _load_active_user(db, payload.get("userId"))


# ---------- Admin tokens ----------


def create_admin_access_token(admin, session_id: str) -> str:
    return _encode(
        {
            "sub": str(admin.id),
            "email": admin.email,
            "role": getattr(admin.role, "value", admin.role),
            "sessionId": session_id,
        },
        config.ADMIN_JWT_SECRET,
        config.ADMIN_SESSION_TTL,
    )


def create_admin_refresh_token(admin, session_id: str) -> str:
    return _encode(
        {"sub": str(admin.id), "sessionId": session_id},
        config.ADMIN_REFRESH_SECRET,
        config.ADMIN_REFRESH_TTL,
    )
