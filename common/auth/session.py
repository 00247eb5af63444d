"""
Session management module for the admin console.

Admin sessions are tracked server-side in Redis so that logout and
deactivation take effect immediately, regardless of access token lifetime:
- Server-generated session IDs (sid) embedded in admin access tokens
- Session storage with TTL (sliding or absolute)
- Per-admin session index for revoke-all

The AdminSession table keeps the durable history; Redis is the source of
truth for whether a session is live right now.
"""

import time
from datetime import datetime, timezone
from typing import Optional

from common.constants import (
    ADMIN_SESSION_ABSOLUTE_MAX_TTL,
    ADMIN_SESSION_KEY_PREFIX,
    ADMIN_SESSION_SLIDING_REFRESH_INTERVAL,
    ADMIN_SESSION_TTL_STRATEGY,
    ADMIN_SESSIONS_KEY_PREFIX,
)
from libs.config import config
from libs.redis_client import get_redis_client


class SessionManager:
    """
    Manages admin sessions in Redis.

    Features:
    - Sessions keyed by the AdminSession row id
    - Sliding TTL with an absolute max lifetime
    - Per-admin session index for revoke-all
    - Fails closed when Redis is unavailable
    """

    def __init__(self, ttl: Optional[int] = None):
        """Initialize session manager with Redis client."""
        self.redis = get_redis_client()
        self.ttl = ttl or config.ADMIN_SESSION_TTL

    def create_session(
        self,
        sid: str,
        admin_id: str,
        email: str,
        role: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> str:
        """
        Store a new admin session in Redis.

        Pass created_at when restoring an existing session so the absolute
        max lifetime keeps counting from the original login.

        Creates two Redis keys:
        1. admin_session:<sid> - Session data (JSON)
        2. admin_sessions:<admin_id> - Set of session IDs for this admin

        Raises:
            RuntimeError: If Redis is unavailable (fail closed)
        """
        if not self.redis.is_connected():
            raise RuntimeError(
                "Redis is unavailable. Cannot create session. "
                "This is a fail-closed security policy."
            )

        now = datetime.now(timezone.utc)
        started = created_at or now
        session_data = {
            "admin_id": admin_id,
            "email": email,
            "role": role,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "created_at": started.isoformat(),
            "last_seen_at": now.isoformat(),
            "status": "active",
            "max_expires_at": started.timestamp() + ADMIN_SESSION_ABSOLUTE_MAX_TTL,
        }

        session_key = f"{ADMIN_SESSION_KEY_PREFIX}{sid}"
        if not self.redis.set_json(session_key, session_data, ttl=self.ttl):
            raise RuntimeError("Failed to store session in Redis")

        self.redis.sadd(f"{ADMIN_SESSIONS_KEY_PREFIX}{admin_id}", sid)
        return sid

    def get_session(self, sid: str) -> Optional[dict]:
        """
        Get live session data, or None if missing, revoked or past its max lifetime.
        """
        if not self.redis.is_connected():
            return None

        session_key = f"{ADMIN_SESSION_KEY_PREFIX}{sid}"
        session_data = self.redis.get_json(session_key)

        if not session_data:
            return None

        if session_data.get("status") != "active":
            return None

        # Absolute max applies even with sliding TTL
        max_expires_at = session_data.get("max_expires_at")
        if max_expires_at and time.time() > max_expires_at:
            self.revoke(sid)
            return None

        return session_data

    def update_last_seen(self, sid: str) -> bool:
        """
        Slide the session TTL forward.

        Only writes when the strategy is "sliding" and at least
        ADMIN_SESSION_SLIDING_REFRESH_INTERVAL seconds have passed since the
        previous write.
        """
        if not self.redis.is_connected():
            return False

        if ADMIN_SESSION_TTL_STRATEGY != "sliding":
            return False

        session_key = f"{ADMIN_SESSION_KEY_PREFIX}{sid}"
        session_data = self.redis.get_json(session_key)

        if not session_data:
            return False

        last_seen_str = session_data.get("last_seen_at")
        if last_seen_str:
            try:
                last_seen = datetime.fromisoformat(last_seen_str.replace("Z", "+00:00"))
                elapsed = (datetime.now(timezone.utc) - last_seen).total_seconds()
                if elapsed < ADMIN_SESSION_SLIDING_REFRESH_INTERVAL:
                    return False
            except (ValueError, TypeError):
                pass

        session_data["last_seen_at"] = datetime.now(timezone.utc).isoformat()
        return self.redis.set_json(session_key, session_data, ttl=self.ttl)

    def revoke(self, sid: str) -> bool:
        """
        Delete a single session and drop it from the admin's index.
        """
        if not self.redis.is_connected():
            return False

        session_key = f"{ADMIN_SESSION_KEY_PREFIX}{sid}"
        session_data = self.redis.get_json(session_key)

        if not session_data:
            return False

        self.redis.delete(session_key)

        admin_id = session_data.get("admin_id")
        if admin_id:
            self.redis.srem(f"{ADMIN_SESSIONS_KEY_PREFIX}{admin_id}", sid)

        return True

    def revoke_all(self, admin_id: str) -> int:
        """
        Delete every session for an admin.

        Returns:
            Number of sessions deleted
        """
        if not self.redis.is_connected():
            return 0

        index_key = f"{ADMIN_SESSIONS_KEY_PREFIX}{admin_id}"
        session_ids = self.redis.smembers(index_key)

        if not session_ids:
            return 0

        deleted_count = self.redis.delete_many(
            f"{ADMIN_SESSION_KEY_PREFIX}{sid}" for sid in session_ids
        )
        self.redis.delete(index_key)
        return deleted_count

    def is_session_valid(self, sid: str, expected_admin_id: str) -> bool:
        """
        Check that a session is live and belongs to the expected admin.
        """
        session_data = self.get_session(sid)

        if not session_data:
            return False

        # Prevents replaying another admin's sid
        if session_data.get("admin_id") != expected_admin_id:
            return False

        return True


# Singleton instance
_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """
    Get singleton SessionManager instance.
    """
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
