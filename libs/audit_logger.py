# libs/audit_logger.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

import common.storage as _storage
from models.audit import Audit, AuditEventType

logger = logging.getLogger(__name__)


def _normalize_event_type(event_type) -> AuditEventType:
    value = getattr(event_type, "value", event_type)
    try:
        return AuditEventType((value or "").strip())
    except ValueError:
        logger.warning(f"Unknown audit event_type '{value}', recording as system.")
        return AuditEventType.system


async def write_audit(
    *,
    db: AsyncSession,
    event_type: str,
    message: str,
    admin_id: Optional[uuid.UUID] = None,
    event_id: Optional[uuid.UUID] = None,
    commit: bool = False,
) -> Optional[uuid.UUID]:
    """
    Write an audit record for an administrator action.

    Args:
        db: AsyncSession from Depends(get_db)
        event_type: authentication / user_management / content_moderation / system
        message: human-readable message (NOT NULL)
        admin_id: who performed the action (nullable for failed logins)
        event_id: affected entity id (user_id / post_id / comment_id ...)
        commit: commit here instead of leaving it to the caller

    Returns:
        log_id (UUID) on success, None on failure
    """
    if db is None:
        raise ValueError("write_audit requires an AsyncSession")

    et = _normalize_event_type(event_type)
    msg = (message or "").strip() or "(no message)"

    audit_row = Audit(
        admin_id=admin_id,
        event_type=et,
        event_id=event_id,
        message=msg,
    )

    try:
        db.add(audit_row)
        # flush assigns log_id without ending the caller's transaction
        await db.flush()

        if commit:
            await db.commit()

        return audit_row.log_id

    except Exception as exc:
        # Auditing must not break the admin action itself
        logger.exception(
            f"Audit write failed: event_type={et.value} admin_id={admin_id} "
            f"event_id={event_id} error={exc!r}"
        )
        _storage.audit_logs.append(
            {
                "event_type": et.value,
                "admin_id": str(admin_id) if admin_id else None,
                "event_id": str(event_id) if event_id else None,
                "message": msg,
                "error": repr(exc),
            }
        )
        try:
            await db.rollback()
        except Exception:
            logger.exception("Rollback after failed audit write also failed")
        return None
