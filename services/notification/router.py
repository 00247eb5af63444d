"""
Notification inbox API.

Users read, mark and clear the in-app notifications written by
NotificationManager.send_to_user.
"""

import logging
import math
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from common.schemas import ok
from libs.auth.tokens import get_current_user
from libs.db import get_db
from libs.fastapi_service import record_business_event
from libs.rate_limit import default_rate_limiter
from models.user_models import User
from services.notification.manager import NotificationManager
from services.notification.notification_types import NotificationType
from services.notification.schemas import MarkReadRequest, notification_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(default_rate_limiter)],
)


@router.get("")
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[NotificationType] = None,
    is_read: Optional[bool] = Query(None, alias="isRead"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    manager = NotificationManager(db)
    notifications, total = await manager.list_for_user(
        current_user.id, page=page, limit=limit, type=type, is_read=is_read
    )
    return ok(
        {
            "notifications": [notification_to_dict(n) for n in notifications],
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit) if total else 0,
        }
    )


@router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationManager(db).unread_count(current_user.id)
    return ok({"count": count})


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    body: Optional[MarkReadRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    manager = NotificationManager(db)
    notification = await manager.get_for_user(current_user.id, notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found"
        )

    notification.is_read = body.is_read if body else True
    await db.commit()
    return ok(notification_to_dict(notification))


@router.post("/mark-all-read")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await NotificationManager(db).mark_all_read(current_user.id)
    return ok({"updated": updated}, message="All notifications marked as read")


# Registered before "/{notification_id}" so "read" is not parsed as an id
@router.delete("/read/all")
async def delete_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    deleted = await NotificationManager(db).delete_read(current_user.id)
    return ok({"deleted": deleted}, message="Read notifications deleted")


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    manager = NotificationManager(db)
    notification = await manager.get_for_user(current_user.id, notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found"
        )

    await db.delete(notification)
    await db.commit()
    return ok(message="Notification deleted")


@router.post("/test")
async def send_test_notification(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        notification = await NotificationManager(db).send_to_user(
            current_user.id,
            title="Test notification",
            body="Push notifications are working on this device.",
            type=NotificationType.SYSTEM_ALERT,
            data={"test": "true"},
        )
    except Exception as e:
        logger.error(f"Failed to send test notification: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send test notification",
        )

    record_business_event(request, "notifications_sent_total", type="system_alert")
    return ok(notification_to_dict(notification), message="Test notification sent")
