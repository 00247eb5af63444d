import logging
import uuid
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.notification import Notification
from models.user_models import UserDevice
from services.notification.factory import NotificationFactory
from services.notification.models import DeliveryStatus
from services.notification.notification_types import NotificationType
from services.notification.templates import render_email, render_sms

logger = logging.getLogger(__name__)


class NotificationManager:
    """
    Persists in-app notifications and fans them out to the user's devices.

    Delivery over push, email and SMS is best-effort: failures are logged and
    never propagate to the caller.
    """

    def __init__(self, db: Optional[AsyncSession] = None) -> None:
        self.db = db
        self._factory = NotificationFactory()

    # ---------- in-app + push ----------

    async def _active_tokens(self, user_id: uuid.UUID) -> List[str]:
        result = await self.db.execute(
            select(UserDevice.fcm_token).where(
                UserDevice.user_id == user_id,
                UserDevice.is_active.is_(True),
                UserDevice.fcm_token.is_not(None),
            )
        )
        # Same token can sit on two fingerprints after an app reinstall
        return list(dict.fromkeys(token for (token,) in result.all() if token))

    async def _clear_invalid_tokens(self, tokens: Iterable[str]) -> None:
        tokens = list(tokens)
        if not tokens:
            return
        await self.db.execute(
            update(UserDevice).where(UserDevice.fcm_token.in_(tokens)).values(fcm_token=None)
        )
        await self.db.commit()
        logger.info(f"Cleared {len(tokens)} unregistered FCM tokens")

    async def _push(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        data: Dict,
        image_url: Optional[str],
    ) -> DeliveryStatus:
        try:
            tokens = await self._active_tokens(user_id)
            if not tokens:
                return DeliveryStatus.NOT_TRIGGERED
            sender = self._factory.get_sender("push")
            result = await sender.send(
                {
                    "tokens": tokens,
                    "title": title,
                    "body": body,
                    "data": data,
                    "image_url": image_url,
                }
            )
            await self._clear_invalid_tokens(result.invalid_tokens)
            return result.status
        except Exception as e:
            logger.error(f"Push delivery failed for user {user_id}: {e}", exc_info=True)
            return DeliveryStatus.FAILED

    async def send_to_user(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        type: NotificationType,
        data: Optional[Dict] = None,
        image_url: Optional[str] = None,
        action_url: Optional[str] = None,
    ) -> Notification:
        """
        Store an in-app notification and push it to every active device.

        Returns:
            The persisted Notification
        """
        notification = Notification(
            user_id=user_id,
            type=NotificationType(type),
            title=title,
            body=body,
            data=data or {},
            image_url=image_url,
            action_url=action_url,
            is_read=False,
        )
        self.db.add(notification)
        await self.db.commit()

        push_data = {
            **(data or {}),
            "notificationId": str(notification.id),
            "type": notification.type.value,
        }
        if action_url:
            push_data["actionUrl"] = action_url
        push_status = await self._push(user_id, title, body, push_data, image_url)
        logger.info(
            f"Notification {notification.id} ({notification.type.value}) "
            f"stored for user {user_id}, push={push_status.value}"
        )
        return notification

    async def send_to_users(
        self,
        user_ids: Iterable[uuid.UUID],
        title: str,
        body: str,
        type: NotificationType,
        data: Optional[Dict] = None,
        image_url: Optional[str] = None,
        action_url: Optional[str] = None,
    ) -> List[Notification]:
        """
        Notify each recipient once. A recipient whose notification cannot be
        stored is skipped (the session is rolled back) and the rest still get theirs.
        """
        sent = []
        for user_id in dict.fromkeys(user_ids):
            try:
                sent.append(
                    await self.send_to_user(user_id, title, body, type, data, image_url, action_url)
                )
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Notification for user {user_id} could not be stored: {e}", exc_info=True)
        return sent

    # ---------- email / sms ----------

    async def send_email(self, to_email: str, message_kind: str, variables: Dict) -> bool:
        try:
            subject, body = render_email(message_kind, variables)
            sender = self._factory.get_sender("email")
            result = await sender.send({"to_email": to_email, "subject": subject, "body": body})
        except Exception as e:
            logger.error(f"Email delivery failed ({message_kind}) to {to_email}: {e}", exc_info=True)
            return False
        if result.status != DeliveryStatus.SENT:
            logger.error(f"Email delivery failed ({message_kind}) to {to_email}: {result.error}")
            return False
        return True

    async def send_sms(self, to_phone: str, message_kind: str, variables: Dict) -> bool:
        try:
            message = render_sms(message_kind, variables)
            sender = self._factory.get_sender("sms")
            result = await sender.send({"to_phone": to_phone, "message": message})
        except Exception as e:
            logger.error(f"SMS delivery failed ({message_kind}) to {to_phone}: {e}", exc_info=True)
            return False
        if result.status != DeliveryStatus.SENT:
            logger.error(f"SMS delivery failed ({message_kind}) to {to_phone}: {result.error}")
            return False
        return True

    # ---------- inbox ----------

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        type: Optional[NotificationType] = None,
        is_read: Optional[bool] = None,
    ) -> Tuple[List[Notification], int]:
        filters = [Notification.user_id == user_id]
        if type is not None:
            filters.append(Notification.type == type)
        if is_read is not None:
            filters.append(Notification.is_read.is_(is_read))

        total = await self.db.scalar(select(func.count()).select_from(Notification).where(*filters))
        result = await self.db.execute(
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def unread_count(self, user_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        return int(count or 0)

    async def get_for_user(self, user_id: uuid.UUID, notification_id: uuid.UUID) -> Optional[Notification]:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id, Notification.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            delete(Notification).where(
                Notification.user_id == user_id, Notification.is_read.is_(True)
            )
        )
        await self.db.commit()
        return result.rowcount or 0
