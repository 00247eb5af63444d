"""
Shareable location links.

A share is addressed by an unguessable token. Anyone holding the link can
open a public, event or business share; private shares are limited to the
owner and the listed users.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from common.constants import EVENT_SHARE_EXPIRY_HOURS
from common.timeutils import as_utc, utcnow
from libs.config import config
from models.location_share import LocationShare, ShareStatus, ShareType
from models.user_models import User
from services.location_share.schemas import CreateEventShareRequest, CreateShareRequest
from services.notification.manager import NotificationManager
from services.notification.notification_types import NotificationType

logger = logging.getLogger(__name__)


def generate_share_token() -> str:
    return secrets.token_urlsafe(16)


def share_url(token: str) -> str:
    return f"{config.SHARE_BASE_URL.rstrip('/')}/{token}"


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class LocationShareService:
    def __init__(self, db: AsyncSession, notifications: Optional[NotificationManager] = None):
        self.db = db
        self.notifications = notifications or NotificationManager(db)

    async def create(self, owner: User, body: CreateShareRequest) -> LocationShare:
        allowed = [str(uid) for uid in body.allowed_user_ids or []]
        if body.share_type == ShareType.PRIVATE and not allowed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Private shares must specify allowed users",
            )
        return await self._store(
            owner,
            share_type=body.share_type,
            location_name=body.location_name,
            latitude=body.latitude,
            longitude=body.longitude,
            description=body.description,
            expires_at=as_utc(body.expires_at),
            max_access=body.max_access,
            allowed_user_ids=allowed,
            event_date=as_utc(body.event_date),
            extra=body.metadata,
        )

    async def create_event(self, owner: User, body: CreateEventShareRequest) -> LocationShare:
        event_date = as_utc(body.event_date)
        return await self._store(
            owner,
            share_type=ShareType.EVENT,
            location_name=body.location_name,
            latitude=body.latitude,
            longitude=body.longitude,
            description=body.description,
            expires_at=event_expiry(event_date),
            max_access=body.max_access,
            allowed_user_ids=[],
            event_date=event_date,
            extra=body.metadata,
        )

    async def _store(self, owner: User, **fields) -> LocationShare:
        token = generate_share_token()
        share = LocationShare(
            owner_id=owner.id,
            share_token=token,
            share_url=share_url(token),
            status=ShareStatus.ACTIVE,
            access_count=0,
            **fields,
        )
        self.db.add(share)
        await self.db.commit()
        logger.info(
            f"Location share created: share_id={share.id}, owner_id={owner.id}, "
            f"type={share.share_type.value}"
        )

        if share.share_type == ShareType.PRIVATE:
            await self._notify_allowed(share, owner)
        return share

    async def _notify_allowed(self, share: LocationShare, owner: User) -> None:
        user_ids = [uuid.UUID(uid) for uid in share.allowed_user_ids or [] if uid != str(owner.id)]
        share_id = share.id
        sent = await self.notifications.send_to_users(
            user_ids,
            "Location shared with you",
            f"{owner.first_name} shared {share.location_name} with you",
            NotificationType.LOCATION_SHARE,
            data={"shareToken": share.share_token, "shareId": str(share_id)},
            action_url=share.share_url,
        )
        if len(sent) < len(set(user_ids)):
            logger.warning(
                f"Share {share_id}: notified {len(sent)} of {len(set(user_ids))} recipients"
            )
            # A failed recipient rolled the session back and expired the share
            await self.db.refresh(share)

    async def validate_access(self, token: str, user: Optional[User] = None) -> LocationShare:
        """Return the share if `user` may open it right now, else raise 404."""
        result = await self.db.execute(
            select(LocationShare).where(LocationShare.share_token == token)
        )
        share = result.scalar_one_or_none()
        if share is None:
            raise _not_found("Shared location not found")

        if user is not None and share.owner_id == user.id:
            return share

        expires_at = as_utc(share.expires_at)
        if expires_at is not None and expires_at <= utcnow():
            if share.status != ShareStatus.EXPIRED:
                share.status = ShareStatus.EXPIRED
                await self.db.commit()
            raise _not_found("Share link has expired")
        if share.status != ShareStatus.ACTIVE:
            raise _not_found("Share link is not active")
        if share.max_access is not None and share.access_count >= share.max_access:
            raise _not_found("Share link has reached maximum access limit")
        if share.share_type == ShareType.PRIVATE:
            if user is None or str(user.id) not in (share.allowed_user_ids or []):
                raise _not_found("You do not have access to this shared location")
        return share

    async def record_access(self, share: LocationShare, user: Optional[User]) -> None:
        share.access_count = (share.access_count or 0) + 1
        share.last_accessed_at = utcnow()
        share.last_accessed_by = user.id if user is not None else None
        await self.db.commit()

    async def my_shares(self, owner: User) -> List[LocationShare]:
        result = await self.db.execute(
            select(LocationShare)
            .where(LocationShare.owner_id == owner.id)
            .order_by(LocationShare.created_at.desc())
        )
        return list(result.scalars().all())

    async def accessible(self, user: User) -> List[LocationShare]:
        """Active, unexpired private shares listing `user`."""
        result = await self.db.execute(
            select(LocationShare)
            .where(
                LocationShare.share_type == ShareType.PRIVATE,
                LocationShare.status == ShareStatus.ACTIVE,
            )
            .order_by(LocationShare.created_at.desc())
        )
        now = utcnow()
        uid = str(user.id)
        # allowed_user_ids is JSON, filtered here to stay portable across backends
        return [
            share
            for share in result.scalars()
            if uid in (share.allowed_user_ids or [])
            and (share.expires_at is None or as_utc(share.expires_at) > now)
        ]

    async def _get_owned(self, share_id: uuid.UUID, owner: User) -> LocationShare:
        result = await self.db.execute(
            select(LocationShare).where(
                LocationShare.id == share_id, LocationShare.owner_id == owner.id
            )
        )
        share = result.scalar_one_or_none()
        if share is None:
            raise _not_found("Shared location not found")
        return share

    async def update_status(self, share_id: uuid.UUID, owner: User, new_status: ShareStatus) -> LocationShare:
        if new_status == ShareStatus.EXPIRED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Status must be one of: active, paused, revoked",
            )
        share = await self._get_owned(share_id, owner)
        share.status = new_status
        await self.db.commit()
        return share

    async def delete(self, share_id: uuid.UUID, owner: User) -> None:
        share = await self._get_owned(share_id, owner)
        await self.db.delete(share)
        await self.db.commit()
        logger.info(f"Location share deleted: share_id={share_id}, owner_id={owner.id}")


def qr_payload(share: LocationShare) -> dict:
    return {"shareUrl": share.share_url, "qrData": share.share_url}


def event_expiry(event_date: datetime) -> datetime:
    return as_utc(event_date) + timedelta(hours=EVENT_SHARE_EXPIRY_HOURS)
