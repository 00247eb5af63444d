import logging
import uuid
from datetime import timedelta
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.timeutils import utcnow
from libs.audit_logger import write_audit
from models.admin import Admin
from models.audit import AuditEventType
from models.community import CommunityPost
from models.route import ActiveTrip
from models.user_models import User, UserDevice
from services.users.service import UserService

logger = logging.getLogger(__name__)


class UserManagementService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        is_verified: Optional[bool] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[User], int]:
        filters = []
        if search:
            term = f"%{search.strip().lower()}%"
            filters.append(
                or_(
                    func.lower(User.email).like(term),
                    func.lower(User.first_name).like(term),
                    func.lower(User.last_name).like(term),
                    User.phone_number.like(term),
                )
            )
        if is_verified is not None:
            filters.append(User.is_verified.is_(is_verified))
        if is_active is not None:
            filters.append(User.is_active.is_(is_active))

        total = await self.db.scalar(select(func.count()).select_from(User).where(*filters))
        result = await self.db.execute(
            select(User)
            .where(*filters)
            .order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user

    async def _count(self, model, column, user_id: uuid.UUID) -> int:
        return int(
            await self.db.scalar(select(func.count()).select_from(model).where(column == user_id))
            or 0
        )

    async def user_activity(self, user: User) -> dict:
        return {
            "deviceCount": await self._count(UserDevice, UserDevice.user_id, user.id),
            "postCount": await self._count(CommunityPost, CommunityPost.author_id, user.id),
            "tripCount": await self._count(ActiveTrip, ActiveTrip.user_id, user.id),
        }

    async def set_status(
        self, admin: Admin, user_id: uuid.UUID, is_active: bool, reason: Optional[str] = None
    ) -> User:
        user = await self.get_user(user_id)
        user.is_active = is_active
        if not is_active:
            # Existing sessions cannot be refreshed once deactivated
            user.refresh_token = None
            user.refresh_token_expires_at = None
        action = "activated" if is_active else "deactivated"
        await write_audit(
            db=self.db,
            event_type=AuditEventType.user_management,
            message=f"User {user.email} {action}" + (f": {reason}" if reason else ""),
            admin_id=admin.id,
            event_id=user.id,
        )
        await self.db.commit()
        logger.info(f"User {action} by admin: user_id={user.id}, admin_id={admin.id}")
        return user

    async def delete_user(self, admin: Admin, user_id: uuid.UUID, reason: Optional[str] = None) -> None:
        user = await self.get_user(user_id)
        email = user.email
        await UserService(self.db).delete_account(user)
        await write_audit(
            db=self.db,
            event_type=AuditEventType.user_management,
            message=f"User {email} deleted" + (f": {reason}" if reason else ""),
            admin_id=admin.id,
            event_id=user_id,
            commit=True,
        )

    async def overview(self) -> dict:
        async def count(*filters) -> int:
            return int(await self.db.scalar(select(func.count()).select_from(User).where(*filters)) or 0)

        result = await self.db.execute(
            select(User.auth_provider, func.count()).group_by(User.auth_provider)
        )
        by_provider = {provider.value: n for provider, n in result.all()}
        return {
            "total": await count(),
            "verified": await count(User.is_verified.is_(True)),
            "active": await count(User.is_active.is_(True)),
            "newThisWeek": await count(User.created_at >= utcnow() - timedelta(days=7)),
            "byAuthProvider": by_provider,
        }
