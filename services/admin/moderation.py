import logging
import uuid
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from libs.audit_logger import write_audit
from models.admin import Admin
from models.audit import AuditEventType
from models.community import CommunityComment, CommunityPost, PostType

logger = logging.getLogger(__name__)


class ModerationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_posts(
        self,
        page: int = 1,
        limit: int = 20,
        post_type: Optional[PostType] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[CommunityPost], int]:
        filters = []
        if post_type is not None:
            filters.append(CommunityPost.post_type == post_type)
        if is_active is not None:
            filters.append(CommunityPost.is_active.is_(is_active))

        total = await self.db.scalar(select(func.count()).select_from(CommunityPost).where(*filters))
        result = await self.db.execute(
            select(CommunityPost)
            .options(selectinload(CommunityPost.author), selectinload(CommunityPost.location))
            .where(*filters)
            .order_by(CommunityPost.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def _get_post(self, post_id: uuid.UUID) -> CommunityPost:
        result = await self.db.execute(
            select(CommunityPost)
            .options(selectinload(CommunityPost.author), selectinload(CommunityPost.location))
            .where(CommunityPost.id == post_id)
        )
        post = result.scalar_one_or_none()
        if post is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
        return post

    async def verify_post(self, admin: Admin, post_id: uuid.UUID) -> CommunityPost:
        post = await self._get_post(post_id)
        post.is_verified = True
        post.verified_by = admin.id
        await write_audit(
            db=self.db,
            event_type=AuditEventType.content_moderation,
            message=f"Post verified: {post.title}",
            admin_id=admin.id,
            event_id=post.id,
        )
        await self.db.commit()
        return post

    async def set_post_status(
        self, admin: Admin, post_id: uuid.UUID, is_active: bool, reason: Optional[str] = None
    ) -> CommunityPost:
        post = await self._get_post(post_id)
        post.is_active = is_active
        action = "restored" if is_active else "hidden"
        await write_audit(
            db=self.db,
            event_type=AuditEventType.content_moderation,
            message=f"Post {action}: {post.title}" + (f" ({reason})" if reason else ""),
            admin_id=admin.id,
            event_id=post.id,
        )
        await self.db.commit()
        return post

    async def delete_comment(self, admin: Admin, comment_id: uuid.UUID) -> None:
        comment = await self.db.get(CommunityComment, comment_id)
        if comment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
        comment.is_active = False
        await write_audit(
            db=self.db,
            event_type=AuditEventType.content_moderation,
            message=f"Comment removed from post {comment.post_id}",
            admin_id=admin.id,
            event_id=comment.id,
        )
        await self.db.commit()
        logger.info(f"Comment removed by admin: comment_id={comment_id}, admin_id={admin.id}")
