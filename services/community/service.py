import logging
import uuid
from datetime import timedelta
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from common.constants import ALERT_POST_TYPES, TRENDING_WINDOW_DAYS
from common.timeutils import utcnow
from models.community import (
    CommentVote,
    CommunityComment,
    CommunityPost,
    PostType,
    PostVote,
    VoteType,
)
from models.route import ActiveTrip, TripStatus
from models.user_models import User
from services.community.schemas import CreatePostRequest, UpdatePostRequest
from services.notification.manager import NotificationManager
from services.notification.notification_types import NotificationType

logger = logging.getLogger(__name__)


def _post_query():
    return select(CommunityPost).options(
        selectinload(CommunityPost.author), selectinload(CommunityPost.location)
    )


async def bump_votes(db: AsyncSession, model, target_id: uuid.UUID, vote_type: VoteType, delta: int) -> None:
    """Shift a post or comment tally in SQL; tallies never drop below zero."""
    column = model.upvotes if vote_type == VoteType.UP else model.downvotes
    shifted = func.coalesce(column, 0) + delta
    await db.execute(
        update(model)
        .where(model.id == target_id)
        .values({column: case((shifted < 0, 0), else_=shifted)})
        .execution_options(synchronize_session=False)
    )


class CommunityService:
    def __init__(self, db: AsyncSession, notifications: Optional[NotificationManager] = None):
        self.db = db
        self.notifications = notifications or NotificationManager(db)

    # ---------- posts ----------

    async def list_posts(
        self,
        page: int = 1,
        limit: int = 20,
        post_type: Optional[PostType] = None,
        location_id: Optional[uuid.UUID] = None,
    ) -> Tuple[List[CommunityPost], int]:
        filters = [CommunityPost.is_active.is_(True)]
        if post_type is not None:
            filters.append(CommunityPost.post_type == post_type)
        if location_id is not None:
            filters.append(CommunityPost.location_id == location_id)

        total = await self.db.scalar(select(func.count()).select_from(CommunityPost).where(*filters))
        result = await self.db.execute(
            _post_query()
            .where(*filters)
            .order_by(CommunityPost.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def trending(self, limit: int = 20) -> List[CommunityPost]:
        since = utcnow() - timedelta(days=TRENDING_WINDOW_DAYS)
        result = await self.db.execute(
            _post_query()
            .where(CommunityPost.is_active.is_(True), CommunityPost.created_at >= since)
            .order_by(
                (CommunityPost.upvotes - CommunityPost.downvotes).desc(),
                CommunityPost.created_at.desc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_post(self, post_id: uuid.UUID, active_only: bool = True) -> CommunityPost:
        query = (
            _post_query()
            .where(CommunityPost.id == post_id)
            .execution_options(populate_existing=True)
        )
        if active_only:
            query = query.where(CommunityPost.is_active.is_(True))
        post = (await self.db.execute(query)).scalar_one_or_none()
        if post is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
        return post

    async def _get_own_post(self, post_id: uuid.UUID, user: User) -> CommunityPost:
        post = await self.get_post(post_id)
        if post.author_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only modify your own posts",
            )
        return post

    async def create_post(self, user: User, body: CreatePostRequest) -> CommunityPost:
        post = CommunityPost(
            author_id=user.id,
            post_type=body.post_type,
            title=body.title,
            content=body.content,
            location_id=body.location_id,
            route_id=body.route_id,
            images=body.images or [],
            upvotes=0,
            downvotes=0,
            is_verified=False,
            is_active=True,
        )
        self.db.add(post)
        user.total_contributions = (user.total_contributions or 0) + 1
        await self.db.commit()
        logger.info(f"Community post created: post_id={post.id}, author_id={user.id}")

        post_id = post.id
        if post.post_type.value in ALERT_POST_TYPES and post.location_id is not None:
            await self._alert_travellers(post, user)
        return await self.get_post(post_id)

    async def _alert_travellers(self, post: CommunityPost, author: User) -> None:
        """Tell users riding through the post's location about the alert."""
        result = await self.db.execute(
            select(ActiveTrip.user_id).where(
                ActiveTrip.status == TripStatus.IN_PROGRESS,
                or_(
                    ActiveTrip.start_location_id == post.location_id,
                    ActiveTrip.end_location_id == post.location_id,
                ),
                ActiveTrip.user_id != author.id,
            )
        )
        user_ids = [row[0] for row in result.all()]
        if not user_ids:
            return
        label = "Traffic update" if post.post_type == PostType.TRAFFIC_UPDATE else "Route alert"
        try:
            await self.notifications.send_to_users(
                user_ids,
                f"{label}: {post.title}",
                post.content[:140],
                NotificationType.COMMUNITY_POST,
                data={"postId": str(post.id), "postType": post.post_type.value},
            )
        except Exception as e:
            logger.error(f"Failed to alert travellers for post {post.id}: {e}", exc_info=True)

    async def update_post(self, post_id: uuid.UUID, user: User, body: UpdatePostRequest) -> CommunityPost:
        post = await self._get_own_post(post_id, user)
        for field, value in body.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(post, field, value)
        await self.db.commit()
        return await self.get_post(post_id)

    async def delete_post(self, post_id: uuid.UUID, user: User) -> None:
        post = await self._get_own_post(post_id, user)
        post.is_active = False
        await self.db.commit()
        logger.info(f"Community post deleted: post_id={post_id}, author_id={user.id}")

    # ---------- votes ----------

    async def _toggle_vote(self, target, vote_model, target_field: str, user: User, vote_type: VoteType) -> Optional[str]:
        """Same vote again removes it, the opposite vote switches it.

        Returns the user's vote after the change, or None when it was removed.
        """
        result = await self.db.execute(
            select(vote_model).where(
                vote_model.user_id == user.id, getattr(vote_model, target_field) == target.id
            )
        )
        existing = result.scalar_one_or_none()
        model = type(target)

        if existing is None:
            self.db.add(vote_model(user_id=user.id, vote_type=vote_type, **{target_field: target.id}))
            await bump_votes(self.db, model, target.id, vote_type, 1)
            user_vote = vote_type.value
        elif existing.vote_type == vote_type:
            await self.db.delete(existing)
            await bump_votes(self.db, model, target.id, vote_type, -1)
            user_vote = None
        else:
            await bump_votes(self.db, model, target.id, existing.vote_type, -1)
            await bump_votes(self.db, model, target.id, vote_type, 1)
            existing.vote_type = vote_type
            user_vote = vote_type.value

        await self.db.commit()
        await self.db.refresh(target, attribute_names=["upvotes", "downvotes"])
        return user_vote

    async def vote_post(self, post_id: uuid.UUID, user: User, vote_type: VoteType) -> dict:
        post = await self.get_post(post_id)
        user_vote = await self._toggle_vote(post, PostVote, "post_id", user, vote_type)
        return {"upvotes": post.upvotes, "downvotes": post.downvotes, "userVote": user_vote}

    async def vote_comment(self, comment_id: uuid.UUID, user: User, vote_type: VoteType) -> dict:
        comment = await self._get_comment(comment_id)
        user_vote = await self._toggle_vote(comment, CommentVote, "comment_id", user, vote_type)
        return {"upvotes": comment.upvotes, "downvotes": comment.downvotes, "userVote": user_vote}

    # ---------- comments ----------

    async def _get_comment(self, comment_id: uuid.UUID) -> CommunityComment:
        result = await self.db.execute(
            select(CommunityComment).where(
                CommunityComment.id == comment_id, CommunityComment.is_active.is_(True)
            )
        )
        comment = result.scalar_one_or_none()
        if comment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
        return comment

    async def list_comments(
        self, post_id: uuid.UUID, page: int = 1, limit: int = 20
    ) -> Tuple[List[CommunityComment], int]:
        filters = [CommunityComment.post_id == post_id, CommunityComment.is_active.is_(True)]
        total = await self.db.scalar(
            select(func.count()).select_from(CommunityComment).where(*filters)
        )
        result = await self.db.execute(
            select(CommunityComment)
            .options(selectinload(CommunityComment.author))
            .where(*filters)
            .order_by(CommunityComment.created_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def add_comment(self, post_id: uuid.UUID, user: User, content: str) -> CommunityComment:
        post = await self.get_post(post_id)
        comment = CommunityComment(
            post_id=post.id, author_id=user.id, content=content, upvotes=0, downvotes=0, is_active=True
        )
        self.db.add(comment)
        await self.db.commit()

        if post.author_id != user.id:
            try:
                await self.notifications.send_to_user(
                    post.author_id,
                    "New comment on your post",
                    f"{user.first_name} commented: {content[:100]}",
                    NotificationType.COMMUNITY_POST,
                    data={"postId": str(post.id), "commentId": str(comment.id)},
                )
            except Exception as e:
                logger.error(f"Failed to notify author of post {post.id}: {e}", exc_info=True)
        return comment

    async def delete_comment(self, comment_id: uuid.UUID, user: User) -> None:
        comment = await self._get_comment(comment_id)
        if comment.author_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only delete your own comments",
            )
        comment.is_active = False
        await self.db.commit()
