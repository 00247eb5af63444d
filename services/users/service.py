import logging
import uuid
from typing import List

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.constants import CURRENT_PRIVACY_VERSION, CURRENT_TERMS_VERSION
from common.timeutils import isoformat, utcnow
from models.community import CommentVote, CommunityComment, CommunityPost, PostVote
from models.location_share import LocationShare
from models.notification import Notification
from models.route import ActiveTrip, TripStatus
from models.user_models import User, UserDevice, UserOTP
from services.cache.service import CacheService
from services.community.service import bump_votes
from services.users.legal import needs_privacy_update, needs_terms_update
from services.users.schemas import AcceptLegalRequest, UpdateProfileRequest

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def update_profile(self, user: User, body: UpdateProfileRequest) -> User:
        changes = body.model_dump(exclude_unset=True)

        new_email = changes.get("email")
        if new_email:
            new_email = new_email.lower()
            changes["email"] = new_email
        if new_email and new_email != user.email:
            taken = await self.db.execute(
                select(User.id).where(User.email == new_email, User.id != user.id)
            )
            if taken.first() is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT, detail="Email already exists"
                )
            # New address has not been proven yet
            user.is_verified = False

        new_phone = changes.get("phone_number")
        if new_phone and new_phone != user.phone_number:
            taken = await self.db.execute(
                select(User.id).where(User.phone_number == new_phone, User.id != user.id)
            )
            if taken.first() is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT, detail="Phone number already exists"
                )
            user.phone_number_captured = True

        for field, value in changes.items():
            if value is not None:
                setattr(user, field, value)

        await self.db.commit()
        logger.info(f"Profile updated: user_id={user.id}, fields={sorted(changes)}")
        return user

    async def list_devices(self, user: User) -> List[UserDevice]:
        result = await self.db.execute(
            select(UserDevice)
            .where(UserDevice.user_id == user.id, UserDevice.is_active.is_(True))
            .order_by(UserDevice.last_active_at.desc())
        )
        return list(result.scalars().all())

    async def deactivate_device(self, user: User, device_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(UserDevice).where(UserDevice.id == device_id, UserDevice.user_id == user.id)
        )
        device = result.scalar_one_or_none()
        if device is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
        device.is_active = False
        await self.db.commit()

    async def stats(self, user: User) -> dict:
        active_devices = await self.db.scalar(
            select(func.count())
            .select_from(UserDevice)
            .where(UserDevice.user_id == user.id, UserDevice.is_active.is_(True))
        )
        community_posts = await self.db.scalar(
            select(func.count())
            .select_from(CommunityPost)
            .where(CommunityPost.author_id == user.id, CommunityPost.is_active.is_(True))
        )
        completed_trips = await self.db.scalar(
            select(func.count())
            .select_from(ActiveTrip)
            .where(ActiveTrip.user_id == user.id, ActiveTrip.status == TripStatus.COMPLETED)
        )
        return {
            "reputationScore": user.reputation_score,
            "totalContributions": user.total_contributions,
            "memberSince": isoformat(user.created_at),
            "activeDevices": int(active_devices or 0),
            "communityPosts": int(community_posts or 0),
            "completedTrips": int(completed_trips or 0),
        }

    async def delete_account(self, user: User) -> None:
        """Hard-delete the user and every row that references them."""
        user_id = user.id
        await self._withdraw_votes(user_id)
        # Explicit deletes keep SQLite (no FK cascade by default) and Postgres in line
        for stmt in (
            delete(CommentVote).where(CommentVote.user_id == user_id),
            delete(PostVote).where(PostVote.user_id == user_id),
            delete(CommunityComment).where(CommunityComment.author_id == user_id),
            delete(CommunityPost).where(CommunityPost.author_id == user_id),
            delete(ActiveTrip).where(ActiveTrip.user_id == user_id),
            delete(LocationShare).where(LocationShare.owner_id == user_id),
            delete(Notification).where(Notification.user_id == user_id),
            delete(UserOTP).where(UserOTP.user_id == user_id),
            delete(UserDevice).where(UserDevice.user_id == user_id),
            delete(User).where(User.id == user_id),
        ):
            await self.db.execute(stmt)
        await self.db.commit()

        await CacheService().clear_user(str(user_id))
        logger.info(f"Account deleted: user_id={user_id}")

    async def _withdraw_votes(self, user_id: uuid.UUID) -> None:
        """Take the user's votes back off the tallies of posts and comments they voted on."""
        for vote_model, target_model, target_field in (
            (PostVote, CommunityPost, "post_id"),
            (CommentVote, CommunityComment, "comment_id"),
        ):
            result = await self.db.execute(
                select(getattr(vote_model, target_field), vote_model.vote_type).where(
                    vote_model.user_id == user_id
                )
            )
            for target_id, vote_type in result.all():
                await bump_votes(self.db, target_model, target_id, vote_type, -1)

    async def accept_legal(self, user: User, body: AcceptLegalRequest) -> List[str]:
        """Record acceptance of outdated documents; returns what changed."""
        updated = []
        now = utcnow()
        if body.accept_terms and needs_terms_update(user.terms_version):
            user.terms_version = CURRENT_TERMS_VERSION
            user.terms_accepted_at = now
            updated.append("terms")
        if body.accept_privacy and needs_privacy_update(user.privacy_version):
            user.privacy_version = CURRENT_PRIVACY_VERSION
            user.privacy_accepted_at = now
            updated.append("privacy")

        if updated:
            await self.db.commit()
            logger.info(f"Legal documents accepted: user_id={user.id}, documents={updated}")
        return updated
