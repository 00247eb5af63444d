import enum
import uuid
from typing import Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum
from models.location import Location
from models.user_models import User


class PostType(str, enum.Enum):
    TRAFFIC_UPDATE = "traffic_update"
    ROUTE_ALERT = "route_alert"
    SAFETY_CONCERN = "safety_concern"
    TIP = "tip"
    GENERAL = "general"


class VoteType(str, enum.Enum):
    UP = "up"
    DOWN = "down"


class CommunityPost(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "community_posts"

    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    post_type: Mapped[PostType] = mapped_column(
        str_enum(PostType, "post_type"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    route_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("routes.id", ondelete="SET NULL"), nullable=True
    )
    images: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    verified_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    author: Mapped[User] = relationship()
    location: Mapped[Optional[Location]] = relationship()

    @property
    def score(self) -> int:
        return (self.upvotes or 0) - (self.downvotes or 0)


class CommunityComment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "community_comments"

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("community_posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    author: Mapped[User] = relationship()


class PostVote(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "post_votes"
    __table_args__ = (UniqueConstraint("user_id", "post_id", name="uq_post_votes_user_post"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("community_posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vote_type: Mapped[VoteType] = mapped_column(str_enum(VoteType, "vote_type"), nullable=False)


class CommentVote(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "comment_votes"
    __table_args__ = (
        UniqueConstraint("user_id", "comment_id", name="uq_comment_votes_user_comment"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    comment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("community_comments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vote_type: Mapped[VoteType] = mapped_column(str_enum(VoteType, "vote_type"), nullable=False)
