import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum


class ShareType(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    EVENT = "event"
    BUSINESS = "business"


class ShareStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"
    REVOKED = "revoked"


class LocationShare(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "location_shares"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    share_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    share_url: Mapped[str] = mapped_column(Text, nullable=False)
    share_type: Mapped[ShareType] = mapped_column(
        str_enum(ShareType, "share_type"), nullable=False, default=ShareType.PUBLIC
    )
    location_name: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)
    longitude: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_access: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allowed_user_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    status: Mapped[ShareStatus] = mapped_column(
        str_enum(ShareStatus, "share_status"),
        nullable=False,
        default=ShareStatus.ACTIVE,
        index=True,
    )
    access_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    event_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
