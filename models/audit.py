# models/audit.py
from __future__ import annotations

import enum
import uuid
from typing import Optional

from sqlalchemy import Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, str_enum


class AuditEventType(str, enum.Enum):
    authentication = "authentication"
    user_management = "user_management"
    content_moderation = "content_moderation"
    system = "system"


class Audit(TimestampMixin, Base):
    """Trail of administrator actions."""

    __tablename__ = "audit"

    log_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        index=True,
    )

    event_type: Mapped[AuditEventType] = mapped_column(
        str_enum(AuditEventType, "audit_event_type"),
    )

    # affected entity: user id, post id, comment id ...
    event_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
    )

    message: Mapped[str] = mapped_column(Text, nullable=False)
