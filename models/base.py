"""
Declarative base shared by every Avigate ORM model.

Column types are kept portable (Uuid, JSON, non-native Enum) so the same
metadata runs on PostgreSQL in production and SQLite in tests.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from common.timeutils import utcnow


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


def str_enum(enum_cls, name: str) -> Enum:
    """VARCHAR-backed enum storing member values rather than names."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=64,
        values_callable=lambda members: [m.value for m in members],
    )
