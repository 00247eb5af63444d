"""
Route-related database models.

A Route is a curated, step-by-step journey between two locations. A
RouteSegment is a single vehicle leg that may pass through intermediate
stops and can be ridden in either direction. ActiveTrip tracks a user
travelling along one of them.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum
from models.location import Location


class TransportMode(str, enum.Enum):
    BUS = "bus"
    TAXI = "taxi"
    KEKE = "keke"
    OKADA = "okada"
    WALK = "walk"


class TripStatus(str, enum.Enum):
    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Route(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "routes"

    start_location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=False, index=True
    )
    end_location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transport_modes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    estimated_duration: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # minutes
    distance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # kilometers
    min_fare: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    max_fare: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    requires_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transfer_points: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    popularity_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    verified_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    start_location: Mapped[Location] = relationship(foreign_keys=[start_location_id])
    end_location: Mapped[Location] = relationship(foreign_keys=[end_location_id])
    steps: Mapped[List["RouteStep"]] = relationship(
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="RouteStep.step_order",
    )


class RouteStep(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "route_steps"

    route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    from_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=True
    )
    to_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=True
    )
    transport_mode: Mapped[TransportMode] = mapped_column(
        str_enum(TransportMode, "transport_mode"), nullable=False
    )
    instructions: Mapped[str] = mapped_column(Text, nullable=False)
    duration: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # minutes
    distance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # kilometers
    estimated_fare: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    vehicle_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    landmarks: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    route: Mapped[Route] = relationship(back_populates="steps")
    from_location: Mapped[Optional[Location]] = relationship(foreign_keys=[from_location_id])
    to_location: Mapped[Optional[Location]] = relationship(foreign_keys=[to_location_id])


class RouteSegment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "route_segments"
    __table_args__ = (
        Index("ix_route_segments_start_end", "start_location_id", "end_location_id"),
        Index("ix_route_segments_active_verified", "is_active", "is_verified"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=False
    )
    end_location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=False
    )
    # [{"locationId", "name", "order", "isOptional"}]
    intermediate_stops: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    transport_modes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    distance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # kilometers
    estimated_duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    min_fare: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    max_fare: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    instructions: Mapped[str] = mapped_column(Text, nullable=False)
    landmarks: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    is_bidirectional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    start_location: Mapped[Location] = relationship(foreign_keys=[start_location_id])
    end_location: Mapped[Location] = relationship(foreign_keys=[end_location_id])


class ActiveTrip(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "active_trips"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    route_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("routes.id", ondelete="SET NULL"), nullable=True
    )
    current_step_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    start_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=True
    )
    end_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=True
    )
    current_lat: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)
    current_lng: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)
    status: Mapped[TripStatus] = mapped_column(
        str_enum(TripStatus, "trip_status"),
        nullable=False,
        default=TripStatus.PLANNING,
        index=True,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_arrival: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    location_history: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    step_progress: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    notifications_sent: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
