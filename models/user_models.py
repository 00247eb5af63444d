import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum


class UserSex(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class AuthProvider(str, enum.Enum):
    LOCAL = "local"
    GOOGLE = "google"


class DeviceType(str, enum.Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class OTPType(str, enum.Enum):
    EMAIL_VERIFICATION = "email_verification"
    LOGIN_VERIFICATION = "login_verification"
    LOGIN = "login"
    PHONE_VERIFICATION = "phone_verification"


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sex: Mapped[Optional[UserSex]] = mapped_column(str_enum(UserSex, "user_sex"), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(
        String(32), unique=True, nullable=True
    )
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="Nigeria")
    language: Mapped[str] = mapped_column(String(50), nullable=False, default="English")

    google_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    auth_provider: Mapped[AuthProvider] = mapped_column(
        str_enum(AuthProvider, "auth_provider"), nullable=False, default=AuthProvider.LOCAL
    )
    profile_picture: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_test_account: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    phone_number_captured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    reputation_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    total_contributions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    terms_version: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    privacy_version: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    terms_accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    privacy_accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    devices: Mapped[List["UserDevice"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    otps: Mapped[List["UserOTP"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserDevice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "user_devices"
    __table_args__ = (
        UniqueConstraint("user_id", "device_fingerprint", name="uq_user_devices_user_fingerprint"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    fcm_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    device_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    device_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    device_type: Mapped[DeviceType] = mapped_column(
        str_enum(DeviceType, "device_type"), nullable=False, default=DeviceType.UNKNOWN
    )
    platform: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    app_version: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    last_active_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    user: Mapped["User"] = relationship(back_populates="devices")


class UserOTP(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "user_otps"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    otp_code: Mapped[str] = mapped_column(String(10), nullable=False)
    otp_type: Mapped[OTPType] = mapped_column(str_enum(OTPType, "otp_type"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    user: Mapped["User"] = relationship(back_populates="otps")
