"""Initial schema

Revision ID: 0001
Revises: None
Create Date: 2025-01-10 00:00:00.000000+00:00

Creates users and devices, OTPs, the location/route graph, trips, the
community feed, notifications, location shares and the admin tables.
Enum columns are plain VARCHAR(64) to match the non-native enums on the models.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column("id", sa.Uuid(), primary_key=True)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _enum(name, nullable=False):
    return sa.Column(name, sa.String(64), nullable=nullable)


def _coord(name):
    return sa.Column(name, sa.Numeric(10, 7), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        _enum("sex", nullable=True),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("country", sa.String(100), nullable=False),
        sa.Column("language", sa.String(50), nullable=False),
        sa.Column("google_id", sa.String(255), nullable=True),
        _enum("auth_provider"),
        sa.Column("profile_picture", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_test_account", sa.Boolean(), nullable=False),
        sa.Column("phone_number_captured", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("refresh_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reputation_score", sa.Integer(), nullable=False),
        sa.Column("total_contributions", sa.Integer(), nullable=False),
        sa.Column("terms_version", sa.String(20), nullable=True),
        sa.Column("privacy_version", sa.String(20), nullable=True),
        sa.Column("terms_accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("privacy_accepted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("phone_number", name="uq_users_phone_number"),
        sa.UniqueConstraint("google_id", name="uq_users_google_id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_devices",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("fcm_token", sa.Text(), nullable=True),
        sa.Column("device_fingerprint", sa.String(64), nullable=False),
        sa.Column("device_info", sa.Text(), nullable=True),
        _enum("device_type"),
        sa.Column("platform", sa.String(50), nullable=True),
        sa.Column("app_version", sa.String(50), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "device_fingerprint", name="uq_user_devices_user_fingerprint"),
    )
    op.create_index("ix_user_devices_user_id", "user_devices", ["user_id"])
    op.create_index("ix_user_devices_fcm_token", "user_devices", ["fcm_token"])

    op.create_table(
        "user_otps",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("otp_code", sa.String(10), nullable=False),
        _enum("otp_type"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_user_otps_user_id", "user_otps", ["user_id"])

    op.create_table(
        "locations",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("state", sa.String(100), nullable=False),
        sa.Column("country", sa.String(100), nullable=False),
        _coord("latitude"),
        _coord("longitude"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("popularity_score", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_locations_city", "locations", ["city"])
    op.create_index("ix_locations_state", "locations", ["state"])
    op.create_index("ix_locations_is_verified", "locations", ["is_verified"])
    op.create_index("ix_locations_is_active", "locations", ["is_active"])

    op.create_table(
        "routes",
        _id(),
        sa.Column("start_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("end_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("transport_modes", sa.JSON(), nullable=False),
        sa.Column("estimated_duration", sa.Numeric(10, 2), nullable=False),
        sa.Column("distance", sa.Numeric(10, 2), nullable=False),
        sa.Column("min_fare", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_fare", sa.Numeric(10, 2), nullable=True),
        sa.Column("requires_transfer", sa.Boolean(), nullable=False),
        sa.Column("transfer_points", sa.JSON(), nullable=True),
        sa.Column("popularity_score", sa.Integer(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("verified_by", sa.Uuid(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_routes_start_location_id", "routes", ["start_location_id"])
    op.create_index("ix_routes_end_location_id", "routes", ["end_location_id"])
    op.create_index("ix_routes_is_verified", "routes", ["is_verified"])
    op.create_index("ix_routes_is_active", "routes", ["is_active"])

    op.create_table(
        "route_steps",
        _id(),
        sa.Column("route_id", sa.Uuid(), sa.ForeignKey("routes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("from_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("to_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=True),
        _enum("transport_mode"),
        sa.Column("instructions", sa.Text(), nullable=False),
        sa.Column("duration", sa.Numeric(10, 2), nullable=False),
        sa.Column("distance", sa.Numeric(10, 2), nullable=False),
        sa.Column("estimated_fare", sa.Numeric(10, 2), nullable=True),
        sa.Column("vehicle_info", sa.Text(), nullable=True),
        sa.Column("landmarks", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_route_steps_route_id", "route_steps", ["route_id"])

    op.create_table(
        "route_segments",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("start_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("end_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("intermediate_stops", sa.JSON(), nullable=True),
        sa.Column("transport_modes", sa.JSON(), nullable=False),
        sa.Column("distance", sa.Numeric(10, 2), nullable=False),
        sa.Column("estimated_duration", sa.Integer(), nullable=False),
        sa.Column("min_fare", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_fare", sa.Numeric(10, 2), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=False),
        sa.Column("landmarks", sa.JSON(), nullable=True),
        sa.Column("is_bidirectional", sa.Boolean(), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_route_segments_start_end", "route_segments", ["start_location_id", "end_location_id"]
    )
    op.create_index(
        "ix_route_segments_active_verified", "route_segments", ["is_active", "is_verified"]
    )

    op.create_table(
        "active_trips",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("route_id", sa.Uuid(), sa.ForeignKey("routes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("current_step_id", sa.Uuid(), nullable=True),
        sa.Column("start_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("end_location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=True),
        _coord("current_lat"),
        _coord("current_lng"),
        _enum("status"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_arrival", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_history", sa.JSON(), nullable=True),
        sa.Column("step_progress", sa.JSON(), nullable=True),
        sa.Column("notifications_sent", sa.JSON(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_active_trips_user_id", "active_trips", ["user_id"])
    op.create_index("ix_active_trips_status", "active_trips", ["status"])

    op.create_table(
        "community_posts",
        _id(),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _enum("post_type"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "location_id", sa.Uuid(), sa.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("route_id", sa.Uuid(), sa.ForeignKey("routes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("images", sa.JSON(), nullable=True),
        sa.Column("upvotes", sa.Integer(), nullable=False),
        sa.Column("downvotes", sa.Integer(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("verified_by", sa.Uuid(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_community_posts_author_id", "community_posts", ["author_id"])
    op.create_index("ix_community_posts_post_type", "community_posts", ["post_type"])
    op.create_index("ix_community_posts_location_id", "community_posts", ["location_id"])
    op.create_index("ix_community_posts_is_active", "community_posts", ["is_active"])

    op.create_table(
        "community_comments",
        _id(),
        sa.Column(
            "post_id", sa.Uuid(), sa.ForeignKey("community_posts.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("upvotes", sa.Integer(), nullable=False),
        sa.Column("downvotes", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_community_comments_post_id", "community_comments", ["post_id"])
    op.create_index("ix_community_comments_author_id", "community_comments", ["author_id"])

    op.create_table(
        "post_votes",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "post_id", sa.Uuid(), sa.ForeignKey("community_posts.id", ondelete="CASCADE"), nullable=False
        ),
        _enum("vote_type"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "post_id", name="uq_post_votes_user_post"),
    )
    op.create_index("ix_post_votes_post_id", "post_votes", ["post_id"])

    op.create_table(
        "comment_votes",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "comment_id",
            sa.Uuid(),
            sa.ForeignKey("community_comments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _enum("vote_type"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "comment_id", name="uq_comment_votes_user_comment"),
    )
    op.create_index("ix_comment_votes_comment_id", "comment_votes", ["comment_id"])

    op.create_table(
        "notifications",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _enum("type"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("action_url", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])

    op.create_table(
        "location_shares",
        _id(),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("share_token", sa.String(64), nullable=False),
        sa.Column("share_url", sa.Text(), nullable=False),
        _enum("share_type"),
        sa.Column("location_name", sa.String(255), nullable=False),
        _coord("latitude"),
        _coord("longitude"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_access", sa.Integer(), nullable=True),
        sa.Column("allowed_user_ids", sa.JSON(), nullable=True),
        _enum("status"),
        sa.Column("access_count", sa.Integer(), nullable=False),
        sa.Column("last_accessed_by", sa.Uuid(), nullable=True),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_location_shares_owner_id", "location_shares", ["owner_id"])
    op.create_index("ix_location_shares_share_token", "location_shares", ["share_token"], unique=True)
    op.create_index("ix_location_shares_status", "location_shares", ["status"])

    op.create_table(
        "admins",
        _id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        _enum("role"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("must_change_password", sa.Boolean(), nullable=False),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_ip", sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_admins_email", "admins", ["email"], unique=True)
    op.create_index("ix_admins_role", "admins", ["role"])
    op.create_index("ix_admins_is_active", "admins", ["is_active"])

    op.create_table(
        "admin_sessions",
        _id(),
        sa.Column("admin_id", sa.Uuid(), sa.ForeignKey("admins.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("refresh_token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_admin_sessions_admin_id", "admin_sessions", ["admin_id"])
    op.create_index("ix_admin_sessions_is_active", "admin_sessions", ["is_active"])

    op.create_table(
        "audit",
        sa.Column("log_id", sa.Uuid(), primary_key=True),
        sa.Column("admin_id", sa.Uuid(), nullable=True),
        _enum("event_type"),
        sa.Column("event_id", sa.Uuid(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_audit_admin_id", "audit", ["admin_id"])


def downgrade() -> None:
    for table in (
        "audit",
        "admin_sessions",
        "admins",
        "location_shares",
        "notifications",
        "comment_votes",
        "post_votes",
        "community_comments",
        "community_posts",
        "active_trips",
        "route_segments",
        "route_steps",
        "routes",
        "locations",
        "user_otps",
        "user_devices",
        "users",
    ):
        op.drop_table(table)
