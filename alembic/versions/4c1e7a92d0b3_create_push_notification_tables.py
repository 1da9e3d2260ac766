"""create push notification tables

Revision ID: 4c1e7a92d0b3
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c1e7a92d0b3"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

device_platform = sa.Enum("ios", "android", "web", "macos", name="deviceplatform")
notification_type = sa.Enum(
    "mention",
    "direct_message",
    "thread_reply",
    "task_assigned",
    "task_due",
    "task_completed",
    "workspace_invite",
    "message",
    name="notificationtype",
)
notification_priority = sa.Enum("high", "normal", name="notificationpriority")
notification_status = sa.Enum(
    "pending", "processing", "sent", "failed", "cancelled", name="notificationstatus"
)
mute_level = sa.Enum("none", "mentions_only", "all", name="mutelevel")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "user_device_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("device_token", sa.String(500), nullable=False, index=True),
        sa.Column("platform", device_platform, nullable=False),
        sa.Column("device_info", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column(
            "last_used_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "device_token", name="uq_user_device_token"),
    )

    preference_flags = [
        "push_enabled",
        "sound_enabled",
        "badge_enabled",
        "vibration_enabled",
        "notify_all_messages",
        "notify_mentions",
        "notify_direct_messages",
        "notify_thread_replies",
        "notify_task_assigned",
        "notify_task_due",
        "notify_task_completed",
        "notify_workspace_invites",
    ]
    op.create_table(
        "push_notification_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("workspace_id", sa.Integer(), nullable=True),
        sa.Column("thread_id", sa.Integer(), nullable=True),
        *[sa.Column(name, sa.Boolean(), nullable=True) for name in preference_flags],
        sa.Column("mute_level", mute_level, nullable=True),
        sa.Column("muted_until", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("dnd_enabled", sa.Boolean(), nullable=True),
        sa.Column("dnd_start_time", sa.Time(), nullable=True),
        sa.Column("dnd_end_time", sa.Time(), nullable=True),
        sa.Column("dnd_timezone", sa.String(50), nullable=True),
        sa.Column("dnd_allow_mentions", sa.Boolean(), nullable=True),
        sa.Column("dnd_until", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("quiet_hours_enabled", sa.Boolean(), nullable=True),
        sa.Column("quiet_hours_start", sa.Time(), nullable=True),
        sa.Column("quiet_hours_end", sa.Time(), nullable=True),
        sa.Column("quiet_hours_timezone", sa.String(50), nullable=True),
        sa.Column("quiet_hours_weekends_only", sa.Boolean(), nullable=True),
        sa.Column("show_message_preview", sa.Boolean(), nullable=True),
        sa.Column("show_sender_name", sa.Boolean(), nullable=True),
        *_timestamps(),
        # Requires PostgreSQL 15+; the global scope has NULL workspace and thread.
        sa.UniqueConstraint(
            "user_id",
            "workspace_id",
            "thread_id",
            name="uq_preference_scope",
            postgresql_nulls_not_distinct=True,
        ),
    )
    op.create_index(
        "ix_preferences_scope_lookup",
        "push_notification_preferences",
        ["user_id", "workspace_id", "thread_id"],
    )

    op.create_table(
        "push_notification_queue",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("workspace_id", sa.Integer(), nullable=True),
        sa.Column("thread_id", sa.Integer(), nullable=True),
        sa.Column("message_id", sa.Integer(), nullable=True),
        sa.Column("notification_type", notification_type, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("badge_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("priority", notification_priority, nullable=False, server_default="high"),
        sa.Column("status", notification_status, nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("failed_tokens", sa.JSON(), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_push_queue_due", "push_notification_queue", ["status", "scheduled_for"])

    op.create_table(
        "push_notification_log",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "queue_id",
            sa.Integer(),
            sa.ForeignKey("push_notification_queue.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column(
            "device_token_id",
            sa.Integer(),
            sa.ForeignKey("user_device_tokens.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("gateway_message_id", sa.String(255), nullable=True),
        sa.Column("error_code", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
    )

    op.create_table(
        "user_badge_counts",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("workspace_id", sa.Integer(), nullable=True),
        sa.Column("unread_messages", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unread_mentions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unread_direct_messages", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unread_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "last_updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id",
            "workspace_id",
            name="uq_badge_user_workspace",
            postgresql_nulls_not_distinct=True,
        ),
    )

    op.create_table(
        "user_activity",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("workspace_id", sa.Integer(), nullable=True),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.UniqueConstraint(
            "user_id",
            "workspace_id",
            name="uq_activity_user_workspace",
            postgresql_nulls_not_distinct=True,
        ),
    )


def downgrade() -> None:
    op.drop_table("user_activity")
    op.drop_table("user_badge_counts")
    op.drop_table("push_notification_log")
    op.drop_index("ix_push_queue_due", table_name="push_notification_queue")
    op.drop_table("push_notification_queue")
    op.drop_index("ix_preferences_scope_lookup", table_name="push_notification_preferences")
    op.drop_table("push_notification_preferences")
    op.drop_table("user_device_tokens")
    op.drop_table("users")

    for enum in (
        mute_level,
        notification_status,
        notification_priority,
        notification_type,
        device_platform,
    ):
        enum.drop(op.get_bind(), checkfirst=True)
