"""Initial schema: notification settings, delivery log, push subscriptions, follow-up cancellations.

Revision ID: 001
Revises:
Create Date: 2026-09-02
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # entries is owned by the journaling app; created here only if missing
    bind = op.get_bind()
    if not sa.inspect(bind).has_table("entries"):
        op.create_table(
            "entries",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("user_id", UUID(as_uuid=True), nullable=False),
            sa.Column("content", sa.Text, server_default=""),
            sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_entries_user_created", "entries", ["user_id", "created_at"])

    op.create_table(
        "notification_settings",
        sa.Column("user_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("primary_time", sa.String(5), nullable=False, server_default="21:00"),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Asia/Tokyo"),
        sa.Column("active_days", sa.JSON, nullable=False),
        sa.Column("follow_up_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("follow_up_interval_minutes", sa.Integer, nullable=False, server_default="60"),
        sa.Column("follow_up_max_count", sa.Integer, nullable=False, server_default="2"),
        sa.Column("reminders", sa.JSON, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("follow_up_interval_minutes > 0", name="ck_notif_settings_interval_positive"),
        sa.CheckConstraint("follow_up_max_count >= 0", name="ck_notif_settings_max_count_non_negative"),
    )

    op.create_table(
        "notification_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("result", sa.String(10), nullable=False),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("entry_recorded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_notif_logs_user_sent", "notification_logs", ["user_id", "sent_at"])
    op.create_index("idx_notif_logs_sent", "notification_logs", ["sent_at"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("endpoint", sa.Text, nullable=False, unique=True),
        sa.Column("p256dh_key", sa.String(255), nullable=False),
        sa.Column("auth_key", sa.String(255), nullable=False),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "endpoint", name="uq_push_sub_user_endpoint"),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])

    op.create_table(
        "follow_up_cancellations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("target_date", sa.Date, nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "target_date", name="uq_followup_cancel_user_date"),
    )


def downgrade() -> None:
    op.drop_table("follow_up_cancellations")
    op.drop_index("ix_push_subscriptions_user_id", table_name="push_subscriptions")
    op.drop_table("push_subscriptions")
    op.drop_index("idx_notif_logs_sent", table_name="notification_logs")
    op.drop_index("idx_notif_logs_user_sent", table_name="notification_logs")
    op.drop_table("notification_logs")
    op.drop_table("notification_settings")
