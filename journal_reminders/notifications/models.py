"""Notification models: settings, delivery log, device subscriptions, cancellations."""

import enum
import uuid

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, Date, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base, UTCDateTime, utcnow


class NotificationType(enum.StrEnum):
    MAIN_REMINDER = "main_reminder"
    CHASE_REMINDER = "chase_reminder"
    CELEBRATION = "celebration"
    FOLLOW = "follow"


class NotificationResult(enum.StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class NotificationSettings(Base):
    """Per-user reminder preferences. Written only through a full-row upsert."""

    __tablename__ = "notification_settings"

    user_id = Column(UUID(as_uuid=True), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    primary_time = Column(String(5), nullable=False, default="21:00")  # HH:mm
    timezone = Column(String(64), nullable=False, default="Asia/Tokyo")
    active_days = Column(JSON, nullable=False)  # [0..6], 0 = Sunday
    follow_up_enabled = Column(Boolean, nullable=False, default=True)
    follow_up_interval_minutes = Column(Integer, nullable=False, default=60)
    follow_up_max_count = Column(Integer, nullable=False, default=2)
    reminders = Column(JSON, nullable=False)  # [{"time": "HH:mm" | None, "enabled": bool}]
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("follow_up_interval_minutes > 0", name="ck_notif_settings_interval_positive"),
        CheckConstraint("follow_up_max_count >= 0", name="ck_notif_settings_max_count_non_negative"),
    )


class NotificationLog(Base):
    """One row per dispatch attempt (sent, failed or skipped)."""

    __tablename__ = "notification_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    type = Column(
        SQLEnum(NotificationType, values_callable=lambda e: [t.value for t in e], native_enum=False, length=20),
        nullable=False,
    )
    sent_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    result = Column(
        SQLEnum(NotificationResult, values_callable=lambda e: [r.value for r in e], native_enum=False, length=10),
        nullable=False,
    )
    error_message = Column(Text, nullable=True)
    entry_recorded_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("idx_notif_logs_user_sent", "user_id", "sent_at"),
        Index("idx_notif_logs_sent", "sent_at"),
    )


class PushSubscription(Base):
    """A device endpoint registered for web push."""

    __tablename__ = "push_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    endpoint = Column(Text, nullable=False, unique=True)
    p256dh_key = Column(String(255), nullable=False)
    auth_key = Column(String(255), nullable=False)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "endpoint", name="uq_push_sub_user_endpoint"),)

    def to_webpush_dict(self) -> dict:
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh_key, "auth": self.auth_key},
        }


class FollowUpCancellation(Base):
    """Marker: no more follow-ups for this user on this civil date."""

    __tablename__ = "follow_up_cancellations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    target_date = Column(Date, nullable=False)
    cancelled_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "target_date", name="uq_followup_cancel_user_date"),)
