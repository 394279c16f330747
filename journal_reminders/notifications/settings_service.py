"""Notification settings: defaults, reads and full-row upserts."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from .models import NotificationSettings
from .schemas import ALL_DAYS, NotificationSettingsData, NotificationSettingsUpdate, ReminderSlot

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_TIME = "21:00"
DEFAULT_TIMEZONE = "Asia/Tokyo"


def default_settings() -> NotificationSettingsData:
    """Settings used when the user has never saved any."""
    return NotificationSettingsData(
        enabled=False,
        primary_time=DEFAULT_PRIMARY_TIME,
        timezone=DEFAULT_TIMEZONE,
        active_days=list(ALL_DAYS),
        follow_up_enabled=True,
        follow_up_interval_minutes=60,
        follow_up_max_count=2,
        reminders=[ReminderSlot(time=DEFAULT_PRIMARY_TIME, enabled=True)],
    )


def get_settings(db: Session, user_id: UUID) -> NotificationSettingsData:
    row = db.get(NotificationSettings, user_id)
    if row is None:
        return default_settings()
    return NotificationSettingsData.model_validate(row)


def apply_update(current: NotificationSettingsData, update: NotificationSettingsUpdate) -> NotificationSettingsData:
    """Overlay the explicitly set fields of ``update`` onto ``current``."""
    changes = update.model_dump(exclude_unset=True)
    if "reminders" in changes and changes["reminders"] is not None:
        changes["reminders"] = [ReminderSlot(**slot) for slot in changes["reminders"]]
    changes = {k: v for k, v in changes.items() if v is not None}
    merged = current.model_copy(update=changes)

    # Slot 0 is the primary reminder; an update to one side carries over to the other.
    if not merged.reminders or ("primary_time" in changes and "reminders" in changes):
        return merged
    first = merged.reminders[0]
    if "primary_time" in changes:
        slots = [first.model_copy(update={"time": merged.primary_time}), *merged.reminders[1:]]
        return merged.model_copy(update={"reminders": slots})
    if "reminders" in changes and first.time is not None:
        return merged.model_copy(update={"primary_time": first.time})
    return merged


def update_settings(db: Session, user_id: UUID, update: NotificationSettingsUpdate) -> NotificationSettingsData:
    """Merge a partial update over the stored (or default) settings and upsert the whole row."""
    merged = apply_update(get_settings(db, user_id), update)
    row = NotificationSettings(
        user_id=user_id,
        enabled=merged.enabled,
        primary_time=merged.primary_time,
        timezone=merged.timezone,
        active_days=list(merged.active_days),
        follow_up_enabled=merged.follow_up_enabled,
        follow_up_interval_minutes=merged.follow_up_interval_minutes,
        follow_up_max_count=merged.follow_up_max_count,
        reminders=[slot.model_dump() for slot in merged.reminders],
    )
    db.merge(row)
    db.flush()
    logger.info("Notification settings saved for user %s (enabled=%s)", user_id, merged.enabled)
    return merged


def list_enabled_settings(db: Session) -> list[tuple[UUID, NotificationSettingsData]]:
    rows = db.query(NotificationSettings).filter(NotificationSettings.enabled == True).all()  # noqa: E712
    return [(row.user_id, NotificationSettingsData.model_validate(row)) for row in rows]
