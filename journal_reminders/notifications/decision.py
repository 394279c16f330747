"""Send/skip decisions for the primary reminder and the follow-up chain.

Each rule is checked in order and the first one that fails decides the
reported reason. Decisions are recomputed from the log on every call, which is
what makes a re-fired trigger safe.
"""

import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..entries.models import Entry
from .log import logs_for_day
from .models import NotificationType
from .schedule import calculate_schedule
from .schemas import NotificationSettingsData
from .settings_service import get_settings
from .timewindow import current_hhmm, current_weekday, day_boundaries


class FollowUpSkipReason(enum.StrEnum):
    ALREADY_RECORDED = "already_recorded"
    MAX_COUNT_REACHED = "max_count_reached"
    NOT_TIME_YET = "not_time_yet"
    DISABLED = "disabled"
    NO_PRIMARY_TODAY = "no_primary_today"


class FollowUpDecision(BaseModel):
    should_send: bool
    follow_up_count: int
    reason: FollowUpSkipReason | None = None

    model_config = {"frozen": True}


def is_time_to_send_primary(settings: NotificationSettingsData, now: datetime) -> bool:
    if not settings.enabled:
        return False
    if current_hhmm(settings.timezone, now) != settings.primary_time:
        return False
    return current_weekday(settings.timezone, now) in settings.active_days


def is_reminder_due(settings: NotificationSettingsData, now: datetime) -> bool:
    """An enabled reminder slot matches the current minute on an active day.

    ``primary_time`` is only consulted when the user has no reminder slots at all.
    """
    if not settings.enabled:
        return False
    hhmm = current_hhmm(settings.timezone, now)
    if settings.reminders:
        matched = any(slot.enabled and slot.time == hhmm for slot in settings.reminders)
    else:
        matched = hhmm == settings.primary_time
    if not matched:
        return False
    return current_weekday(settings.timezone, now) in settings.active_days


def should_skip_notification(db: Session, user_id: UUID, now: datetime, timezone: str) -> bool:
    """True when the user already has a (non-deleted) entry on today's civil date."""
    start, end = day_boundaries(timezone, now)
    return (
        db.query(Entry.id)
        .filter(
            Entry.user_id == user_id,
            Entry.is_deleted == False,  # noqa: E712
            Entry.created_at >= start,
            Entry.created_at < end,
        )
        .first()
        is not None
    )


def count_follow_ups_today(db: Session, user_id: UUID, now: datetime, timezone: str) -> int:
    start, end = day_boundaries(timezone, now)
    return sum(1 for log in logs_for_day(db, user_id, start, end) if log.type == NotificationType.CHASE_REMINDER)


def primary_logged_today(db: Session, user_id: UUID, now: datetime, timezone: str) -> bool:
    start, end = day_boundaries(timezone, now)
    return any(log.type == NotificationType.MAIN_REMINDER for log in logs_for_day(db, user_id, start, end))


def should_send_follow_up(db: Session, user_id: UUID, now: datetime) -> FollowUpDecision:
    settings = get_settings(db, user_id)
    if not settings.follow_up_enabled:
        return FollowUpDecision(should_send=False, follow_up_count=0, reason=FollowUpSkipReason.DISABLED)

    count = count_follow_ups_today(db, user_id, now, settings.timezone)

    # An entry cancels every remaining follow-up, so this wins over the count check.
    if should_skip_notification(db, user_id, now, settings.timezone):
        return FollowUpDecision(should_send=False, follow_up_count=count, reason=FollowUpSkipReason.ALREADY_RECORDED)

    if count >= settings.follow_up_max_count:
        return FollowUpDecision(should_send=False, follow_up_count=count, reason=FollowUpSkipReason.MAX_COUNT_REACHED)

    schedule = calculate_schedule(
        settings.primary_time,
        settings.follow_up_interval_minutes,
        settings.follow_up_max_count,
        settings.timezone,
        now,
    )
    next_follow_up = schedule.follow_up(count + 1)
    if next_follow_up is None or now < next_follow_up.scheduled_time:
        return FollowUpDecision(should_send=False, follow_up_count=count, reason=FollowUpSkipReason.NOT_TIME_YET)

    return FollowUpDecision(should_send=True, follow_up_count=count)


def get_next_follow_up_time(db: Session, user_id: UUID, now: datetime) -> datetime | None:
    """Instant of the next follow-up still owed today, or None if nothing is owed."""
    decision = should_send_follow_up(db, user_id, now)
    if decision.reason in (
        FollowUpSkipReason.DISABLED,
        FollowUpSkipReason.ALREADY_RECORDED,
        FollowUpSkipReason.MAX_COUNT_REACHED,
    ):
        return None

    settings = get_settings(db, user_id)
    schedule = calculate_schedule(
        settings.primary_time,
        settings.follow_up_interval_minutes,
        settings.follow_up_max_count,
        settings.timezone,
        now,
    )
    next_follow_up = schedule.follow_up(decision.follow_up_count + 1)
    return next_follow_up.scheduled_time if next_follow_up else None
