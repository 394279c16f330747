"""Reminder engine entry points.

``check_and_send`` is what the per-minute trigger calls for a user;
``run_tick`` does it for every enabled user; ``handle_entry_created`` is called
by the journaling app after a new entry is saved.

Reads that fail short-circuit to "do not send". Bookkeeping writes that fail
are logged and dropped.
"""

import enum
import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .cancellation import CancelOutcome, cancel_follow_ups, is_follow_up_cancelled
from .decision import (
    FollowUpSkipReason,
    is_reminder_due,
    primary_logged_today,
    should_send_follow_up,
    should_skip_notification,
)
from .dispatcher import DispatchError, send_to_all_devices
from .gateway import PushGateway
from .log import already_sent_this_minute, correlate_entry, record_notification
from .messages import build_payload
from .models import NotificationResult, NotificationType
from .schemas import NotificationSettingsData
from .settings_service import get_settings, list_enabled_settings
from .timewindow import civil_date, current_weekday

logger = logging.getLogger(__name__)


class DeliveryStatus(enum.StrEnum):
    NOT_DUE = "not_due"
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    CANCELLED = "cancelled"
    ERROR = "error"


class TickOutcome(BaseModel):
    user_id: UUID
    main: DeliveryStatus = DeliveryStatus.NOT_DUE
    chase: DeliveryStatus = DeliveryStatus.NOT_DUE
    follow_up_reason: FollowUpSkipReason | None = None
    error: str | None = None


class ReminderStats(BaseModel):
    sent: int = 0
    skipped: int = 0
    failed: int = 0

    def add(self, status: DeliveryStatus) -> None:
        if status == DeliveryStatus.SENT:
            self.sent += 1
        elif status in (DeliveryStatus.SKIPPED, DeliveryStatus.DUPLICATE, DeliveryStatus.CANCELLED):
            self.skipped += 1
        elif status in (DeliveryStatus.FAILED, DeliveryStatus.ERROR):
            self.failed += 1


class TickSummary(BaseModel):
    timestamp: datetime
    main: ReminderStats = Field(default_factory=ReminderStats)
    chase: ReminderStats = Field(default_factory=ReminderStats)
    errors: list[str] = Field(default_factory=list)


class EntryIntegrationResult(BaseModel):
    log_updated: bool
    follow_ups_cancelled: bool


async def _dispatch_and_record(
    db: Session,
    user_id: UUID,
    notification_type: NotificationType,
    follow_up_number: int,
    now: datetime,
    gateway: PushGateway,
    session_factory: Callable[[], Session] | None,
    timeout: float | None,
) -> DeliveryStatus:
    payload = build_payload(notification_type, follow_up_number)
    try:
        await send_to_all_devices(db, user_id, payload, gateway, session_factory=session_factory, timeout=timeout)
    except DispatchError as exc:
        logger.warning("%s not delivered to user %s: %s", notification_type, user_id, exc.code)
        record_notification(db, user_id, notification_type, NotificationResult.FAILED, exc.code, sent_at=now)
        return DeliveryStatus.FAILED

    record_notification(db, user_id, notification_type, NotificationResult.SUCCESS, sent_at=now)
    return DeliveryStatus.SENT


async def _process_main(
    db: Session,
    user_id: UUID,
    settings: NotificationSettingsData,
    now: datetime,
    gateway: PushGateway,
    session_factory: Callable[[], Session] | None,
    timeout: float | None,
) -> DeliveryStatus:
    if not is_reminder_due(settings, now):
        return DeliveryStatus.NOT_DUE
    if already_sent_this_minute(db, user_id, NotificationType.MAIN_REMINDER, now):
        return DeliveryStatus.DUPLICATE

    if should_skip_notification(db, user_id, now, settings.timezone):
        record_notification(db, user_id, NotificationType.MAIN_REMINDER, NotificationResult.SKIPPED, sent_at=now)
        return DeliveryStatus.SKIPPED

    return await _dispatch_and_record(
        db, user_id, NotificationType.MAIN_REMINDER, 0, now, gateway, session_factory, timeout
    )


async def _process_follow_up(
    db: Session,
    user_id: UUID,
    settings: NotificationSettingsData,
    now: datetime,
    gateway: PushGateway,
    session_factory: Callable[[], Session] | None,
    timeout: float | None,
) -> tuple[DeliveryStatus, FollowUpSkipReason | None]:
    # Follow-ups only chase a primary reminder already logged today, on an active day.
    if current_weekday(settings.timezone, now) not in settings.active_days:
        return DeliveryStatus.NOT_DUE, None
    if not primary_logged_today(db, user_id, now, settings.timezone):
        return DeliveryStatus.NOT_DUE, FollowUpSkipReason.NO_PRIMARY_TODAY

    decision = should_send_follow_up(db, user_id, now)
    if not decision.should_send:
        if decision.reason in (FollowUpSkipReason.ALREADY_RECORDED, FollowUpSkipReason.MAX_COUNT_REACHED):
            return DeliveryStatus.SKIPPED, decision.reason
        return DeliveryStatus.NOT_DUE, decision.reason

    if already_sent_this_minute(db, user_id, NotificationType.CHASE_REMINDER, now):
        return DeliveryStatus.DUPLICATE, None
    if is_follow_up_cancelled(db, user_id, civil_date(settings.timezone, now)):
        return DeliveryStatus.CANCELLED, None

    status = await _dispatch_and_record(
        db,
        user_id,
        NotificationType.CHASE_REMINDER,
        decision.follow_up_count + 1,
        now,
        gateway,
        session_factory,
        timeout,
    )
    return status, None


async def check_and_send(
    db: Session,
    user_id: UUID,
    now: datetime,
    gateway: PushGateway,
    *,
    session_factory: Callable[[], Session] | None = None,
    timeout: float | None = None,
) -> TickOutcome:
    """Evaluate and, when due, deliver the primary reminder and the next follow-up for one user."""
    outcome = TickOutcome(user_id=user_id)
    try:
        settings = get_settings(db, user_id)
    except SQLAlchemyError:
        logger.exception("Could not load notification settings for user %s", user_id)
        outcome.main = outcome.chase = DeliveryStatus.ERROR
        outcome.error = "DB_ERROR"
        return outcome

    if not settings.enabled:
        return outcome

    try:
        outcome.main = await _process_main(db, user_id, settings, now, gateway, session_factory, timeout)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Main reminder check failed for user %s", user_id)
        outcome.main = DeliveryStatus.ERROR
        outcome.error = "DB_ERROR"

    if settings.follow_up_enabled:
        try:
            outcome.chase, outcome.follow_up_reason = await _process_follow_up(
                db, user_id, settings, now, gateway, session_factory, timeout
            )
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Follow-up check failed for user %s", user_id)
            outcome.chase = DeliveryStatus.ERROR
            outcome.error = "DB_ERROR"
    else:
        outcome.follow_up_reason = FollowUpSkipReason.DISABLED

    return outcome


async def run_tick(
    db: Session,
    now: datetime,
    gateway: PushGateway,
    *,
    session_factory: Callable[[], Session] | None = None,
    timeout: float | None = None,
) -> TickSummary:
    """Run ``check_and_send`` for every user with notifications enabled."""
    summary = TickSummary(timestamp=now)
    try:
        targets = list_enabled_settings(db)
    except SQLAlchemyError:
        logger.exception("Could not load enabled notification settings")
        summary.errors.append("DB_ERROR")
        return summary

    for user_id, _ in targets:
        try:
            outcome = await check_and_send(
                db, user_id, now, gateway, session_factory=session_factory, timeout=timeout
            )
        except Exception as exc:
            logger.exception("Reminder processing failed for user %s", user_id)
            summary.errors.append(f"{user_id}: {exc}")
            continue
        summary.main.add(outcome.main)
        summary.chase.add(outcome.chase)

    logger.info(
        "Tick %s: main sent=%d skipped=%d failed=%d, chase sent=%d skipped=%d failed=%d",
        now.isoformat(),
        summary.main.sent, summary.main.skipped, summary.main.failed,
        summary.chase.sent, summary.chase.skipped, summary.chase.failed,
    )
    return summary


def handle_entry_created(db: Session, user_id: UUID, entry_id: UUID, created_at: datetime) -> EntryIntegrationResult:
    """Correlate today's delivery log with the new entry and cancel remaining follow-ups.

    The two steps are independent: one failing does not stop the other, and
    neither failure reaches the caller that created the entry.
    """
    if not isinstance(user_id, UUID):
        raise ValueError("user_id is required")
    if not isinstance(entry_id, UUID):
        raise ValueError("entry_id is required")
    if not isinstance(created_at, datetime) or created_at.tzinfo is None:
        raise ValueError("created_at must be a timezone-aware datetime")

    try:
        timezone = get_settings(db, user_id).timezone
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not load settings while handling entry %s", entry_id)
        return EntryIntegrationResult(log_updated=False, follow_ups_cancelled=False)

    log_updated = False
    try:
        correlate_entry(db, user_id, created_at, timezone)
        db.commit()
        log_updated = True
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not correlate notification logs with entry %s", entry_id)

    cancelled = False
    try:
        outcome = cancel_follow_ups(db, user_id, civil_date(timezone, created_at), now=created_at)
        cancelled = outcome in (CancelOutcome.CANCELLED, CancelOutcome.ALREADY_CANCELLED)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not cancel follow-ups after entry %s", entry_id)

    return EntryIntegrationResult(log_updated=log_updated, follow_ups_cancelled=cancelled)
