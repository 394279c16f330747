"""Delivery log: append-only record of every send/skip/fail decision.

Rows are later correlated with the entry the user wrote after the
notification, which gives the notification-to-entry response latency.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.base import utcnow
from .models import NotificationLog, NotificationResult, NotificationType
from .timewindow import day_boundaries

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90


def record_notification(
    db: Session,
    user_id: UUID,
    notification_type: NotificationType,
    result: NotificationResult,
    error_message: str | None = None,
    *,
    sent_at: datetime | None = None,
) -> NotificationLog | None:
    """Insert a log row and commit it.

    Bookkeeping must never break the flow that triggered it: a failed write is
    logged and None is returned.
    """
    log = NotificationLog(
        user_id=user_id,
        type=notification_type,
        result=result,
        error_message=error_message,
        sent_at=sent_at or utcnow(),
    )
    try:
        db.add(log)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record %s notification (%s) for user %s", notification_type, result, user_id)
        return None
    return log


def logs_for_day(db: Session, user_id: UUID, start: datetime, end: datetime) -> list[NotificationLog]:
    return (
        db.query(NotificationLog)
        .filter(
            NotificationLog.user_id == user_id,
            NotificationLog.sent_at >= start,
            NotificationLog.sent_at < end,
        )
        .order_by(NotificationLog.sent_at.asc())
        .all()
    )


def already_sent_this_minute(db: Session, user_id: UUID, notification_type: NotificationType, now: datetime) -> bool:
    """True if a row of this type already exists in the same minute as ``now``.

    The trigger fires at minute granularity and may re-fire; this makes the
    second invocation a no-op.
    """
    start = now.replace(second=0, microsecond=0)
    end = start + timedelta(minutes=1)
    return (
        db.query(NotificationLog.id)
        .filter(
            NotificationLog.user_id == user_id,
            NotificationLog.type == notification_type,
            NotificationLog.sent_at >= start,
            NotificationLog.sent_at < end,
        )
        .first()
        is not None
    )


def correlate_entry(db: Session, user_id: UUID, entry_created_at: datetime, timezone: str = "UTC") -> int:
    """Stamp today's uncorrelated log rows with the entry time. Returns rows updated."""
    start, end = day_boundaries(timezone, entry_created_at)
    updated = (
        db.query(NotificationLog)
        .filter(
            NotificationLog.user_id == user_id,
            NotificationLog.entry_recorded_at.is_(None),
            NotificationLog.sent_at >= start,
            NotificationLog.sent_at < end,
        )
        .update({NotificationLog.entry_recorded_at: entry_created_at}, synchronize_session="fetch")
    )
    db.flush()
    if updated:
        logger.debug("Correlated %d notification logs with entry for user %s", updated, user_id)
    return updated


def response_latency_minutes(log: NotificationLog) -> float | None:
    if log.entry_recorded_at is None or log.sent_at is None:
        return None
    return (log.entry_recorded_at - log.sent_at).total_seconds() / 60


def prune_older_than(db: Session, retention_days: int = DEFAULT_RETENTION_DAYS, *, now: datetime | None = None) -> int:
    """Delete log rows older than the retention window. Returns rows deleted."""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    deleted = (
        db.query(NotificationLog)
        .filter(NotificationLog.sent_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.flush()
    logger.info("Pruned %d notification logs older than %d days", deleted, retention_days)
    return deleted
