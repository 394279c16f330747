"""Follow-up cancellation markers.

A marker is a level-triggered fact ("no more follow-ups for this user on this
date"), so writing it twice is harmless. The unique constraint on
(user_id, target_date) collapses duplicates.
"""

import enum
import logging
from datetime import date, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database.base import utcnow
from .models import FollowUpCancellation
from .settings_service import get_settings
from .timewindow import civil_date

logger = logging.getLogger(__name__)


class CancelOutcome(enum.StrEnum):
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"


def cancel_follow_ups(
    db: Session,
    user_id: UUID,
    target_date: date | None = None,
    *,
    now: datetime | None = None,
) -> CancelOutcome:
    """Record that follow-ups are cancelled for ``target_date`` (default: today in the user's timezone)."""
    now = now or utcnow()
    if target_date is None:
        target_date = civil_date(get_settings(db, user_id).timezone, now)

    try:
        db.add(FollowUpCancellation(user_id=user_id, target_date=target_date, cancelled_at=now))
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug("Follow-ups already cancelled for user %s on %s", user_id, target_date)
        return CancelOutcome.ALREADY_CANCELLED

    logger.info("Cancelled follow-ups for user %s on %s", user_id, target_date)
    return CancelOutcome.CANCELLED


def is_follow_up_cancelled(db: Session, user_id: UUID, target_date: date) -> bool:
    return (
        db.query(FollowUpCancellation.id)
        .filter(
            FollowUpCancellation.user_id == user_id,
            FollowUpCancellation.target_date == target_date,
        )
        .first()
        is not None
    )
