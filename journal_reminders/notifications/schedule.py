"""Follow-up schedule calculation.

The chain is anchored on the primary reminder instant for the civil date of
the reference instant; each follow-up is a fixed number of minutes later.
Arithmetic is done on instants, so a chain that runs past local midnight
simply lands on the next civil day.
"""

from datetime import datetime, timedelta

from pydantic import BaseModel

from .models import NotificationType
from .timewindow import civil_date, local_instant


class InvalidInterval(ValueError):
    """Raised when the follow-up interval is not a positive number of minutes."""


class FollowUpTime(BaseModel):
    follow_up_number: int
    scheduled_time: datetime
    notification_type: NotificationType = NotificationType.CHASE_REMINDER


class NotificationSchedule(BaseModel):
    primary_timestamp: datetime
    follow_up_times: list[FollowUpTime]

    model_config = {"frozen": True}

    def follow_up(self, number: int) -> FollowUpTime | None:
        """Return follow-up ``number`` (1-based), or None past the end of the chain."""
        if 1 <= number <= len(self.follow_up_times):
            return self.follow_up_times[number - 1]
        return None


def primary_timestamp(primary_time: str, timezone: str, reference: datetime) -> datetime:
    return local_instant(timezone, civil_date(timezone, reference), primary_time)


def calculate_schedule(
    primary_time: str,
    interval_minutes: int,
    max_count: int,
    timezone: str,
    reference: datetime,
) -> NotificationSchedule:
    if interval_minutes <= 0:
        raise InvalidInterval(f"interval_minutes must be positive, got {interval_minutes}")

    anchor = primary_timestamp(primary_time, timezone, reference)
    follow_ups = [
        FollowUpTime(follow_up_number=i, scheduled_time=anchor + timedelta(minutes=i * interval_minutes))
        for i in range(1, max_count + 1)
    ]
    return NotificationSchedule(primary_timestamp=anchor, follow_up_times=follow_ups)
