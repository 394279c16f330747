"""Notification request/response schemas."""

from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field, field_validator

from .timewindow import InvalidTimezone, get_zone, parse_hhmm

MAX_REMINDER_SLOTS = 5
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


def _check_hhmm(value: str) -> str:
    parse_hhmm(value)
    return value


class ReminderSlot(BaseModel):
    time: str | None = None
    enabled: bool = True

    model_config = {"frozen": True}

    @field_validator("time")
    @classmethod
    def _valid_time(cls, v: str | None) -> str | None:
        return None if v is None else _check_hhmm(v)


class NotificationSettingsData(BaseModel):
    """Full, fixed-shape view of a user's notification settings."""

    enabled: bool
    primary_time: str
    timezone: str
    active_days: list[int]
    follow_up_enabled: bool
    follow_up_interval_minutes: int
    follow_up_max_count: int
    reminders: list[ReminderSlot]

    model_config = {"from_attributes": True, "frozen": True}


class NotificationSettingsUpdate(BaseModel):
    """Partial update: only the fields set here override the stored values."""

    enabled: bool | None = None
    primary_time: str | None = None
    timezone: str | None = None
    active_days: list[int] | None = None
    follow_up_enabled: bool | None = None
    follow_up_interval_minutes: int | None = Field(None, ge=15, le=180)
    follow_up_max_count: int | None = Field(None, ge=0, le=5)
    reminders: list[ReminderSlot] | None = Field(None, max_length=MAX_REMINDER_SLOTS)

    model_config = {"extra": "forbid"}

    @field_validator("primary_time")
    @classmethod
    def _valid_primary_time(cls, v: str | None) -> str | None:
        return None if v is None else _check_hhmm(v)

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            get_zone(v)
        except InvalidTimezone as exc:
            raise ValueError(str(exc)) from exc
        return v

    @field_validator("active_days")
    @classmethod
    def _valid_days(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            return v
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("active_days must contain only integers from 0 to 6")
        if len(set(v)) != len(v):
            raise ValueError("active_days must not contain duplicates")
        return sorted(v)


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1, max_length=255)
    auth: str = Field(..., min_length=1, max_length=255)


class SubscriptionDescriptor(BaseModel):
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys


class SubscribeRequest(BaseModel):
    subscription: SubscriptionDescriptor
    user_agent: str | None = Field(None, alias="userAgent", max_length=500)

    model_config = {"populate_by_name": True}


class EntryCreatedRequest(BaseModel):
    entry_id: UUID = Field(..., alias="entryId")
    created_at: AwareDatetime = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}


class TickRequest(BaseModel):
    """Body of the internal tick call. ``now`` defaults to the server clock."""

    now: AwareDatetime | None = None
