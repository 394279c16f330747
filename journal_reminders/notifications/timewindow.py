"""Civil-time helpers for IANA timezones.

Every function takes an aware instant and a zone identifier and is pure.
Offsets are resolved at the instant in question, so daylight-saving days are
handled by zoneinfo without any special casing here.
"""

import re
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class InvalidTimezone(ValueError):
    """Raised for an unknown or malformed IANA timezone identifier."""

    def __init__(self, tz: str) -> None:
        super().__init__(f"Invalid timezone: {tz!r}")
        self.tz = tz


def get_zone(tz: str) -> ZoneInfo:
    if not tz:
        raise InvalidTimezone(tz)
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise InvalidTimezone(tz) from exc


def _localize(tz: str, instant: datetime) -> datetime:
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(get_zone(tz))


def parse_hhmm(value: str) -> time:
    """Parse a zero-padded 24h "HH:mm" string."""
    match = _HHMM.match(value or "")
    if not match:
        raise ValueError(f"Time must be in HH:mm format (00:00-23:59), got {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def current_weekday(tz: str, instant: datetime) -> int:
    """Local day of week, 0 = Sunday .. 6 = Saturday."""
    return _localize(tz, instant).isoweekday() % 7


def current_hhmm(tz: str, instant: datetime) -> str:
    return _localize(tz, instant).strftime("%H:%M")


def civil_date(tz: str, instant: datetime) -> date:
    return _localize(tz, instant).date()


def local_instant(tz: str, day: date, hhmm: str) -> datetime:
    """UTC instant of wall-clock ``hhmm`` on civil date ``day`` in ``tz``."""
    wall = datetime.combine(day, parse_hhmm(hhmm), tzinfo=get_zone(tz))
    return wall.astimezone(UTC)


def day_boundaries(tz: str, instant: datetime) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` UTC range of the local civil day containing ``instant``."""
    zone = get_zone(tz)
    day = _localize(tz, instant).date()
    start = datetime.combine(day, time.min, tzinfo=zone).astimezone(UTC)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone).astimezone(UTC)
    return start, end
