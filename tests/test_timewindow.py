"""Tests for civil-time helpers."""

from datetime import UTC, date, datetime, timedelta

import pytest

from journal_reminders.notifications.timewindow import (
    InvalidTimezone,
    civil_date,
    current_hhmm,
    current_weekday,
    day_boundaries,
    get_zone,
    local_instant,
    parse_hhmm,
)


class TestCurrentWeekday:
    def test_tokyo_is_already_friday(self):
        # Thursday 23:00 UTC is Friday 08:00 in Tokyo
        assert current_weekday("Asia/Tokyo", datetime(2025, 12, 18, 23, 0, tzinfo=UTC)) == 5

    def test_utc_same_instant_is_thursday(self):
        assert current_weekday("UTC", datetime(2025, 12, 18, 23, 0, tzinfo=UTC)) == 4

    def test_sunday_is_zero(self):
        assert current_weekday("UTC", datetime(2025, 12, 21, 12, 0, tzinfo=UTC)) == 0

    def test_saturday_is_six(self):
        assert current_weekday("UTC", datetime(2025, 12, 20, 12, 0, tzinfo=UTC)) == 6

    def test_naive_instant_rejected(self):
        with pytest.raises(ValueError):
            current_weekday("UTC", datetime(2025, 12, 18, 12, 0))


class TestCurrentHhmm:
    def test_zero_padded(self):
        assert current_hhmm("Asia/Tokyo", datetime(2025, 12, 18, 0, 5, tzinfo=UTC)) == "09:05"

    def test_midnight(self):
        assert current_hhmm("Asia/Tokyo", datetime(2025, 12, 18, 15, 0, tzinfo=UTC)) == "00:00"

    def test_uses_dst_offset(self):
        # New York is on EDT (UTC-4) in July
        assert current_hhmm("America/New_York", datetime(2025, 7, 1, 1, 30, tzinfo=UTC)) == "21:30"


class TestDayBoundaries:
    def test_tokyo_day(self):
        start, end = day_boundaries("Asia/Tokyo", datetime(2025, 12, 18, 23, 0, tzinfo=UTC))
        assert start == datetime(2025, 12, 18, 15, 0, tzinfo=UTC)
        assert end == datetime(2025, 12, 19, 15, 0, tzinfo=UTC)

    def test_spring_forward_day_is_23_hours(self):
        start, end = day_boundaries("America/New_York", datetime(2025, 3, 9, 12, 0, tzinfo=UTC))
        assert start == datetime(2025, 3, 9, 5, 0, tzinfo=UTC)
        assert end == datetime(2025, 3, 10, 4, 0, tzinfo=UTC)
        assert end - start == timedelta(hours=23)

    def test_fall_back_day_is_25_hours(self):
        start, end = day_boundaries("America/New_York", datetime(2025, 11, 2, 12, 0, tzinfo=UTC))
        assert start == datetime(2025, 11, 2, 4, 0, tzinfo=UTC)
        assert end == datetime(2025, 11, 3, 5, 0, tzinfo=UTC)
        assert end - start == timedelta(hours=25)

    def test_instant_at_start_belongs_to_day(self):
        start, end = day_boundaries("Asia/Tokyo", datetime(2025, 12, 18, 15, 0, tzinfo=UTC))
        assert start == datetime(2025, 12, 18, 15, 0, tzinfo=UTC)
        assert end == datetime(2025, 12, 19, 15, 0, tzinfo=UTC)

    def test_instant_just_before_end_belongs_to_day(self):
        start, _ = day_boundaries("Asia/Tokyo", datetime(2025, 12, 19, 14, 59, 59, tzinfo=UTC))
        assert start == datetime(2025, 12, 18, 15, 0, tzinfo=UTC)


class TestCivilDateAndLocalInstant:
    def test_civil_date_crosses_utc_date(self):
        assert civil_date("Asia/Tokyo", datetime(2025, 12, 18, 15, 30, tzinfo=UTC)) == date(2025, 12, 19)

    def test_local_instant_tokyo(self):
        assert local_instant("Asia/Tokyo", date(2025, 12, 18), "21:00") == datetime(2025, 12, 18, 12, 0, tzinfo=UTC)

    def test_local_instant_is_utc(self):
        assert local_instant("Europe/Paris", date(2025, 7, 1), "09:00").utcoffset() == timedelta(0)


class TestParseHhmm:
    @pytest.mark.parametrize("value", ["00:00", "09:30", "23:59"])
    def test_valid(self, value):
        assert parse_hhmm(value).strftime("%H:%M") == value

    @pytest.mark.parametrize("value", ["24:00", "9:30", "12:60", "", "12-30", "noon"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_hhmm(value)


class TestInvalidTimezone:
    @pytest.mark.parametrize("tz", ["Mars/Olympus", "", "not a zone", "../etc/passwd"])
    def test_unknown_identifier_raises(self, tz):
        with pytest.raises(InvalidTimezone):
            get_zone(tz)

    def test_no_utc_fallback(self):
        with pytest.raises(InvalidTimezone):
            current_weekday("Mars/Olympus", datetime(2025, 12, 18, 12, 0, tzinfo=UTC))

    def test_is_value_error(self):
        assert issubclass(InvalidTimezone, ValueError)
