"""Unit tests for timezone and calendar-day helpers."""

from datetime import UTC, date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from crm_calendar.core.timezone_utils import (
    TimeProvider,
    coerce_to_reference,
    day_bounds,
    get_default_timezone,
    get_zone,
    start_of_week,
    to_display_tz,
)

pytestmark = pytest.mark.unit


class TestZones:
    def test_alias_resolution(self):
        assert get_zone("US/Eastern") == ZoneInfo("America/New_York")

    def test_unknown_zone(self):
        with pytest.raises(ValueError):
            get_zone("Mars/Olympus_Mons")

    def test_default_timezone_from_env(self, monkeypatch):
        monkeypatch.setenv("CRM_CALENDAR_DEFAULT_TIMEZONE", "US/Pacific")
        assert get_default_timezone() == "America/Los_Angeles"

    def test_invalid_default_timezone_falls_back(self, monkeypatch):
        monkeypatch.setenv("CRM_CALENDAR_DEFAULT_TIMEZONE", "Nowhere/Special")
        assert get_default_timezone() == "UTC"


class TestTimeProvider:
    def test_test_time_override(self, monkeypatch):
        monkeypatch.setenv("CRM_CALENDAR_TEST_TIME", "2025-10-27T08:20:00-07:00")
        assert TimeProvider().now_utc() == datetime(2025, 10, 27, 15, 20, tzinfo=UTC)

    def test_unparseable_override_uses_clock(self, monkeypatch):
        monkeypatch.setenv("CRM_CALENDAR_TEST_TIME", "yesterday-ish")
        assert TimeProvider().now_utc().tzinfo is not None


class TestCoercion:
    def test_naive_takes_reference_zone(self):
        ref = datetime(2025, 1, 6, 9, tzinfo=ZoneInfo("Europe/Berlin"))
        assert coerce_to_reference(datetime(2025, 1, 6), ref).tzinfo == ref.tzinfo

    def test_aware_against_naive_reference(self):
        result = coerce_to_reference(datetime(2025, 1, 6, 9, tzinfo=timezone.utc), datetime(2025, 1, 1))
        assert result == datetime(2025, 1, 6, 9)

    def test_to_display_tz_leaves_naive_alone(self):
        naive = datetime(2025, 1, 6, 9)
        assert to_display_tz(naive, ZoneInfo("Asia/Tokyo")) is naive


class TestDays:
    def test_day_bounds(self):
        start, end = day_bounds(date(2025, 3, 9), ZoneInfo("America/New_York"))
        assert start.hour == 0 and end.date() == date(2025, 3, 10)
        assert (end.astimezone(UTC) - start.astimezone(UTC)).total_seconds() == 23 * 3600

    def test_start_of_week_is_monday(self):
        assert start_of_week(date(2025, 1, 12)) == date(2025, 1, 6)
        assert start_of_week(date(2025, 1, 6)) == date(2025, 1, 6)
