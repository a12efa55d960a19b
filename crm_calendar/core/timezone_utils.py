"""Timezone and calendar-day utilities for crm_calendar."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache
from typing import ClassVar

logger = logging.getLogger(__name__)

# Default fallback timezone for all timezone operations
DEFAULT_TIMEZONE = "UTC"


class TimezoneResolver:
    """Resolves timezone names, including legacy aliases, to tzinfo objects."""

    ALIASES: ClassVar[dict[str, str]] = {
        "US/Pacific": "America/Los_Angeles",
        "US/Mountain": "America/Denver",
        "US/Central": "America/Chicago",
        "US/Eastern": "America/New_York",
        "GMT": "UTC",
        "Etc/UTC": "UTC",
        "Z": "UTC",
    }

    def resolve_name(self, tz_name: str) -> str:
        """Return the canonical IANA name for ``tz_name``."""
        name = tz_name.strip()
        return self.ALIASES.get(name, name)

    def get_zone(self, tz_name: str) -> zoneinfo.ZoneInfo:
        """Return a ZoneInfo for ``tz_name``.

        Raises:
            ValueError: If the name is not a known IANA timezone
        """
        return _cached_zone(self.resolve_name(tz_name))


@lru_cache(maxsize=64)
def _cached_zone(name: str) -> zoneinfo.ZoneInfo:
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


class TimeProvider:
    """Provides current time with test time override support."""

    ENV_OVERRIDE = "CRM_CALENDAR_TEST_TIME"

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via the CRM_CALENDAR_TEST_TIME environment
        variable (ISO 8601, e.g. "2025-10-27T08:20:00-07:00"). Naive values are
        taken to be UTC.
        """
        test_time = os.environ.get(self.ENV_OVERRIDE)
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.UTC)
                return dt.replace(tzinfo=datetime.UTC)
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", self.ENV_OVERRIDE, test_time, e)

        return datetime.datetime.now(datetime.UTC)


# Singleton instances for global use
_resolver = TimezoneResolver()
_time_provider = TimeProvider()


def get_zone(tz_name: str) -> zoneinfo.ZoneInfo:
    """Resolve a timezone name to a ZoneInfo (convenience function)."""
    return _resolver.get_zone(tz_name)


def get_default_timezone(fallback: str = DEFAULT_TIMEZONE) -> str:
    """Get default timezone from environment with validation.

    Checks CRM_CALENDAR_DEFAULT_TIMEZONE first, then falls back to ``fallback``.
    """
    timezone = os.environ.get("CRM_CALENDAR_DEFAULT_TIMEZONE", fallback)

    try:
        get_zone(timezone)
        return _resolver.resolve_name(timezone)
    except ValueError:
        logger.warning("Invalid timezone %r, falling back to %r", timezone, fallback)
        return fallback


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function)."""
    return _time_provider.now_utc()


def coerce_to_reference(
    dt: datetime.datetime, reference: datetime.datetime
) -> datetime.datetime:
    """Make ``dt`` comparable with ``reference``.

    Naive values are localized to the reference's tzinfo. Aware values compared
    against a naive reference are converted to the default timezone and made
    naive, matching how stored wall-clock times are displayed.
    """
    dt_aware = dt.tzinfo is not None and dt.utcoffset() is not None
    ref_aware = reference.tzinfo is not None and reference.utcoffset() is not None

    if dt_aware == ref_aware:
        return dt
    if ref_aware:
        return dt.replace(tzinfo=reference.tzinfo)
    return dt.astimezone(get_zone(get_default_timezone())).replace(tzinfo=None)


def to_display_tz(
    dt: datetime.datetime, tz: datetime.tzinfo | None
) -> datetime.datetime:
    """Convert an aware datetime into the display timezone.

    Naive datetimes and a ``None`` display zone leave the value untouched.
    """
    if tz is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(tz)


def day_bounds(
    day: datetime.date, tzinfo: datetime.tzinfo | None
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return the half-open ``[start, end)`` interval covering a calendar day.

    Bounds are wall-clock midnights, so a DST transition day is 23 or 25 real
    hours long.
    """
    start = datetime.datetime.combine(day, datetime.time.min, tzinfo=tzinfo)
    end = datetime.datetime.combine(
        day + datetime.timedelta(days=1), datetime.time.min, tzinfo=tzinfo
    )
    return start, end


def start_of_week(day: datetime.date) -> datetime.date:
    """Return the Monday of the week containing ``day``."""
    return day - datetime.timedelta(days=day.weekday())
