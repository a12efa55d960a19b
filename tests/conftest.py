"""Shared fixtures for crm_calendar tests."""

from collections.abc import Generator
from datetime import datetime
from typing import Any

import pytest

from crm_calendar.calendar.models import CalendarEvent, EventInstance

CRM_ENV_VARS = [
    "CRM_CALENDAR_TEST_TIME",
    "CRM_CALENDAR_DEFAULT_TIMEZONE",
    "CRM_CALENDAR_DEBUG",
    "CRM_CALENDAR_LOG_LEVEL",
    "CRM_CALENDAR_MAX_WINDOW_DAYS",
    "CRM_CALENDAR_MAX_OCCURRENCES_PER_RULE",
    "CRM_CALENDAR_INVALID_RULE_POLICY",
    "CRM_CALENDAR_DISPLAY_TIMEZONE",
    "CRM_CALENDAR_RELAYOUT_AFTER_FILTER",
]


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Multi-component tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear CRM_CALENDAR_* variables so host settings never leak into tests."""
    for name in CRM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def make_event() -> Any:
    """Factory for CalendarEvent with sensible defaults."""

    def _make(
        event_id: str = "evt",
        start: datetime = datetime(2025, 1, 6, 9, 0),
        end: datetime = datetime(2025, 1, 6, 10, 0),
        **kwargs: Any,
    ) -> CalendarEvent:
        kwargs.setdefault("title", f"Event {event_id}")
        return CalendarEvent(id=event_id, start=start, end=end, **kwargs)

    return _make


@pytest.fixture
def make_instance(make_event: Any) -> Any:
    """Factory for a single non-recurring EventInstance."""

    def _make(event_id: str, start: datetime, end: datetime, **kwargs: Any) -> EventInstance:
        return EventInstance.from_event(make_event(event_id, start, end, **kwargs))

    return _make
