"""Tests for the engine's exception hierarchy."""

import pytest

from crm_calendar.exceptions import (
    CalendarEngineError,
    EventDataError,
    LayoutError,
    RecurrenceRuleError,
    RecurrenceRuleParseError,
    SeriesEditError,
    WindowTooLargeError,
)

pytestmark = pytest.mark.unit


class TestExceptionHierarchy:
    def test_all_exceptions_inherit_from_base(self):
        for exc_class in (
            EventDataError,
            RecurrenceRuleError,
            RecurrenceRuleParseError,
            WindowTooLargeError,
            LayoutError,
            SeriesEditError,
        ):
            assert issubclass(exc_class, CalendarEngineError)

    def test_parse_error_is_a_rule_error(self):
        with pytest.raises(RecurrenceRuleError):
            raise RecurrenceRuleParseError("bad rrule")

    def test_exception_messages_are_preserved(self):
        assert str(LayoutError("mixed days")) == "mixed days"
