"""Unit tests for calendar data models."""

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from crm_calendar.calendar.models import (
    Assignment,
    AssignmentType,
    CalendarEvent,
    DaySegment,
    EventCategory,
    EventFilter,
    EventInstance,
    EventStatus,
    LayoutSlot,
    RecurrenceFrequency,
    RecurrenceRule,
    Weekday,
    category_style,
)
from crm_calendar.exceptions import EventDataError, RecurrenceRuleParseError

pytestmark = pytest.mark.unit


class TestEventCategory:
    """Tests for the canonical category enumeration."""

    def test_known_values_are_kept(self):
        assert EventCategory.coerce("Meeting") is EventCategory.MEETING
        assert EventCategory.coerce("deadline") is EventCategory.DEADLINE

    def test_unknown_value_falls_back_to_default(self):
        assert EventCategory.coerce("birthday") is EventCategory.DEFAULT
        assert EventCategory.coerce(None) is EventCategory.DEFAULT

    def test_category_style_never_fails(self):
        assert category_style("no-such-category")["label"] == "Event"
        assert category_style(EventCategory.TASK)["label"] == "Task"


class TestAssignment:
    def test_department_is_alias_for_team(self):
        assignment = Assignment(type="department", id="sales")
        assert assignment.type is AssignmentType.TEAM


class TestRecurrenceRule:
    """Tests for RecurrenceRule construction and RRULE parsing."""

    def test_weekdays_are_sorted_and_deduplicated(self):
        rule = RecurrenceRule(frequency="weekly", weekdays=["FR", "MO", 0])
        assert rule.weekdays == (Weekday.MO, Weekday.FR)

    def test_exception_dates_accept_iso_strings(self):
        rule = RecurrenceRule(frequency="daily", exception_dates=["2025-01-08", "2025-01-09T00:00:00Z"])
        assert rule.exception_dates == frozenset({date(2025, 1, 8), date(2025, 1, 9)})

    def test_end_date_accepts_iso_datetime_string(self):
        rule = RecurrenceRule(frequency="daily", end_date="2025-01-31T23:30:00+02:00")
        assert rule.end_date == date(2025, 1, 31)

    def test_non_positive_interval_is_loadable(self):
        rule = RecurrenceRule(frequency="daily", interval=0)
        assert rule.interval == 0

    def test_from_rrule_string(self):
        rule = RecurrenceRule.from_rrule_string("RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;UNTIL=20250331T000000Z")
        assert rule.frequency is RecurrenceFrequency.WEEKLY
        assert rule.interval == 2
        assert rule.weekdays == (Weekday.MO, Weekday.WE)
        assert rule.end_date == date(2025, 3, 31)

    def test_from_rrule_string_ignores_wkst(self):
        rule = RecurrenceRule.from_rrule_string("FREQ=DAILY;WKST=MO")
        assert rule.frequency is RecurrenceFrequency.DAILY

    @pytest.mark.parametrize(
        "text",
        ["", "INTERVAL=2", "FREQ=HOURLY", "FREQ=DAILY;INTERVAL=x", "FREQ=MONTHLY;BYMONTHDAY=1"],
    )
    def test_from_rrule_string_rejects_invalid(self, text):
        with pytest.raises(RecurrenceRuleParseError):
            RecurrenceRule.from_rrule_string(text)


class TestCalendarEvent:
    """Tests for CalendarEvent validation and row conversion."""

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            CalendarEvent(id="a", title="A", start=datetime(2025, 1, 1, 10), end=datetime(2025, 1, 1, 9))

    def test_zero_length_event_allowed(self):
        event = CalendarEvent(id="a", title="A", start=datetime(2025, 1, 1, 10), end=datetime(2025, 1, 1, 10))
        assert event.duration == timedelta(0)

    def test_mixed_awareness_rejected(self):
        with pytest.raises(ValidationError):
            CalendarEvent(
                id="a",
                title="A",
                start=datetime(2025, 1, 1, 9),
                end=datetime(2025, 1, 1, 10, tzinfo=timezone.utc),
            )

    def test_from_row_maps_persistence_fields(self):
        event = CalendarEvent.from_row(
            {
                "id": 42,
                "title": "Standup",
                "start_time": "2025-01-06T09:00:00",
                "end_time": "2025-01-06T09:15:00",
                "category": "meeting",
                "status": "inProgress",
                "assigned_to": "u1",
                "assigned_to_type": "department",
                "user_id": "owner",
                "recurrence": {"frequency": "weekly", "interval": 1, "exception_dates": ["2025-01-13"]},
            }
        )
        assert event.id == "42"
        assert event.status is EventStatus.IN_PROGRESS
        assert event.assignment == Assignment(type=AssignmentType.TEAM, id="u1")
        assert event.owner_id == "owner"
        assert event.recurrence is not None
        assert date(2025, 1, 13) in event.recurrence.exception_dates

    def test_from_row_treats_none_frequency_as_absent(self):
        event = CalendarEvent.from_row(
            {"id": "x", "title": "X", "start": "2025-01-06T09:00", "end": "2025-01-06T10:00", "recurrence": {"frequency": "none"}}
        )
        assert event.recurrence is None

    def test_from_row_wraps_errors(self):
        with pytest.raises(EventDataError):
            CalendarEvent.from_row({"id": "x", "title": "X"})


class TestEventInstance:
    def test_instance_id_for_recurring_instance(self, make_event):
        event = make_event("abc")
        instance = EventInstance(
            event=event,
            start=datetime(2025, 1, 13, 9),
            end=datetime(2025, 1, 13, 10),
            is_recurring_instance=True,
            original_event_id="abc",
        )
        assert instance.instance_id == "abc_20250113"
        assert instance.instance_date == date(2025, 1, 13)

    def test_instance_id_for_single_event(self, make_event):
        assert EventInstance.from_event(make_event("abc")).instance_id == "abc"


class TestDaySegment:
    def test_sort_key_puts_longer_first(self, make_instance):
        long = make_instance("long", datetime(2025, 1, 6, 9), datetime(2025, 1, 6, 11))
        short = make_instance("short", datetime(2025, 1, 6, 9), datetime(2025, 1, 6, 10))
        segments = [
            DaySegment(instance=i, day=date(2025, 1, 6), start=i.start, end=i.end, is_start=True, is_end=True)
            for i in (short, long)
        ]
        ordered = sorted(segments, key=lambda s: s.sort_key)
        assert [s.instance_id for s in ordered] == ["long", "short"]


class TestLayoutSlot:
    def test_column_must_be_below_total(self):
        with pytest.raises(ValidationError):
            LayoutSlot(column=2, width=0.5, total_columns=2)

    def test_width_bounds(self):
        with pytest.raises(ValidationError):
            LayoutSlot(column=0, width=0, total_columns=1)


class TestEventFilter:
    def test_empty_filter(self):
        assert EventFilter().is_empty()
        assert EventFilter(search="").is_empty()

    def test_dates_are_widened_to_whole_days(self):
        event_filter = EventFilter(date_from=date(2025, 1, 6), date_to=date(2025, 1, 7))
        assert event_filter.date_from == datetime(2025, 1, 6, 0, 0)
        assert event_filter.date_to.date() == date(2025, 1, 7)
        assert event_filter.date_to.hour == 23
        assert not event_filter.is_empty()

    def test_categories_are_coerced(self):
        event_filter = EventFilter(categories=["Meeting", " TASK "])
        assert event_filter.categories == frozenset({EventCategory.MEETING, EventCategory.TASK})

    def test_unknown_category_maps_to_default(self):
        assert EventFilter(categories=frozenset(["standup"])).categories == frozenset({EventCategory.DEFAULT})
