"""Tests for the view pipeline and its stages."""

from datetime import date, datetime, timedelta

import pytest

from crm_calendar.calendar.interval_index import split_into_days
from crm_calendar.calendar.layout import LayoutEngine
from crm_calendar.calendar.models import EventCategory, EventFilter, RecurrenceRule
from crm_calendar.calendar.recurrence import RecurrenceExpander
from crm_calendar.config_loader import EngineSettings
from crm_calendar.domain.pipeline import EventProcessingPipeline, ProcessingContext, ProcessingResult
from crm_calendar.domain.pipeline_stages import (
    ClusteringStage,
    DeduplicationStage,
    ExpansionStage,
    LayoutStage,
    build_calendar_view,
    create_view_pipeline,
)
from crm_calendar.exceptions import WindowTooLargeError

pytestmark = pytest.mark.unit

WS = datetime(2025, 1, 6)
WE = datetime(2025, 1, 13)


class TestProcessingResult:
    def test_add_warning(self):
        result = ProcessingResult(stage_name="TestStage")
        result.add_warning("Test warning")
        assert result.warnings == ["Test warning"]
        assert result.success is True

    def test_add_error_marks_as_failed(self):
        result = ProcessingResult(success=True, stage_name="TestStage")
        result.add_error("Test error")
        assert result.success is False
        assert result.errors == ["Test error"]


class TestDeduplicationStage:
    def test_keeps_event_with_more_info(self, make_event):
        plain = make_event("dup")
        rich = make_event("dup", description="agenda", location="Room 1")
        context = ProcessingContext(events=[plain, rich, make_event("other")])

        result = DeduplicationStage().process(context)

        assert result.items_in == 3
        assert result.items_out == 2
        assert result.items_filtered == 1
        assert [e.id for e in context.events] == ["dup", "other"]
        assert context.events[0].description == "agenda"


class TestExpansionStage:
    def test_invalid_rule_is_recorded_and_isolated(self, make_event):
        bad = make_event("bad", recurrence=RecurrenceRule(frequency="daily", interval=0))
        good = make_event("good")
        context = ProcessingContext(events=[bad, good], window_start=WS, window_end=WE)

        result = ExpansionStage(RecurrenceExpander()).process(context)

        assert result.success
        assert [i.instance_id for i in context.instances] == ["good"]
        assert any("bad" in w for w in result.warnings)

    def test_missing_window_fails(self, make_event):
        result = ExpansionStage(RecurrenceExpander()).process(ProcessingContext(events=[make_event()]))
        assert not result.success


class TestLayoutStage:
    def test_repeated_instance_is_dropped_not_the_cluster(self, make_instance):
        first = split_into_days(make_instance("a", datetime(2025, 1, 6, 9), datetime(2025, 1, 6, 10)))[0]
        other = split_into_days(make_instance("b", datetime(2025, 1, 6, 9, 30), datetime(2025, 1, 6, 11)))[0]
        context = ProcessingContext(clusters={date(2025, 1, 6): [[first, other, first]]})

        result = LayoutStage(LayoutEngine()).process(context)

        assert result.success is True
        assert len(result.warnings) == 1
        assert [p.segment.instance_id for p in context.days[0].events] == ["a", "b"]
        assert result.items_out == 2


class TestPipeline:
    def test_stages_run_in_order(self, make_event):
        pipeline = (
            EventProcessingPipeline()
            .add_stage(ExpansionStage(RecurrenceExpander()))
            .add_stage(ClusteringStage())
            .add_stage(LayoutStage(LayoutEngine()))
        )
        context = ProcessingContext(events=[make_event("a")], window_start=WS, window_end=WE)

        result = pipeline.process(context)

        assert result.success
        assert [d.day for d in result.days] == [date(2025, 1, 6)]
        assert result.items_out == 1
        assert "Expansion" in repr(pipeline)

    def test_failing_stage_stops_pipeline(self, make_event):
        class Broken:
            name = "Broken"

            def process(self, context):
                raise RuntimeError("boom")

        pipeline = EventProcessingPipeline().add_stage(Broken()).add_stage(ClusteringStage())
        result = pipeline.process(ProcessingContext())

        assert not result.success
        assert "boom" in result.errors[0]

    def test_window_too_large_propagates(self, make_event):
        context = ProcessingContext(events=[make_event()], window_start=WS, window_end=WS + timedelta(days=400))
        with pytest.raises(WindowTooLargeError):
            create_view_pipeline().process(context)


class TestBuildCalendarView:
    @pytest.fixture
    def events(self, make_event):
        return [
            make_event("A", datetime(2025, 1, 6, 9), datetime(2025, 1, 6, 10), category="meeting"),
            make_event("B", datetime(2025, 1, 6, 9, 30), datetime(2025, 1, 6, 10, 30), category="task"),
            make_event("C", datetime(2025, 1, 6, 10, 15), datetime(2025, 1, 6, 10, 45), category="meeting"),
            make_event(
                "weekly",
                datetime(2025, 1, 7, 8),
                datetime(2025, 1, 7, 8, 30),
                recurrence=RecurrenceRule(frequency="daily", end_date=date(2025, 1, 8)),
            ),
        ]

    def test_positions_every_day(self, events):
        days = build_calendar_view(events, WS, WE)

        assert [d.day for d in days] == [date(2025, 1, 6), date(2025, 1, 7), date(2025, 1, 8)]
        first = {p.segment.instance_id: p.slot for p in days[0].events}
        assert (first["A"].column, first["B"].column, first["C"].column) == (0, 1, 0)
        assert [p.segment.instance_id for p in days[1].events] == ["weekly_20250107"]

    def test_filter_keeps_original_slots_by_default(self, events):
        days = build_calendar_view(events, WS, WE, EventFilter(categories={EventCategory.MEETING}))

        assert [d.day for d in days] == [date(2025, 1, 6)]
        slots = {p.segment.instance_id: p.slot for p in days[0].events}
        assert set(slots) == {"A", "C"}
        assert slots["A"].total_columns == 2

    def test_relayout_after_filter(self, events):
        settings = EngineSettings(relayout_after_filter=True)
        days = build_calendar_view(events, WS, WE, EventFilter(categories={EventCategory.MEETING}), settings)

        slots = {p.segment.instance_id: p.slot for p in days[0].events}
        assert slots["A"].total_columns == 1
        assert slots["C"].total_columns == 1

    def test_display_timezone_setting(self, make_event):
        from datetime import timezone

        event = make_event(
            "utc",
            datetime(2025, 1, 7, 2, tzinfo=timezone.utc),
            datetime(2025, 1, 7, 3, tzinfo=timezone.utc),
        )
        days = build_calendar_view(
            [event],
            datetime(2025, 1, 6, tzinfo=timezone.utc),
            datetime(2025, 1, 8, tzinfo=timezone.utc),
            settings={"display_timezone": "US/Pacific"},
        )
        assert [d.day for d in days] == [date(2025, 1, 6)]

    def test_window_too_large(self, events):
        with pytest.raises(WindowTooLargeError):
            build_calendar_view(events, WS, WS + timedelta(days=367))

    def test_id_shaped_like_recurring_instance_keeps_cluster(self, make_event):
        events = [
            make_event(
                "a",
                datetime(2025, 1, 6, 9),
                datetime(2025, 1, 6, 10),
                recurrence=RecurrenceRule(frequency="daily", end_date=date(2025, 1, 6)),
            ),
            make_event("a_20250106", datetime(2025, 1, 6, 9, 30), datetime(2025, 1, 6, 11)),
            make_event("b", datetime(2025, 1, 6, 9, 45), datetime(2025, 1, 6, 10, 30)),
        ]

        (day,) = build_calendar_view(events, WS, WE)

        assert [p.instance.original_event_id for p in day.events] == ["a", "a_20250106", "b"]
        assert [p.slot.column for p in day.events] == [0, 1, 2]
        assert {p.slot.total_columns for p in day.events} == {3}
