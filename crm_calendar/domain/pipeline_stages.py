"""Concrete pipeline stages for building calendar day views.

Each stage wraps one engine component (expander, interval index, layout
engine, filter engine) in the EventProcessor protocol so they can be composed
into an EventProcessingPipeline.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional

from crm_calendar.calendar.filters import EventFilterEngine
from crm_calendar.calendar.interval_index import IntervalIndex
from crm_calendar.calendar.layout import LayoutEngine, unique_segments
from crm_calendar.calendar.models import CalendarEvent, DayLayout, EventFilter, PositionedEvent
from crm_calendar.calendar.recurrence import RecurrenceExpander
from crm_calendar.config_loader import EngineSettings
from crm_calendar.core.timezone_utils import get_zone
from crm_calendar.domain.pipeline import (
    EventProcessingPipeline,
    ProcessingContext,
    ProcessingResult,
)
from crm_calendar.exceptions import CalendarEngineError, LayoutError, RecurrenceRuleError

logger = logging.getLogger(__name__)


class DeduplicationStage:
    """Remove base events that share an id.

    When several rows carry the same id, the one with more information is
    kept, so each instance id reaches the layout engine at most once.
    """

    def __init__(self) -> None:
        self._name = "Deduplication"

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Deduplicate context.events by id, keeping first-seen order."""
        result = ProcessingResult(stage_name=self.name, items_in=len(context.events))

        unique_events: dict[str, CalendarEvent] = {}
        for event in context.events:
            existing = unique_events.get(event.id)
            if existing is None:
                unique_events[event.id] = event
            elif self._info_score(event) > self._info_score(existing):
                unique_events[event.id] = event

        context.events = list(unique_events.values())
        result.items_out = len(context.events)
        result.items_filtered = result.items_in - result.items_out

        if result.items_filtered > 0:
            result.add_warning(f"Dropped {result.items_filtered} events with duplicate ids")
        else:
            logger.debug("Deduplication: %d events (no duplicates found)", result.items_in)
        return result

    def _info_score(self, event: CalendarEvent) -> int:
        score = 0
        if event.description:
            score += 1
        if event.location:
            score += 1
        if event.assignment is not None:
            score += 2
        return score


class ExpansionStage:
    """Expand base events into instances for the query window.

    A failing event is skipped with a warning; the rest of the batch goes on.
    """

    def __init__(self, expander: RecurrenceExpander) -> None:
        self._name = "Expansion"
        self.expander = expander

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Populate context.instances from context.events.

        Raises:
            WindowTooLargeError: If the window exceeds the configured span
        """
        result = ProcessingResult(stage_name=self.name, items_in=len(context.events))

        if context.window_start is None or context.window_end is None:
            result.add_error("Query window is not set")
            return result

        self.expander.check_window(context.window_start, context.window_end)

        instances = []
        for event in context.events:
            try:
                self.expander.validate_rule(event)
            except RecurrenceRuleError as e:
                # the expander logs and applies its recovery policy
                result.warnings.append(str(e))

            try:
                instances.extend(
                    self.expander.expand(event, context.window_start, context.window_end)
                )
            except (CalendarEngineError, TypeError, ValueError) as e:
                result.add_warning(f"Expansion failed for event {event.id}: {e}")

        context.instances = instances
        result.items_out = len(instances)
        logger.debug("Expansion: %s events -> %s instances", result.items_in, result.items_out)
        return result


class ClusteringStage:
    """Split instances into day segments and group them into overlap clusters."""

    def __init__(self) -> None:
        self._name = "Clustering"

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Populate context.clusters from context.instances."""
        result = ProcessingResult(stage_name=self.name, items_in=len(context.instances))

        index = IntervalIndex(context.instances, context.display_tz)
        context.clusters = index.build_clusters()
        context.extra["index"] = index

        result.items_out = sum(len(c) for c in context.clusters.values())
        result.metadata["cluster_count"] = result.items_out
        result.metadata["day_count"] = len(context.clusters)
        return result


class LayoutStage:
    """Assign layout slots cluster by cluster and assemble DayLayouts."""

    def __init__(self, engine: LayoutEngine) -> None:
        self._name = "Layout"
        self.engine = engine

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Populate context.positioned and context.days from context.clusters."""
        result = ProcessingResult(stage_name=self.name)

        positioned: dict[Any, list[PositionedEvent]] = {}
        for day in sorted(context.clusters):
            day_events: list[PositionedEvent] = []
            for cluster in context.clusters[day]:
                result.items_in += len(cluster)
                unique = unique_segments(cluster)
                if len(unique) != len(cluster):
                    result.add_warning(
                        f"Dropped {len(cluster) - len(unique)} repeated instance(s) on {day}"
                    )
                    cluster = unique
                try:
                    day_events.extend(self.engine.layout_day([cluster]))
                except LayoutError as e:
                    result.add_warning(f"Skipping cluster on {day}: {e}")
            if day_events:
                positioned[day] = day_events

        context.positioned = positioned
        context.days = _to_day_layouts(positioned)
        result.items_out = sum(len(v) for v in positioned.values())
        return result


class FilterStage:
    """Apply the query's EventFilter to the laid-out view.

    By default positioned events keep the slots computed for the unfiltered
    set. With ``relayout_after_filter`` the filter runs on instances and
    clustering and layout are repeated for the visible set.
    """

    def __init__(
        self,
        filter_engine: EventFilterEngine,
        layout_engine: Optional[LayoutEngine] = None,
    ) -> None:
        self._name = "Filter"
        self.filter_engine = filter_engine
        self.layout_engine = layout_engine or LayoutEngine()

    @property
    def name(self) -> str:
        """Stage name for logging."""
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Filter context.days (and context.positioned) in place."""
        event_filter = context.event_filter
        result = ProcessingResult(
            stage_name=self.name,
            items_in=sum(len(v) for v in context.positioned.values()),
        )

        if event_filter is None or event_filter.is_empty():
            result.items_out = result.items_in
            return result

        if context.settings.relayout_after_filter:
            context.instances = self.filter_engine.apply(context.instances, event_filter)
            for stage in (ClusteringStage(), LayoutStage(self.layout_engine)):
                sub_result = stage.process(context)
                result.warnings.extend(sub_result.warnings)
            result.metadata["relayout"] = True
        else:
            filtered: dict[Any, list[PositionedEvent]] = {}
            for day, day_events in context.positioned.items():
                kept_segments = self.filter_engine.apply_segments(
                    (p.segment for p in day_events), event_filter
                )
                kept_ids = {id(s) for s in kept_segments}
                visible = [p for p in day_events if id(p.segment) in kept_ids]
                if visible:
                    filtered[day] = visible
            context.positioned = filtered
            context.days = _to_day_layouts(filtered)

        result.items_out = sum(len(v) for v in context.positioned.values())
        result.items_filtered = result.items_in - result.items_out
        logger.debug(
            "Filter: %s -> %s positioned events", result.items_in, result.items_out
        )
        return result


def _to_day_layouts(positioned: dict[Any, list[PositionedEvent]]) -> list[DayLayout]:
    return [DayLayout(day=day, events=tuple(positioned[day])) for day in sorted(positioned)]


def create_view_pipeline(settings: Any = None) -> EventProcessingPipeline:
    """Create the standard dedup -> expand -> cluster -> layout -> filter pipeline."""
    layout_engine = LayoutEngine()
    pipeline = EventProcessingPipeline()
    pipeline.add_stage(DeduplicationStage())
    pipeline.add_stage(ExpansionStage(RecurrenceExpander(settings)))
    pipeline.add_stage(ClusteringStage())
    pipeline.add_stage(LayoutStage(layout_engine))
    pipeline.add_stage(FilterStage(EventFilterEngine(), layout_engine))
    return pipeline


def resolve_display_tz(settings: EngineSettings) -> Any:
    """Return the configured display zone, or None when unset or unknown."""
    if not settings.display_timezone:
        return None
    try:
        return get_zone(settings.display_timezone)
    except ValueError:
        logger.warning(
            "Unknown display timezone %r; bucketing days in each event's own zone",
            settings.display_timezone,
        )
        return None


def build_calendar_view(
    events: Iterable[CalendarEvent],
    window_start: datetime,
    window_end: datetime,
    event_filter: Optional[EventFilter] = None,
    settings: Any = None,
) -> list[DayLayout]:
    """Build the positioned day view for a query window.

    Args:
        events: Base events from persistence
        window_start: Inclusive window start
        window_end: Exclusive window end
        event_filter: Optional filter bundle
        settings: EngineSettings, mapping or settings-like object

    Returns:
        One DayLayout per rendering day with visible events, ascending

    Raises:
        WindowTooLargeError: If the window exceeds ``max_window_days``
        CalendarEngineError: If a stage fails outright
    """
    config = EngineSettings.from_settings(settings)
    context = ProcessingContext(
        events=list(events),
        window_start=window_start,
        window_end=window_end,
        event_filter=event_filter,
        settings=config,
        display_tz=resolve_display_tz(config),
    )

    result = create_view_pipeline(config).process(context)
    if not result.success:
        raise CalendarEngineError("; ".join(result.errors) or "Calendar view pipeline failed")
    return result.days
