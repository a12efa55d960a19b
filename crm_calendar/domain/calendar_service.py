"""Calendar service: wires the engine to its persistence and notification collaborators."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from crm_calendar.calendar.models import CalendarEvent, DayLayout, EventFilter, EventInstance
from crm_calendar.calendar.recurrence import expand_events
from crm_calendar.config_loader import EngineSettings
from crm_calendar.core.protocols import EventRepository, Notifier, TimeProvider
from crm_calendar.core.timezone_utils import now_utc
from crm_calendar.domain.overview import OverviewMetrics, compute_overview
from crm_calendar.domain.pipeline_stages import build_calendar_view, resolve_display_tz
from crm_calendar.domain.series_editor import (
    RecurringDeleteOption,
    delete_occurrence,
    move_event,
    resize_event,
    resolve_instance_date,
)

logger = logging.getLogger(__name__)


class CalendarService:
    """Loads events, builds views and applies edits through collaborator protocols.

    Each call goes to the repository once; results are never cached between calls.
    """

    def __init__(
        self,
        repository: EventRepository,
        notifier: Optional[Notifier] = None,
        settings: Any = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.repository = repository
        self.notifier = notifier
        self.settings = EngineSettings.from_settings(settings)
        self.time_provider = time_provider or now_utc

    def get_view(
        self,
        window_start: datetime,
        window_end: datetime,
        event_filter: Optional[EventFilter] = None,
    ) -> list[DayLayout]:
        """Build the positioned day view for a window."""
        events = self.repository.load_events(window_start, window_end)
        logger.debug("Loaded %d events for %s..%s", len(events), window_start, window_end)
        return build_calendar_view(events, window_start, window_end, event_filter, self.settings)

    def get_instances(self, window_start: datetime, window_end: datetime) -> list[EventInstance]:
        """Expanded instances for a window, unfiltered and unpositioned."""
        events = self.repository.load_events(window_start, window_end)
        return expand_events(events, window_start, window_end, self.settings)

    def get_overview(self, window_start: datetime, window_end: datetime) -> OverviewMetrics:
        """Overview counts for the instances in a window."""
        return compute_overview(
            self.get_instances(window_start, window_end),
            now=self.time_provider(),
            tz=resolve_display_tz(self.settings),
        )

    def save_event(
        self, event: CalendarEvent, previous: Optional[CalendarEvent] = None
    ) -> str:
        """Persist an event and notify the assignee when the assignment changed."""
        event_id = self.repository.save_event(event)
        old_assignment = previous.assignment if previous is not None else None
        if (
            self.notifier is not None
            and event.assignment is not None
            and event.assignment != old_assignment
        ):
            logger.debug("Assignment of %s changed; notifying %s", event_id, event.assignment.id)
            self.notifier.notify(event.assignment)
        return event_id

    def move(self, event: CalendarEvent, new_start: datetime) -> str:
        """Move an event keeping its duration and persist it."""
        return self.save_event(move_event(event, new_start), previous=event)

    def resize(self, event: CalendarEvent, new_start: datetime, new_end: datetime) -> str:
        """Resize an event and persist it."""
        return self.save_event(resize_event(event, new_start, new_end), previous=event)

    def delete(
        self,
        event: CalendarEvent,
        instance_id: Optional[str] = None,
        option: RecurringDeleteOption | str = RecurringDeleteOption.ALL,
    ) -> Optional[CalendarEvent]:
        """Delete an event, one of its instances, or the rest of its series.

        Args:
            event: Base event
            instance_id: Id of the instance the delete was issued from
            option: Delete scope for recurring events

        Returns:
            The updated event that was saved, or None if the row was deleted

        Raises:
            SeriesEditError: If the instance id does not belong to the event
        """
        instance_date: Optional[date] = None
        if instance_id is not None:
            instance_date = resolve_instance_date(event, instance_id)

        updated = delete_occurrence(event, option, instance_date)
        if updated is None:
            self.repository.delete_event(event.id)
            logger.info("Deleted event %s", event.id)
        elif updated is not event:
            self.repository.save_event(updated)
            logger.info("Updated series %s after %s delete", event.id, RecurringDeleteOption(option).value)
        return updated
