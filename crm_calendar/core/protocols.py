"""Protocol definitions for the engine's external collaborators.

Persistence and notification live outside the engine; these protocols are the
request/response contracts it relies on. The engine never retries or caches
calls made through them.
"""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from crm_calendar.calendar.models import Assignment, CalendarEvent


class TimeProvider(Protocol):
    """Protocol for time provider callables."""

    def __call__(self) -> datetime.datetime:
        """Return current UTC time."""
        ...


class EventRepository(Protocol):
    """Protocol for the event persistence collaborator."""

    def load_events(
        self, window_start: datetime.datetime, window_end: datetime.datetime
    ) -> list[CalendarEvent]:
        """Load base events that may produce instances in the window.

        Args:
            window_start: Inclusive window start
            window_end: Exclusive window end

        Returns:
            Base events, recurring series included
        """
        ...

    def save_event(self, event: CalendarEvent) -> str:
        """Persist an event.

        Returns:
            The stored event id
        """
        ...

    def delete_event(self, event_id: str) -> None:
        """Delete a stored event row."""
        ...


class Notifier(Protocol):
    """Protocol for the notification collaborator."""

    def notify(self, assignment: Assignment) -> None:
        """Tell an assignee about a new or changed assignment."""
        ...
