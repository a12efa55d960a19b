"""Event filtering: order-preserving predicate application over instances and segments."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from crm_calendar.calendar.models import (
    AssignmentType,
    DaySegment,
    EventFilter,
    EventInstance,
)
from crm_calendar.core.timezone_utils import coerce_to_reference

logger = logging.getLogger(__name__)


class EventFilterEngine:
    """Applies an EventFilter bundle to instances.

    Each dimension is optional and the overall predicate is the AND of every
    present dimension. Output order always follows input order.
    """

    def apply(
        self, instances: Iterable[EventInstance], event_filter: Optional[EventFilter]
    ) -> list[EventInstance]:
        """Return the instances matching ``event_filter``, in input order.

        Args:
            instances: Instances to filter
            event_filter: Filter bundle; None or an empty bundle matches everything

        Returns:
            Matching instances
        """
        items = list(instances)
        if event_filter is None or event_filter.is_empty():
            return items

        self._warn_missing_user(event_filter)
        kept = [i for i in items if self.matches(i, event_filter)]
        logger.debug("Filter kept %d of %d instances", len(kept), len(items))
        return kept

    def apply_segments(
        self, segments: Iterable[DaySegment], event_filter: Optional[EventFilter]
    ) -> list[DaySegment]:
        """Filter day segments by their instance; the date range uses the clipped interval."""
        items = list(segments)
        if event_filter is None or event_filter.is_empty():
            return items

        self._warn_missing_user(event_filter)
        return [
            s
            for s in items
            if self.matches(s.instance, event_filter, interval=(s.start, s.end))
        ]

    def matches(
        self,
        instance: EventInstance,
        event_filter: EventFilter,
        interval: Optional[tuple[datetime, datetime]] = None,
    ) -> bool:
        """Single-instance predicate.

        Args:
            instance: Instance to test
            event_filter: Filter bundle
            interval: Clipped interval to use for the date range instead of the
                instance's own start and end
        """
        event = instance.event

        if event_filter.categories and event.category not in event_filter.categories:
            return False
        if event_filter.statuses and event.status not in event_filter.statuses:
            return False
        if event_filter.priorities and event.priority not in event_filter.priorities:
            return False
        if event_filter.departments and event.department not in event_filter.departments:
            return False

        assignment = event.assignment
        if event_filter.assignee_ids and (
            assignment is None or assignment.id not in event_filter.assignee_ids
        ):
            return False
        if event_filter.assignment_types and (
            assignment is None or assignment.type not in event_filter.assignment_types
        ):
            return False

        start, end = interval if interval is not None else (instance.start, instance.end)
        if not self._in_date_range(start, end, event_filter):
            return False

        if event_filter.search and not _search_matches(instance, event_filter.search):
            return False

        user_id = event_filter.current_user_id
        if event_filter.mine_only and (user_id is None or event.owner_id != user_id):
            return False
        if event_filter.assigned_to_me and (
            user_id is None
            or assignment is None
            or assignment.type != AssignmentType.USER
            or assignment.id != user_id
        ):
            return False

        return True

    def _in_date_range(self, start: datetime, end: datetime, event_filter: EventFilter) -> bool:
        # Overlap, not containment; touching a boundary counts
        if event_filter.date_from is not None:
            date_from = coerce_to_reference(event_filter.date_from, start)
            if end < date_from:
                return False
        if event_filter.date_to is not None:
            date_to = coerce_to_reference(event_filter.date_to, start)
            if start > date_to:
                return False
        return True

    def _warn_missing_user(self, event_filter: EventFilter) -> None:
        if (event_filter.mine_only or event_filter.assigned_to_me) and not event_filter.current_user_id:
            logger.warning(
                "Filter requests user-scoped events but no current_user_id was given; nothing will match"
            )


def _search_matches(instance: EventInstance, search: str) -> bool:
    """Case-insensitive substring match on title and description."""
    needle = search.casefold()
    if needle in instance.event.title.casefold():
        return True
    description = instance.event.description
    return description is not None and needle in description.casefold()


def apply_filter(
    instances: Iterable[EventInstance], event_filter: Optional[EventFilter]
) -> list[EventInstance]:
    """Module-level convenience for EventFilterEngine().apply()."""
    return EventFilterEngine().apply(instances, event_filter)
