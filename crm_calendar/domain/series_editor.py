"""Edits to events and recurring series.

All functions are pure: they return a new CalendarEvent (or None when the
whole row should be deleted) and leave persistence to the caller.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from crm_calendar.calendar.models import CalendarEvent
from crm_calendar.exceptions import SeriesEditError

logger = logging.getLogger(__name__)

INSTANCE_DATE_FORMAT = "%Y%m%d"


class RecurringDeleteOption(str, Enum):
    """Scope of a delete issued against a recurring instance."""

    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


def parse_instance_id(instance_id: str) -> tuple[str, Optional[date]]:
    """Split an instance id into the base event id and instance date.

    ``"abc_20250106"`` gives ``("abc", date(2025, 1, 6))``. Ids without a
    trailing date part are returned unchanged with ``None``.
    """
    base, sep, suffix = instance_id.rpartition("_")
    if not sep or len(suffix) != 8 or not suffix.isdigit():
        return instance_id, None
    try:
        return base, datetime.strptime(suffix, INSTANCE_DATE_FORMAT).date()
    except ValueError:
        return instance_id, None


def resolve_instance_date(event: CalendarEvent, instance_id: str) -> Optional[date]:
    """Return the occurrence date ``instance_id`` names within ``event``.

    The event decides how the id is read, so a single event whose own id ends
    in ``_YYYYMMDD`` is not mistaken for a recurring instance.

    Raises:
        SeriesEditError: If the id does not name an instance of the event
    """
    if instance_id == event.id:
        return None
    if event.recurrence is not None:
        base_id, instance_date = parse_instance_id(instance_id)
        if base_id == event.id and instance_date is not None:
            return instance_date
    raise SeriesEditError(f"Instance {instance_id!r} does not belong to event {event.id!r}")


def delete_occurrence(
    event: CalendarEvent,
    option: RecurringDeleteOption | str,
    instance_date: Optional[date] = None,
) -> Optional[CalendarEvent]:
    """Apply a delete to a recurring series.

    Args:
        event: Base event of the series
        option: ``single`` skips one date, ``future`` ends the series before
            ``instance_date``, ``all`` deletes the series
        instance_date: Date of the instance the delete was issued from

    Returns:
        The updated event, or None when the caller should delete the row

    Raises:
        SeriesEditError: If the option is unknown or ``instance_date`` is
            required but missing
    """
    try:
        option = RecurringDeleteOption(option)
    except ValueError as e:
        raise SeriesEditError(f"Invalid delete option: {option!r}") from e

    rule = event.recurrence
    if rule is None or option == RecurringDeleteOption.ALL:
        logger.debug("Deleting event %s entirely", event.id)
        return None

    if instance_date is None:
        raise SeriesEditError(f"Delete option {option.value!r} requires an instance date")

    if option == RecurringDeleteOption.SINGLE:
        new_rule = rule.model_copy(
            update={"exception_dates": rule.exception_dates | {instance_date}}
        )
        logger.debug("Added exception date %s to event %s", instance_date, event.id)
        return event.model_copy(update={"recurrence": new_rule})

    # future: the series keeps only instances strictly before instance_date
    new_end = instance_date - timedelta(days=1)
    if new_end < event.start.date():
        logger.debug("Delete-future at first instance of %s removes the series", event.id)
        return None
    if rule.end_date is not None and rule.end_date <= new_end:
        return event

    new_rule = rule.model_copy(update={"end_date": new_end})
    logger.debug("Series %s now ends on %s", event.id, new_end)
    return event.model_copy(update={"recurrence": new_rule})


def move_event(event: CalendarEvent, new_start: datetime) -> CalendarEvent:
    """Move an event to ``new_start`` keeping its duration."""
    _check_awareness(event, new_start)
    return event.model_copy(update={"start": new_start, "end": new_start + event.duration})


def resize_event(event: CalendarEvent, new_start: datetime, new_end: datetime) -> CalendarEvent:
    """Change an event's start and end.

    Raises:
        SeriesEditError: If ``new_end`` is before ``new_start``
    """
    _check_awareness(event, new_start)
    _check_awareness(event, new_end)
    if new_end < new_start:
        raise SeriesEditError(f"Cannot resize event {event.id!r}: end {new_end} is before start {new_start}")
    return event.model_copy(update={"start": new_start, "end": new_end})


def _check_awareness(event: CalendarEvent, value: datetime) -> None:
    if (event.start.tzinfo is None) != (value.tzinfo is None):
        raise SeriesEditError(
            f"Cannot mix naive and timezone-aware datetimes when editing event {event.id!r}"
        )
