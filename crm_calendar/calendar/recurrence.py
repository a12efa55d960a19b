"""Recurrence expansion: turns base events into concrete occurrences in a window."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta
from typing import Any, Optional

from dateutil.relativedelta import relativedelta

from crm_calendar.calendar.models import (
    CalendarEvent,
    EventInstance,
    RecurrenceFrequency,
    RecurrenceRule,
)
from crm_calendar.config_loader import EngineSettings
from crm_calendar.core.timezone_utils import coerce_to_reference
from crm_calendar.exceptions import (
    CalendarEngineError,
    RecurrenceRuleError,
    WindowTooLargeError,
)

logger = logging.getLogger(__name__)


def overlaps_window(
    start: datetime, end: datetime, window_start: datetime, window_end: datetime
) -> bool:
    """Half-open overlap test; a zero-length event counts if it lies inside the window."""
    if start >= window_end:
        return False
    if end > window_start:
        return True
    return start == end and start >= window_start


class RecurrenceExpander:
    """Expands CalendarEvents into EventInstances intersecting a query window.

    Expansion is a pure function of (event, window): nothing is cached and the
    returned sequence can be regenerated at will.

    Invalid rules (interval <= 0, end date before the base start) are handled
    according to ``invalid_rule_policy``:

    - ``"reject"``: log a warning and emit nothing for the event
    - ``"clamp"``: treat a non-positive interval as 1, with a warning; an end
      date before the start is still rejected

    Passing ``strict=True`` raises RecurrenceRuleError instead.
    """

    def __init__(self, settings: Any = None):
        """Initialize expander with configuration settings.

        Args:
            settings: EngineSettings, mapping or settings-like object
        """
        config = EngineSettings.from_settings(settings)
        self.max_window = timedelta(days=config.max_window_days)
        self.max_occurrences = config.max_occurrences_per_rule
        self.invalid_rule_policy = config.invalid_rule_policy

        logger.debug(
            "RecurrenceExpander initialized: max_window_days=%d, max_occurrences=%d, policy=%s",
            config.max_window_days,
            self.max_occurrences,
            self.invalid_rule_policy,
        )

    def check_window(self, window_start: datetime, window_end: datetime) -> None:
        """Refuse windows wider than the configured maximum span.

        Raises:
            WindowTooLargeError: If ``window_end - window_start`` exceeds the limit
        """
        span = window_end - window_start
        if span > self.max_window:
            raise WindowTooLargeError(
                f"Query window of {span.days} days exceeds the maximum of "
                f"{self.max_window.days} days"
            )

    def validate_rule(self, event: CalendarEvent) -> None:
        """Check an event's recurrence rule.

        Raises:
            RecurrenceRuleError: If the end date precedes the start date or the
                interval is not positive
        """
        rule = event.recurrence
        if rule is None:
            return
        if rule.end_date is not None and rule.end_date < event.start.date():
            raise RecurrenceRuleError(
                f"Event {event.id!r}: recurrence end date {rule.end_date} is before "
                f"start date {event.start.date()}"
            )
        if rule.interval < 1:
            raise RecurrenceRuleError(
                f"Event {event.id!r}: recurrence interval must be >= 1, got {rule.interval}"
            )

    def expand(
        self,
        event: CalendarEvent,
        window_start: datetime,
        window_end: datetime,
        strict: bool = False,
    ) -> list[EventInstance]:
        """Expand an event into the instances overlapping ``[window_start, window_end)``.

        Args:
            event: Base event, recurring or not
            window_start: Inclusive window start
            window_end: Exclusive window end
            strict: Raise on an invalid rule instead of applying the recovery policy

        Returns:
            Instances in start order

        Raises:
            WindowTooLargeError: If the window exceeds ``max_window_days``
            RecurrenceRuleError: If ``strict`` and the rule is invalid
        """
        return list(self.iter_instances(event, window_start, window_end, strict=strict))

    def iter_instances(
        self,
        event: CalendarEvent,
        window_start: datetime,
        window_end: datetime,
        strict: bool = False,
    ) -> Iterator[EventInstance]:
        """Lazy variant of expand()."""
        self.check_window(window_start, window_end)
        if window_end <= window_start:
            return

        window_start = coerce_to_reference(window_start, event.start)
        window_end = coerce_to_reference(window_end, event.start)

        rule = event.recurrence
        if rule is None:
            if overlaps_window(event.start, event.end, window_start, window_end):
                yield EventInstance.from_event(event)
            return

        interval = self._effective_interval(event, rule, strict)
        if interval is None:
            return

        duration = event.duration
        emitted = 0

        for occurrence in _candidate_starts(event.start, rule, interval, window_start - duration):
            if occurrence >= window_end:
                break
            if rule.end_date is not None and occurrence.date() > rule.end_date:
                break
            if occurrence.date() in rule.exception_dates:
                logger.debug("Skipping exception date %s for event %s", occurrence.date(), event.id)
                continue

            occurrence_end = occurrence + duration
            if not overlaps_window(occurrence, occurrence_end, window_start, window_end):
                continue

            if emitted >= self.max_occurrences:
                logger.warning(
                    "Recurrence expansion for event %s limited to %d occurrences",
                    event.id,
                    self.max_occurrences,
                )
                break

            yield EventInstance(
                event=event,
                start=occurrence,
                end=occurrence_end,
                is_recurring_instance=True,
                original_event_id=event.id,
            )
            emitted += 1

        logger.debug("Expanded event %s into %d instances", event.id, emitted)

    def _effective_interval(
        self, event: CalendarEvent, rule: RecurrenceRule, strict: bool
    ) -> Optional[int]:
        try:
            self.validate_rule(event)
        except RecurrenceRuleError as e:
            if strict:
                raise
            end_ok = rule.end_date is None or rule.end_date >= event.start.date()
            if self.invalid_rule_policy == "clamp" and end_ok:
                logger.warning("%s; clamping interval to 1", e)
                return 1
            logger.warning("%s; skipping event", e)
            return None
        return rule.interval


def _candidate_starts(
    anchor: datetime, rule: RecurrenceRule, interval: int, earliest: datetime
) -> Iterator[datetime]:
    """Yield occurrence starts in ascending order, skipping ahead towards ``earliest``.

    Every occurrence is computed from the anchor rather than from the previous
    step, so month-end clamping does not accumulate (Jan 31 -> Feb 28 -> Mar 31).
    The skip-ahead stops one step short so the caller's overlap check decides
    the boundary cases.
    """
    if earliest.tzinfo is not None and anchor.tzinfo is not None:
        earliest = earliest.astimezone(anchor.tzinfo)
    earliest_date = earliest.date()
    anchor_date = anchor.date()

    if rule.frequency == RecurrenceFrequency.WEEKLY and rule.weekdays:
        week0 = anchor_date - timedelta(days=anchor_date.weekday())
        k = max(0, (earliest_date - week0).days // 7 // interval - 1)
        while True:
            week_start = week0 + timedelta(weeks=k * interval)
            for weekday in rule.weekdays:
                day = week_start + timedelta(days=int(weekday))
                if day < anchor_date:
                    continue
                yield anchor + timedelta(days=(day - anchor_date).days)
            k += 1

    if rule.weekdays:
        logger.debug("Ignoring weekday subset on %s rule", rule.frequency.value)

    if rule.frequency == RecurrenceFrequency.DAILY:
        k = max(0, (earliest_date - anchor_date).days // interval - 1)
        step = relativedelta(days=interval)
    elif rule.frequency == RecurrenceFrequency.WEEKLY:
        k = max(0, (earliest_date - anchor_date).days // (7 * interval) - 1)
        step = relativedelta(weeks=interval)
    elif rule.frequency == RecurrenceFrequency.MONTHLY:
        months = (earliest_date.year - anchor_date.year) * 12 + earliest_date.month - anchor_date.month
        k = max(0, months // interval - 1)
        step = relativedelta(months=interval)
    else:
        k = max(0, (earliest_date.year - anchor_date.year) // interval - 1)
        step = relativedelta(years=interval)

    while True:
        yield anchor + step * k
        k += 1


def expand_events(
    events: Iterable[CalendarEvent],
    window_start: datetime,
    window_end: datetime,
    settings: Any = None,
) -> list[EventInstance]:
    """Expand many events, skipping (and logging) any that fail.

    Args:
        events: Base events
        window_start: Inclusive window start
        window_end: Exclusive window end
        settings: Configuration settings

    Returns:
        All instances, grouped by input event order

    Raises:
        WindowTooLargeError: The window check applies to the whole batch
    """
    expander = RecurrenceExpander(settings)
    expander.check_window(window_start, window_end)

    all_instances: list[EventInstance] = []
    for event in events:
        try:
            all_instances.extend(expander.expand(event, window_start, window_end))
        except (CalendarEngineError, TypeError, ValueError) as ex:
            logger.warning("Recurrence expansion failed for event %s: %s", event.id, ex)
            continue

    return all_instances
