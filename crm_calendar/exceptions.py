"""Custom exception hierarchy for the calendar scheduling engine.

Every error raised by the engine derives from CalendarEngineError so callers
can skip the offending event, log, and continue with the rest of a batch.
"""


class CalendarEngineError(Exception):
    """Base exception for all calendar engine errors."""


class EventDataError(CalendarEngineError):
    """A stored event record could not be converted or is inconsistent.

    Raised when:
    - A persistence row is missing required fields
    - Start/end values cannot be parsed
    - The event ends before it starts
    """


class RecurrenceRuleError(CalendarEngineError):
    """A recurrence rule is malformed.

    Raised when:
    - The interval is zero or negative
    - The end date lies before the base event's start date
    """


class RecurrenceRuleParseError(RecurrenceRuleError):
    """An RRULE string could not be parsed."""


class WindowTooLargeError(CalendarEngineError):
    """The requested query window exceeds the configured maximum span.

    This is a caller error: expansion of open-ended rules over an unbounded
    window is refused instead of attempted.
    """


class LayoutError(CalendarEngineError):
    """A cluster handed to the layout engine is inconsistent.

    Raised when:
    - The cluster mixes segments from different days
    - The same instance appears twice in one cluster
    """


class SeriesEditError(CalendarEngineError):
    """An edit to an event or recurring series is invalid."""
