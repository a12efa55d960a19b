"""Data models for calendar events, recurrence rules and derived layout values."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta
from enum import Enum, IntEnum
from typing import Any, NamedTuple, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from crm_calendar.exceptions import EventDataError, RecurrenceRuleParseError

logger = logging.getLogger(__name__)


class EventCategory(str, Enum):
    """Canonical event categories.

    Stored values outside this set are coerced to DEFAULT and render with the
    default style.
    """

    MEETING = "meeting"
    TASK = "task"
    REMINDER = "reminder"
    DEADLINE = "deadline"
    DEFAULT = "default"

    @classmethod
    def coerce(cls, value: Any) -> EventCategory:
        """Map an arbitrary stored value onto the canonical set."""
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.DEFAULT
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.debug("Unknown event category %r; using default", value)
            return cls.DEFAULT


CATEGORY_STYLES: dict[EventCategory, dict[str, str]] = {
    EventCategory.MEETING: {"label": "Meeting", "bg_class": "bg-blue-500"},
    EventCategory.TASK: {"label": "Task", "bg_class": "bg-purple-500"},
    EventCategory.REMINDER: {"label": "Reminder", "bg_class": "bg-yellow-500"},
    EventCategory.DEADLINE: {"label": "Deadline", "bg_class": "bg-red-500"},
    EventCategory.DEFAULT: {"label": "Event", "bg_class": "bg-gray-500"},
}


def category_style(category: Any) -> dict[str, str]:
    """Return label and style class for a category, falling back to the default style."""
    return dict(CATEGORY_STYLES[EventCategory.coerce(category)])


class EventStatus(str, Enum):
    """Event progress status."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventPriority(str, Enum):
    """Event priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AssignmentType(str, Enum):
    """Kind of assignment target."""

    USER = "user"
    TEAM = "team"

    @classmethod
    def _missing_(cls, value: object) -> Optional[AssignmentType]:
        # persistence rows call teams "department"
        if isinstance(value, str) and value.lower() in ("department", "team"):
            return cls.TEAM
        return None


class Weekday(IntEnum):
    """Day of week, Monday first (matches ``date.weekday()``)."""

    MO = 0
    TU = 1
    WE = 2
    TH = 3
    FR = 4
    SA = 5
    SU = 6

    @classmethod
    def parse(cls, value: Any) -> Weekday:
        """Accept an int, an iCalendar code ("MO") or an English day name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip().upper()
        if text.isdigit():
            return cls(int(text))
        if text[:2] in cls.__members__:
            return cls[text[:2]]
        raise ValueError(f"Invalid weekday: {value!r}")


class RecurrenceFrequency(str, Enum):
    """Recurrence step unit."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def _as_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return date_parser.isoparse(value).date()
    return value


class Assignment(BaseModel):
    """Assignment target of an event."""

    model_config = ConfigDict(frozen=True)

    type: AssignmentType
    id: str

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return AssignmentType(value.strip().lower())
        return value


class RecurrenceRule(BaseModel):
    """Recurrence rule attached to a base event.

    The interval is deliberately not range-checked here so malformed stored
    rows can still be loaded; RecurrenceExpander.validate_rule() checks it.
    """

    model_config = ConfigDict(frozen=True)

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, description="Every N units")
    end_date: Optional[date] = Field(default=None, description="Inclusive last date")
    exception_dates: frozenset[date] = Field(
        default_factory=frozenset, description="Calendar dates to skip"
    )
    weekdays: tuple[Weekday, ...] = Field(
        default=(), description="Weekday subset for weekly rules"
    )

    @field_validator("frequency", mode="before")
    @classmethod
    def _normalize_frequency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("end_date", mode="before")
    @classmethod
    def _normalize_end_date(cls, value: Any) -> Any:
        return _as_date(value)

    @field_validator("exception_dates", mode="before")
    @classmethod
    def _normalize_exception_dates(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        return frozenset(_as_date(v) for v in value)

    @field_validator("weekdays", mode="before")
    @classmethod
    def _normalize_weekdays(cls, value: Any) -> Any:
        if value is None:
            return ()
        return tuple(sorted({Weekday.parse(v) for v in value}))

    @classmethod
    def from_rrule_string(cls, rrule_string: str) -> RecurrenceRule:
        """Parse the supported subset of an iCalendar RRULE.

        Supports FREQ, INTERVAL, BYDAY (plain weekday codes) and UNTIL; WKST is
        ignored.

        Raises:
            RecurrenceRuleParseError: If the string is empty, lacks FREQ or uses
                an unsupported part
        """
        if not rrule_string or not rrule_string.strip():
            raise RecurrenceRuleParseError("Empty RRULE string")

        text = rrule_string.strip()
        if text.upper().startswith("RRULE:"):
            text = text[len("RRULE:"):]

        parts: dict[str, str] = {}
        for part in text.split(";"):
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            parts[key.strip().upper()] = value.strip()

        freq = parts.pop("FREQ", "")
        if not freq:
            raise RecurrenceRuleParseError("RRULE missing required FREQ parameter")
        try:
            frequency = RecurrenceFrequency(freq.lower())
        except ValueError as e:
            raise RecurrenceRuleParseError(f"Unsupported FREQ: {freq}") from e

        data: dict[str, Any] = {"frequency": frequency}

        try:
            if "INTERVAL" in parts:
                data["interval"] = int(parts.pop("INTERVAL"))
            if "BYDAY" in parts:
                data["weekdays"] = [
                    Weekday[code.strip().upper()] for code in parts.pop("BYDAY").split(",")
                ]
            if "UNTIL" in parts:
                until = date_parser.isoparse(parts.pop("UNTIL"))
                data["end_date"] = until.date() if isinstance(until, datetime) else until
        except (KeyError, ValueError) as e:
            raise RecurrenceRuleParseError(f"Invalid RRULE format: {rrule_string}") from e

        parts.pop("WKST", None)
        if parts:
            raise RecurrenceRuleParseError(
                f"Unsupported RRULE parts: {', '.join(sorted(parts))}"
            )

        return cls(**data)


class CalendarEvent(BaseModel):
    """Immutable snapshot of a stored calendar event."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque event id")
    title: str = Field(..., description="Event title")
    description: Optional[str] = Field(default=None, description="Event description")

    # Half-open interval [start, end)
    start: datetime = Field(..., description="Event start")
    end: datetime = Field(..., description="Event end (exclusive)")

    category: EventCategory = Field(default=EventCategory.DEFAULT)
    status: Optional[EventStatus] = None
    priority: Optional[EventPriority] = None

    assignment: Optional[Assignment] = None
    department: Optional[str] = None
    location: Optional[str] = None
    owner_id: Optional[str] = Field(default=None, description="Id of the owning user")

    recurrence: Optional[RecurrenceRule] = None

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> EventCategory:
        return EventCategory.coerce(value)

    @model_validator(mode="after")
    def _check_interval(self) -> CalendarEvent:
        if (self.start.tzinfo is None) != (self.end.tzinfo is None):
            raise ValueError("start and end must both be naive or both be timezone-aware")
        if self.end < self.start:
            raise ValueError(f"Event {self.id!r} ends before it starts")
        return self

    @property
    def duration(self) -> timedelta:
        """Length of the base event."""
        return self.end - self.start

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> CalendarEvent:
        """Convert a persistence row into an event.

        Raises:
            EventDataError: If the row cannot be converted
        """
        try:
            recurrence = row.get("recurrence") or row.get("recurring")
            if recurrence and str(recurrence.get("frequency", "")).lower() not in ("", "none"):
                rule: Optional[RecurrenceRule] = RecurrenceRule(
                    frequency=recurrence["frequency"],
                    interval=recurrence.get("interval") or 1,
                    end_date=recurrence.get("end_date") or recurrence.get("endDate"),
                    exception_dates=recurrence.get("exception_dates") or (),
                    weekdays=recurrence.get("weekdays") or (),
                )
            else:
                rule = None

            assignment = None
            if row.get("assigned_to"):
                assignment = Assignment(
                    type=row.get("assigned_to_type") or AssignmentType.USER,
                    id=str(row["assigned_to"]),
                )

            return cls(
                id=str(row["id"]),
                title=row.get("title") or "",
                description=row.get("description") or None,
                start=row.get("start_time") or row["start"],
                end=row.get("end_time") or row["end"],
                category=row.get("category"),
                status=_optional_enum(EventStatus, row.get("status")),
                priority=_optional_enum(EventPriority, row.get("priority")),
                assignment=assignment,
                department=row.get("department") or None,
                location=row.get("location") or None,
                owner_id=row.get("user_id") or row.get("owner_id"),
                recurrence=rule,
            )
        except (KeyError, ValueError, TypeError, AttributeError, ValidationError) as e:
            raise EventDataError(f"Cannot convert row {row.get('id')!r}: {e}") from e


def _optional_enum(enum_cls: type[Enum], value: Any) -> Any:
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        logger.debug("Ignoring unknown %s value %r", enum_cls.__name__, value)
        return None


class InstanceKey(NamedTuple):
    """Collision-free identity of an instance.

    ``instance_id`` is a display key, and a stored id such as ``"a_20250106"``
    can equal a recurring instance id of event ``"a"``. The key keeps the base
    id and the occurrence date apart; ``occurrence`` is empty for single events.
    """

    event_id: str
    occurrence: str


class EventInstance(BaseModel):
    """Concrete occurrence of a (possibly recurring) event."""

    model_config = ConfigDict(frozen=True)

    event: CalendarEvent
    start: datetime
    end: datetime
    is_recurring_instance: bool = False
    original_event_id: str

    @property
    def instance_date(self) -> date:
        return self.start.date()

    @property
    def instance_id(self) -> str:
        """Stable UI key: ``<id>_<YYYYMMDD>`` for recurring instances."""
        if self.is_recurring_instance:
            return f"{self.original_event_id}_{self.start.strftime('%Y%m%d')}"
        return self.original_event_id

    @property
    def instance_key(self) -> InstanceKey:
        if self.is_recurring_instance:
            return InstanceKey(self.original_event_id, self.start.strftime("%Y%m%d"))
        return InstanceKey(self.original_event_id, "")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def title(self) -> str:
        return self.event.title

    @classmethod
    def from_event(cls, event: CalendarEvent) -> EventInstance:
        """Wrap a non-recurring event as its single instance."""
        return cls(
            event=event,
            start=event.start,
            end=event.end,
            is_recurring_instance=False,
            original_event_id=event.id,
        )


class DaySegment(BaseModel):
    """Per-day clip of an instance: ``[max(start, day_start), min(end, day_end))``."""

    model_config = ConfigDict(frozen=True)

    instance: EventInstance
    day: date
    start: datetime
    end: datetime
    is_start: bool = Field(..., description="Clip begins at the instance's true start")
    is_end: bool = Field(..., description="Clip ends at the instance's true end")

    @property
    def instance_id(self) -> str:
        return self.instance.instance_id

    @property
    def instance_key(self) -> InstanceKey:
        return self.instance.instance_key

    @property
    def sort_key(self) -> tuple[datetime, timedelta, str, InstanceKey]:
        """Start ascending, longer first, then instance id and key."""
        return (self.start, -(self.end - self.start), self.instance_id, self.instance_key)


class LayoutSlot(BaseModel):
    """Horizontal placement of a segment within its cluster."""

    model_config = ConfigDict(frozen=True)

    column: int = Field(..., ge=0)
    width: float = Field(..., gt=0, le=1)
    total_columns: int = Field(..., ge=1)

    @model_validator(mode="after")
    def _check_column(self) -> LayoutSlot:
        if self.column >= self.total_columns:
            raise ValueError("column must be less than total_columns")
        return self


class PositionedEvent(BaseModel):
    """A day segment together with its layout slot."""

    model_config = ConfigDict(frozen=True)

    segment: DaySegment
    slot: LayoutSlot

    @property
    def instance(self) -> EventInstance:
        return self.segment.instance


class DayLayout(BaseModel):
    """All positioned events for one rendering day."""

    model_config = ConfigDict(frozen=True)

    day: date
    events: tuple[PositionedEvent, ...] = ()


def _widen_date(value: Any, end_of_day: bool) -> Any:
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max if end_of_day else time.min)
    return value


class EventFilter(BaseModel):
    """Predicate bundle; every dimension is optional and absent means match all."""

    model_config = ConfigDict(frozen=True)

    categories: frozenset[EventCategory] = frozenset()
    statuses: frozenset[EventStatus] = frozenset()
    priorities: frozenset[EventPriority] = frozenset()
    departments: frozenset[str] = frozenset()
    assignee_ids: frozenset[str] = frozenset()
    assignment_types: frozenset[AssignmentType] = frozenset()

    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    search: Optional[str] = Field(default=None, description="Case-insensitive substring")

    current_user_id: Optional[str] = None
    mine_only: bool = False
    assigned_to_me: bool = False

    @field_validator("categories", mode="before")
    @classmethod
    def _coerce_categories(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, (str, EventCategory)):
            value = [value]
        return frozenset(EventCategory.coerce(v) for v in value)

    @field_validator("date_from", mode="before")
    @classmethod
    def _widen_from(cls, value: Any) -> Any:
        return _widen_date(value, end_of_day=False)

    @field_validator("date_to", mode="before")
    @classmethod
    def _widen_to(cls, value: Any) -> Any:
        return _widen_date(value, end_of_day=True)

    def is_empty(self) -> bool:
        """True when no dimension constrains the result."""
        return not (
            self.categories
            or self.statuses
            or self.priorities
            or self.departments
            or self.assignee_ids
            or self.assignment_types
            or self.date_from is not None
            or self.date_to is not None
            or self.search
            or self.mine_only
            or self.assigned_to_me
        )
