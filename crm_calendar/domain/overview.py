"""Overview metrics for a set of event instances."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from crm_calendar.calendar.models import EventCategory, EventInstance
from crm_calendar.core.timezone_utils import coerce_to_reference, now_utc, start_of_week, to_display_tz


@dataclass
class OverviewMetrics:
    """Counts shown in the calendar overview card."""

    today: int = 0
    this_week: int = 0
    upcoming: int = 0
    past: int = 0
    total: int = 0
    by_category: dict[EventCategory, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "today": self.today,
            "this_week": self.this_week,
            "upcoming": self.upcoming,
            "past": self.past,
            "total": self.total,
            "by_category": {c.value: n for c, n in self.by_category.items()},
        }


def compute_overview(
    instances: Iterable[EventInstance],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> OverviewMetrics:
    """Count instances for today, this week, upcoming and past.

    Args:
        instances: Instances to summarize, typically one expanded window
        now: Reference time; defaults to now_utc()
        tz: Zone whose calendar days define "today" and "this week"

    Returns:
        OverviewMetrics. Weeks start on Monday; ``upcoming`` counts instances
        starting after ``now``, ``past`` those that ended before it.
    """
    if now is None:
        now = now_utc()
    local_now = to_display_tz(now, tz)
    today = local_now.date()
    week_start = start_of_week(today)
    week_end = week_start + timedelta(days=7)

    metrics = OverviewMetrics()
    categories: Counter[EventCategory] = Counter()

    for instance in instances:
        reference = coerce_to_reference(now, instance.start)
        start_day = to_display_tz(instance.start, tz).date()

        metrics.total += 1
        categories[instance.event.category] += 1
        if start_day == today:
            metrics.today += 1
        if week_start <= start_day < week_end:
            metrics.this_week += 1
        if instance.start > reference:
            metrics.upcoming += 1
        if instance.end < reference:
            metrics.past += 1

    metrics.by_category = dict(categories)
    return metrics
