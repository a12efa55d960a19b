"""Per-day interval index: splits instances into day segments and finds overlap clusters."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from crm_calendar.calendar.models import DaySegment, EventInstance
from crm_calendar.calendar.recurrence import overlaps_window
from crm_calendar.core.timezone_utils import day_bounds, to_display_tz

logger = logging.getLogger(__name__)

# Extent given to zero-length markers so they occupy a slot
MARKER_EXTENT = timedelta(microseconds=1)

Cluster = list[DaySegment]


def occupied_end(segment: DaySegment) -> datetime:
    """End used for overlap geometry; zero-length segments occupy an instant."""
    if segment.end > segment.start:
        return segment.end
    return segment.start + MARKER_EXTENT


def split_into_days(instance: EventInstance, tz: Optional[tzinfo] = None) -> list[DaySegment]:
    """Clip an instance to every calendar day it touches.

    Args:
        instance: Instance to split
        tz: Optional display zone; aware datetimes are converted into it first

    Returns:
        One segment per touched day, in day order. A zero-length instance gets
        a single segment on its start day; an instance ending exactly at
        midnight does not touch the following day.
    """
    start = to_display_tz(instance.start, tz)
    end = to_display_tz(instance.end, tz)
    if start.tzinfo is not None and end.tzinfo is not None:
        # Days are counted in the start's zone
        end = end.astimezone(start.tzinfo)

    if end <= start:
        return [
            DaySegment(instance=instance, day=start.date(), start=start, end=start, is_start=True, is_end=True)
        ]

    segments: list[DaySegment] = []
    day = start.date()
    while day <= end.date():
        day_start, day_end = day_bounds(day, start.tzinfo)
        clip_start = max(start, day_start)
        clip_end = min(end, day_end)
        if clip_start < clip_end:
            segments.append(
                DaySegment(
                    instance=instance,
                    day=day,
                    start=clip_start,
                    end=clip_end,
                    is_start=clip_start == start,
                    is_end=clip_end == end,
                )
            )
        day += timedelta(days=1)
    return segments


def sweep_clusters(segments: Iterable[DaySegment]) -> list[Cluster]:
    """Group same-day segments into maximal transitively-overlapping clusters.

    Segments are sorted by start, longer first, then instance id; a cluster
    closes as soon as the next segment starts at or after the latest end seen.
    """
    ordered = sorted(segments, key=lambda s: s.sort_key)
    clusters: list[Cluster] = []
    current: Cluster = []
    cluster_end: Optional[datetime] = None

    for segment in ordered:
        seg_end = occupied_end(segment)
        if current and cluster_end is not None and segment.start >= cluster_end:
            clusters.append(current)
            current = []
        if not current or cluster_end is None:
            cluster_end = seg_end
        else:
            cluster_end = max(cluster_end, seg_end)
        current.append(segment)

    if current:
        clusters.append(current)
    return clusters


class IntervalIndex:
    """Holds the instances of one query window, bucketed by rendering day."""

    def __init__(self, instances: Iterable[EventInstance], tz: Optional[tzinfo] = None):
        """Build the index.

        Args:
            instances: Instances for the query window
            tz: Optional display zone for day bucketing of aware datetimes
        """
        self.tz = tz
        self._instances: list[EventInstance] = sorted(
            instances, key=lambda i: (i.start, -i.duration, i.instance_id, i.instance_key)
        )
        self._by_day: dict[date, list[DaySegment]] = defaultdict(list)

        for instance in self._instances:
            for segment in split_into_days(instance, tz):
                self._by_day[segment.day].append(segment)

        for day_segments in self._by_day.values():
            day_segments.sort(key=lambda s: s.sort_key)

        logger.debug(
            "IntervalIndex built: %d instances across %d days",
            len(self._instances),
            len(self._by_day),
        )

    def __len__(self) -> int:
        return len(self._instances)

    def days(self) -> list[date]:
        """Days with at least one segment, ascending."""
        return sorted(self._by_day)

    def segments_for(self, day: date) -> list[DaySegment]:
        """Segments on ``day`` in sweep order."""
        return list(self._by_day.get(day, ()))

    def clusters_for(self, day: date) -> list[Cluster]:
        """Overlap clusters on ``day``, ordered by start."""
        return sweep_clusters(self._by_day.get(day, ()))

    def build_clusters(self) -> dict[date, list[Cluster]]:
        """Clusters for every indexed day."""
        return {day: self.clusters_for(day) for day in self.days()}

    def overlapping(self, start: datetime, end: datetime) -> list[EventInstance]:
        """Instances intersecting ``[start, end)``, in deterministic order."""
        return [i for i in self._instances if overlaps_window(i.start, i.end, start, end)]

    def conflicts(self) -> dict[date, list[tuple[DaySegment, DaySegment]]]:
        """Pairs of segments per day whose intervals really overlap.

        Pairs are ordered by sweep position; days without conflicts are omitted.
        """
        result: dict[date, list[tuple[DaySegment, DaySegment]]] = {}
        for day in self.days():
            pairs: list[tuple[DaySegment, DaySegment]] = []
            for cluster in self.clusters_for(day):
                for i, first in enumerate(cluster):
                    for second in cluster[i + 1:]:
                        if second.start < occupied_end(first) and first.start < occupied_end(second):
                            pairs.append((first, second))
            if pairs:
                result[day] = pairs
        return result


def build_clusters(
    instances: Iterable[EventInstance], tz: Optional[tzinfo] = None
) -> dict[date, list[Cluster]]:
    """Map each rendering day to its overlap clusters."""
    return IntervalIndex(instances, tz).build_clusters()
