"""Day-view layout: greedy column assignment for overlap clusters."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from crm_calendar.calendar.interval_index import occupied_end
from crm_calendar.calendar.models import DaySegment, InstanceKey, LayoutSlot, PositionedEvent
from crm_calendar.exceptions import LayoutError

logger = logging.getLogger(__name__)


class LayoutEngine:
    """Assigns each segment of a cluster a column so overlapping events sit side by side.

    Layout is a pure function of the cluster's contents: no state is kept
    between calls, and identical clusters always produce identical slots.
    """

    def layout(self, cluster: Sequence[DaySegment]) -> dict[InstanceKey, LayoutSlot]:
        """Compute slots for one overlap cluster.

        Segments are placed in sweep order (start, longer first, instance id).
        Each goes into the lowest-indexed column whose last end is at or before
        its start, or into a new column. Every member gets the final column
        count and an equal width.

        Args:
            cluster: Segments of a single day's overlap cluster

        Returns:
            Mapping of instance key to LayoutSlot, in sweep order

        Raises:
            LayoutError: If the cluster spans several days or repeats an instance
        """
        if not cluster:
            return {}
        self._check_cluster(cluster)

        ordered = sorted(cluster, key=lambda s: s.sort_key)
        column_ends: list[datetime] = []
        placements: list[tuple[DaySegment, int]] = []

        for segment in ordered:
            for index, column_end in enumerate(column_ends):
                if column_end <= segment.start:
                    column_ends[index] = occupied_end(segment)
                    placements.append((segment, index))
                    break
            else:
                column_ends.append(occupied_end(segment))
                placements.append((segment, len(column_ends) - 1))

        total_columns = len(column_ends)
        width = 1.0 / total_columns

        return {
            segment.instance_key: LayoutSlot(column=column, width=width, total_columns=total_columns)
            for segment, column in placements
        }

    def layout_day(self, clusters: Iterable[Sequence[DaySegment]]) -> list[PositionedEvent]:
        """Lay out every cluster of one day and pair segments with their slots."""
        positioned: list[PositionedEvent] = []
        for cluster in clusters:
            slots = self.layout(cluster)
            for segment in sorted(cluster, key=lambda s: s.sort_key):
                positioned.append(PositionedEvent(segment=segment, slot=slots[segment.instance_key]))
        return positioned

    def _check_cluster(self, cluster: Sequence[DaySegment]) -> None:
        days = {segment.day for segment in cluster}
        if len(days) > 1:
            raise LayoutError(f"Cluster spans several days: {sorted(days)}")

        seen: set[InstanceKey] = set()
        for segment in cluster:
            if segment.instance_key in seen:
                raise LayoutError(f"Instance {segment.instance_id!r} appears twice in one cluster")
            seen.add(segment.instance_key)


def unique_segments(cluster: Iterable[DaySegment]) -> list[DaySegment]:
    """Return the cluster with repeated instances removed, keeping the first of each."""
    seen: set[InstanceKey] = set()
    unique: list[DaySegment] = []
    for segment in cluster:
        if segment.instance_key in seen:
            continue
        seen.add(segment.instance_key)
        unique.append(segment)
    return unique
