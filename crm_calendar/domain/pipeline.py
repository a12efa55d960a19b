"""Event processing pipeline for calendar views.

Events flow through a fixed sequence of synchronous stages that share a
ProcessingContext:

    persistence rows -> CalendarEvent -> expansion -> day clustering
    -> layout -> filtering -> DayLayout per rendering day

Usage:
    pipeline = EventProcessingPipeline()
    pipeline.add_stage(ExpansionStage(expander))
    pipeline.add_stage(ClusteringStage())
    pipeline.add_stage(LayoutStage(engine))

    context = ProcessingContext(events=events, window_start=ws, window_end=we)
    result = pipeline.process(context)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Optional, Protocol

from crm_calendar.calendar.interval_index import Cluster
from crm_calendar.calendar.models import (
    CalendarEvent,
    DayLayout,
    EventFilter,
    EventInstance,
    PositionedEvent,
)
from crm_calendar.config_loader import EngineSettings
from crm_calendar.exceptions import WindowTooLargeError

logger = logging.getLogger(__name__)


@dataclass
class ProcessingContext:
    """Context passed between pipeline stages.

    Holds the query inputs and every intermediate product. Each call builds
    its own context; nothing is shared between queries.
    """

    # Query
    events: list[CalendarEvent] = field(default_factory=list)
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    event_filter: Optional[EventFilter] = None

    # Configuration
    settings: EngineSettings = field(default_factory=EngineSettings)
    display_tz: Optional[tzinfo] = None

    # Processing state (modified by stages)
    instances: list[EventInstance] = field(default_factory=list)
    clusters: dict[date, list[Cluster]] = field(default_factory=dict)
    positioned: dict[date, list[PositionedEvent]] = field(default_factory=dict)
    days: list[DayLayout] = field(default_factory=list)

    # Stage-specific data (extensible)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessingResult:
    """Result from a pipeline stage or complete pipeline execution."""

    success: bool = True
    days: list[DayLayout] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    # Statistics
    items_in: int = 0
    items_out: int = 0
    items_filtered: int = 0
    stage_name: str = ""

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)
        logger.warning("[%s] %s", self.stage_name, message)

    def add_error(self, message: str) -> None:
        """Add an error message and mark as failed."""
        self.errors.append(message)
        self.success = False
        logger.error("[%s] %s", self.stage_name, message)


class EventProcessor(Protocol):
    """Protocol for a single stage in the processing pipeline."""

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Run this stage against the shared context."""
        ...

    @property
    def name(self) -> str:
        """Name of this processing stage for logging."""
        ...


class EventProcessingPipeline:
    """Orchestrates processing through multiple stages.

    Stages run in sequence. A stage reporting failure stops the pipeline;
    warnings from every stage are collected on the aggregated result.
    WindowTooLargeError is a caller error and propagates unchanged.
    """

    def __init__(self) -> None:
        """Initialize empty pipeline."""
        self.stages: list[EventProcessor] = []

    def add_stage(self, stage: EventProcessor) -> EventProcessingPipeline:
        """Add a processing stage to the pipeline (builder pattern).

        Returns:
            Self for method chaining
        """
        self.stages.append(stage)
        logger.debug("Added stage to pipeline: %s", stage.name)
        return self

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Execute all pipeline stages in sequence.

        Args:
            context: Processing context with initial state

        Returns:
            Aggregated result from all stages

        Raises:
            WindowTooLargeError: If the query window exceeds the configured span
        """
        logger.debug("Starting pipeline with %d stages", len(self.stages))

        aggregated_result = ProcessingResult(
            stage_name="Pipeline",
            items_in=len(context.events),
        )

        for i, stage in enumerate(self.stages):
            stage_num = i + 1
            logger.debug("Executing stage %d/%d: %s", stage_num, len(self.stages), stage.name)

            try:
                stage_result = stage.process(context)
            except WindowTooLargeError:
                raise
            except Exception as e:
                aggregated_result.add_error(f"Stage {stage.name} raised exception: {e}")
                logger.exception("Stage %s failed with exception", stage.name)
                return aggregated_result

            logger.debug(
                "Stage %s/%s (%s) completed: success=%s, items_in=%s, items_out=%s, warnings=%s, errors=%s",
                stage_num,
                len(self.stages),
                stage.name,
                stage_result.success,
                stage_result.items_in,
                stage_result.items_out,
                len(stage_result.warnings),
                len(stage_result.errors),
            )

            aggregated_result.warnings.extend(stage_result.warnings)
            aggregated_result.errors.extend(stage_result.errors)

            if not stage_result.success:
                aggregated_result.success = False
                logger.error(
                    "Pipeline stopped at stage %s (%s) due to failure",
                    stage_num,
                    stage.name,
                )
                return aggregated_result

            aggregated_result.metadata.update(stage_result.metadata)

        aggregated_result.success = True
        aggregated_result.days = list(context.days)
        aggregated_result.items_out = sum(len(day.events) for day in context.days)

        logger.info(
            "Pipeline completed: %s positioned events over %s days, %s warnings",
            aggregated_result.items_out,
            len(aggregated_result.days),
            len(aggregated_result.warnings),
        )
        return aggregated_result

    def clear_stages(self) -> None:
        """Remove all stages from the pipeline."""
        self.stages.clear()
        logger.debug("Cleared all pipeline stages")

    def __repr__(self) -> str:
        """String representation of pipeline."""
        stage_names = [stage.name for stage in self.stages]
        return f"EventProcessingPipeline(stages={stage_names})"
