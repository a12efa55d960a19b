"""Command-line entry for crm_calendar.

Reads persistence rows from a JSON file, builds the positioned day view for a
query window and prints it as JSON.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn, Optional

from dateutil import parser as date_parser

from . import _init_logging
from .calendar.models import CalendarEvent, DayLayout, EventFilter, category_style
from .config_loader import load_config
from .core.config_manager import ConfigManager
from .domain.pipeline_stages import build_calendar_view
from .exceptions import CalendarEngineError, EventDataError, WindowTooLargeError
from .lite_logging import configure_lite_logging

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the crm_calendar CLI."""
    parser = argparse.ArgumentParser(
        prog="crm_calendar",
        description="Expand, lay out and filter calendar events for a query window",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m crm_calendar events.json --start 2025-01-06 --end 2025-01-13
  python -m crm_calendar events.json --start 2025-01-06 --end 2025-02-06 --category meeting --search standup
        """,
    )

    parser.add_argument("events_file", metavar="EVENTS.json", help="JSON list of event rows")
    parser.add_argument("--start", required=True, metavar="ISO", help="Inclusive window start")
    parser.add_argument("--end", required=True, metavar="ISO", help="Exclusive window end")
    parser.add_argument("--config", metavar="FILE", help="YAML config file (default: ./crm_calendar.yaml)")
    parser.add_argument(
        "--category",
        action="append",
        default=[],
        metavar="CATEGORY",
        help="Only show this category (repeatable, case-insensitive; unknown values mean default)",
    )
    parser.add_argument("--search", metavar="TEXT", help="Case-insensitive title/description substring")
    parser.add_argument("--user", metavar="ID", help="Current user id for --mine / --assigned-to-me")
    parser.add_argument("--mine", action="store_true", help="Only events owned by --user")
    parser.add_argument("--assigned-to-me", action="store_true", help="Only events assigned to --user")
    parser.add_argument("--tz", metavar="ZONE", help="Display timezone for day bucketing")
    parser.add_argument("--relayout", action="store_true", help="Recompute layout after filtering")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser


def _load_rows(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("events", [])
    if not isinstance(data, list):
        raise ValueError("Events file must contain a list of rows or an object with an 'events' list")
    return data


def _load_events(rows: list[dict[str, Any]]) -> list[CalendarEvent]:
    events = []
    for row in rows:
        try:
            events.append(CalendarEvent.from_row(row))
        except EventDataError as e:
            logger.warning("Skipping row: %s", e)
    return events


def _day_to_dict(day: DayLayout) -> dict[str, Any]:
    return {
        "day": day.day.isoformat(),
        "events": [
            {
                "instance_id": p.segment.instance_id,
                "event_id": p.instance.original_event_id,
                "title": p.instance.title,
                "category": p.instance.event.category.value,
                "label": category_style(p.instance.event.category)["label"],
                "start": p.segment.start.isoformat(),
                "end": p.segment.end.isoformat(),
                "is_start": p.segment.is_start,
                "is_end": p.segment.is_end,
                "column": p.slot.column,
                "width": p.slot.width,
                "total_columns": p.slot.total_columns,
            }
            for p in day.events
        ],
    }


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the crm_calendar CLI."""
    args = _create_parser().parse_args(argv)

    base = dataclasses.asdict(load_config(args.config))
    if args.tz:
        base["display_timezone"] = args.tz
    if args.relayout:
        base["relayout_after_filter"] = True
    settings = ConfigManager().load_settings(base)

    _init_logging("DEBUG" if args.debug else settings.log_level)
    configure_lite_logging(debug_mode=args.debug or settings.log_level == "DEBUG")

    try:
        window_start = date_parser.isoparse(args.start)
        window_end = date_parser.isoparse(args.end)
        event_filter = EventFilter(
            categories=frozenset(args.category),
            search=args.search,
            current_user_id=args.user,
            mine_only=args.mine,
            assigned_to_me=args.assigned_to_me,
        )
        events = _load_events(_load_rows(Path(args.events_file)))
        days = build_calendar_view(events, window_start, window_end, event_filter, settings)
    except WindowTooLargeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (CalendarEngineError, OSError, ValueError) as e:
        logger.error("Failed to build calendar view: %s", e)
        sys.exit(1)

    print(json.dumps([_day_to_dict(day) for day in days], indent=2))
    sys.exit(0)


if __name__ == "__main__":
    main()
