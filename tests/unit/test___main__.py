"""Tests for the crm_calendar command-line entry."""

import json

import pytest

from crm_calendar.__main__ import _create_parser, main

pytestmark = pytest.mark.unit

ROWS = [
    {
        "id": "A",
        "title": "Planning",
        "start_time": "2025-01-06T09:00:00",
        "end_time": "2025-01-06T10:00:00",
        "category": "meeting",
    },
    {
        "id": "B",
        "title": "Write report",
        "start_time": "2025-01-06T09:30:00",
        "end_time": "2025-01-06T10:30:00",
        "category": "task",
    },
    {
        "id": "standup",
        "title": "Standup",
        "start_time": "2025-01-07T08:00:00",
        "end_time": "2025-01-07T08:15:00",
        "category": "meeting",
        "recurrence": {"frequency": "daily", "interval": 1, "exception_dates": ["2025-01-08"]},
    },
    {"id": "broken", "title": "No times"},
]


@pytest.fixture
def events_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "events.json"
    path.write_text(json.dumps(ROWS), encoding="utf-8")
    return path


def run_cli(argv, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code, capsys.readouterr()


class TestParser:
    def test_requires_window(self):
        with pytest.raises(SystemExit):
            _create_parser().parse_args(["events.json"])

    def test_repeatable_category(self):
        args = _create_parser().parse_args(
            ["e.json", "--start", "2025-01-06", "--end", "2025-01-07", "--category", "meeting", "--category", "task"]
        )
        assert args.category == ["meeting", "task"]


class TestMain:
    def test_prints_day_layouts(self, events_file, capsys):
        code, captured = run_cli([str(events_file), "--start", "2025-01-06", "--end", "2025-01-10"], capsys)

        assert code == 0
        days = json.loads(captured.out)
        assert [d["day"] for d in days] == ["2025-01-06", "2025-01-07", "2025-01-09"]
        first = {e["instance_id"]: e for e in days[0]["events"]}
        assert (first["A"]["column"], first["B"]["column"]) == (0, 1)
        assert first["A"]["total_columns"] == 2
        assert first["B"]["label"] == "Task"
        assert days[1]["events"][0]["instance_id"] == "standup_20250107"

    def test_category_and_search_filters(self, events_file, capsys):
        code, captured = run_cli(
            [str(events_file), "--start", "2025-01-06", "--end", "2025-01-10", "--category", "meeting", "--search", "plan"],
            capsys,
        )

        assert code == 0
        days = json.loads(captured.out)
        assert [[e["instance_id"] for e in d["events"]] for d in days] == [["A"]]

    def test_category_is_case_insensitive(self, events_file, capsys):
        code, captured = run_cli(
            [str(events_file), "--start", "2025-01-06", "--end", "2025-01-07", "--category", "Task"], capsys
        )

        assert code == 0
        days = json.loads(captured.out)
        assert [[e["instance_id"] for e in d["events"]] for d in days] == [["B"]]

    def test_window_too_large_exits_2(self, events_file, capsys):
        code, captured = run_cli([str(events_file), "--start", "2020-01-01", "--end", "2025-01-01"], capsys)

        assert code == 2
        assert "exceeds the maximum" in captured.err

    def test_missing_file_exits_1(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        code, _ = run_cli([str(tmp_path / "nope.json"), "--start", "2025-01-06", "--end", "2025-01-07"], capsys)
        assert code == 1
