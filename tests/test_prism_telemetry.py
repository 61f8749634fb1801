from __future__ import annotations

import json
from pathlib import Path

from prismguard.bus import EvaluationBus
from prismguard.events import create_evaluation_event
from prismguard.metrics import ArchitectureIssueLog
from prismguard.telemetry import attach_event_sink, issue_sink, iter_jsonl, read_evaluation_events


def test_event_sink_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "telemetry" / "events.jsonl"
    bus = EvaluationBus()
    detach = attach_event_sink(bus, path)

    first = create_evaluation_event("GUARD", "PRISM", 0.8, "negative", ["fact_mutation"], 1.0, context={"output": "x"})
    second = create_evaluation_event("USER", "USER", 0.3, "positive", [], 1.0)
    bus.emit(first)
    bus.emit(second)
    detach()
    bus.emit(create_evaluation_event("USER", "USER", 0.3, "positive", [], 1.0))

    events = read_evaluation_events(path)
    assert events == [first, second]


def test_reader_skips_broken_lines(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    good = create_evaluation_event("USER", "USER", 0.3, "positive", [], 1.0)
    path.write_text(
        "\n".join(
            [
                '{"id": "broken"',
                "[1, 2]",
                '{"id": "no-fields"}',
                "",
                json.dumps(good.to_dict()),
            ]
        ),
        encoding="utf-8",
    )

    assert len(list(iter_jsonl(path))) == 2
    assert read_evaluation_events(path) == [good]


def test_issue_sink_appends_records(tmp_path: Path) -> None:
    path = tmp_path / "issues.jsonl"
    log = ArchitectureIssueLog(sink=issue_sink(path), clock=lambda: 5)
    log.log("INTEGRATION_ERROR", "tool returned nothing", 0.4)
    log.log("SOURCE_CONFLICT", "clock drift", 0.6)

    rows = list(iter_jsonl(path))
    assert [row["type"] for row in rows] == ["INTEGRATION_ERROR", "SOURCE_CONFLICT"]
    assert rows[0]["timestamp"] == 5
