from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping

from .bus import EvaluationBus
from .contracts import ArchitectureIssue, EvaluationEvent

logger = logging.getLogger(__name__)


def _default_serializer(obj: Any) -> Any:
    if hasattr(obj, "to_dict") and callable(getattr(obj, "to_dict")):
        return obj.to_dict()
    if hasattr(obj, "value"):
        return obj.value
    return str(obj)


def append_jsonl(path: Path | str, record: Mapping[str, Any]) -> None:
    """Append ``record`` to ``path`` as one JSON line."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("a", encoding="utf-8") as handle:
        json.dump(dict(record), handle, ensure_ascii=False, default=_default_serializer)
        handle.write("\n")


def append_evaluation_event(path: Path | str, event: EvaluationEvent) -> None:
    append_jsonl(path, event.to_dict())


def append_architecture_issue(path: Path | str, issue: ArchitectureIssue) -> None:
    append_jsonl(path, issue.to_dict())


def attach_event_sink(bus: EvaluationBus, path: Path | str) -> Callable[[], None]:
    """Mirror every emitted event into ``path``; returns the unsubscribe handle."""

    target = Path(path)

    def _write(event: EvaluationEvent) -> None:
        append_evaluation_event(target, event)

    return bus.subscribe(_write)


def issue_sink(path: Path | str) -> Callable[[ArchitectureIssue], None]:
    target = Path(path)

    def _write(issue: ArchitectureIssue) -> None:
        append_architecture_issue(target, issue)

    return _write


def iter_jsonl(path: Path | str) -> Iterator[dict[str, Any]]:
    """Yield JSON objects from ``path``; broken or non-object lines are skipped."""

    target = Path(path)
    with target.open("r", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("%s:%d is not valid JSON, skipped", target, lineno)
                continue
            if isinstance(payload, dict):
                yield payload


def read_evaluation_events(path: Path | str) -> list[EvaluationEvent]:
    events: list[EvaluationEvent] = []
    for payload in iter_jsonl(path):
        try:
            events.append(EvaluationEvent.from_dict(payload))
        except (KeyError, ValueError, TypeError):
            logger.warning("skipping malformed event record %r", payload.get("id"))
    return events


__all__ = [
    "append_jsonl",
    "append_evaluation_event",
    "append_architecture_issue",
    "attach_event_sink",
    "issue_sink",
    "iter_jsonl",
    "read_evaluation_events",
]
