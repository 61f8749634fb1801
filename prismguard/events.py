"""Constructors for evaluation events."""

from __future__ import annotations

import itertools
import time
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from .contracts import (
    EvaluationEvent,
    EvaluationSource,
    EvaluationStage,
    EvaluationTag,
    FailureSource,
    GuardAction,
    GuardIssue,
    GuardIssueType,
    Valence,
)

_EVENT_IDS = itertools.count(1)

# guard issue type -> (tag, severity floor)
_ISSUE_TAGS: dict[GuardIssueType, tuple[EvaluationTag, float]] = {
    GuardIssueType.FACT_MUTATION: (EvaluationTag.FACT_MUTATION, 0.8),
    GuardIssueType.FACT_APPROXIMATION: (EvaluationTag.FACT_APPROXIMATION, 0.5),
    GuardIssueType.PERSONA_DRIFT: (EvaluationTag.PERSONA_DRIFT, 0.6),
    GuardIssueType.IDENTITY_LEAK: (EvaluationTag.IDENTITY_LEAK, 0.7),
    GuardIssueType.IDENTITY_CONTRADICTION: (EvaluationTag.IDENTITY_LEAK, 0.9),
}


def now_ms() -> int:
    return int(time.time() * 1000)


def _clamp01(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def _unique_tags(tags: Iterable[Union[str, EvaluationTag]]) -> tuple[EvaluationTag, ...]:
    seen: list[EvaluationTag] = []
    for tag in tags:
        item = EvaluationTag(tag)
        if item not in seen:
            seen.append(item)
    return tuple(seen)


def create_evaluation_event(
    source: Union[str, EvaluationSource],
    stage: Union[str, EvaluationStage],
    severity: float,
    valence: Union[str, Valence],
    tags: Sequence[Union[str, EvaluationTag]],
    confidence: float,
    *,
    attribution: Union[str, FailureSource, None] = None,
    context: Optional[Mapping[str, Any]] = None,
    timestamp: Optional[int] = None,
) -> EvaluationEvent:
    """Create an immutable event; severity and confidence are clamped to [0, 1]."""

    ts = now_ms() if timestamp is None else int(timestamp)
    return EvaluationEvent(
        id=f"eval-{ts}-{next(_EVENT_IDS)}",
        timestamp=ts,
        source=EvaluationSource(source),
        stage=EvaluationStage(stage),
        severity=_clamp01(float(severity)),
        valence=Valence(valence),
        tags=_unique_tags(tags),
        confidence=_clamp01(float(confidence)),
        attribution=FailureSource(attribution) if attribution else None,
        context=dict(context) if context is not None else None,
    )


def create_guard_event(
    action: Union[str, GuardAction],
    issues: Sequence[GuardIssue],
    context: Optional[Mapping[str, Any]] = None,
    *,
    timestamp: Optional[int] = None,
) -> EvaluationEvent:
    """Map one guard verdict to a GUARD/PRISM event with full confidence."""

    verdict = GuardAction(action)
    tags: list[EvaluationTag] = []
    severity = 0.0
    for issue in issues:
        tag, floor = _ISSUE_TAGS[issue.type]
        tags.append(tag)
        severity = max(severity, floor)
    if verdict is GuardAction.RETRY:
        tags.append(EvaluationTag.RETRY_TRIGGERED)
    elif verdict.is_failure:
        tags.append(EvaluationTag.SOFT_FAIL)
    valence = Valence.POSITIVE if verdict is GuardAction.PASS else Valence.NEGATIVE
    return create_evaluation_event(
        EvaluationSource.GUARD,
        EvaluationStage.PRISM,
        severity,
        valence,
        tags,
        1.0,
        context=context,
        timestamp=timestamp,
    )


def confession_to_evaluation(
    confession: Mapping[str, Any],
    *,
    timestamp: Optional[int] = None,
) -> EvaluationEvent:
    """Convert a self-assessment report (severity on a 0-10 scale) into an event."""

    severity = float(confession.get("severity", 0.0))
    flags = confession.get("risk_flags") or []
    tags: list[EvaluationTag] = []
    if "possible_hallucination" in flags:
        tags.append(EvaluationTag.HALLUCINATION)
    if "ignored_system_instruction" in flags:
        tags.append(EvaluationTag.OFFTOPIC)
    pain = confession.get("pain")
    return create_evaluation_event(
        EvaluationSource.CONFESSION,
        EvaluationStage.PRISM,
        float(pain) if pain else severity / 10.0,
        Valence.NEGATIVE if severity > 3 else Valence.POSITIVE,
        tags,
        0.8,
        attribution=confession.get("failure_attribution"),
        timestamp=timestamp,
    )


def user_feedback_event(
    positive: bool,
    *,
    severity: float = 0.5,
    tags: Sequence[Union[str, EvaluationTag]] = (),
    timestamp: Optional[int] = None,
) -> EvaluationEvent:
    return create_evaluation_event(
        EvaluationSource.USER,
        EvaluationStage.USER,
        severity,
        Valence.POSITIVE if positive else Valence.NEGATIVE,
        tags,
        1.0,
        timestamp=timestamp,
    )


def parse_error_event(
    detail: str,
    *,
    severity: float = 0.4,
    timestamp: Optional[int] = None,
) -> EvaluationEvent:
    return create_evaluation_event(
        EvaluationSource.PARSER,
        EvaluationStage.PRISM,
        severity,
        Valence.NEGATIVE,
        [EvaluationTag.PARSE_ERROR],
        0.9,
        attribution=FailureSource.LLM_MODEL,
        context={"output": detail[:200]},
        timestamp=timestamp,
    )


__all__ = [
    "create_evaluation_event",
    "create_guard_event",
    "confession_to_evaluation",
    "user_feedback_event",
    "parse_error_event",
    "now_ms",
]
