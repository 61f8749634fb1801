from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from prismguard.contracts import (
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
from prismguard.events import (
    confession_to_evaluation,
    create_evaluation_event,
    create_guard_event,
    parse_error_event,
    user_feedback_event,
)


def test_create_event_clamps_and_dedupes() -> None:
    event = create_evaluation_event(
        "GUARD",
        "PRISM",
        1.7,
        "negative",
        ["fact_mutation", EvaluationTag.FACT_MUTATION, "retry_triggered"],
        -0.2,
        timestamp=1_000,
    )

    assert event.severity == 1.0
    assert event.confidence == 0.0
    assert event.tags == (EvaluationTag.FACT_MUTATION, EvaluationTag.RETRY_TRIGGERED)
    assert event.timestamp == 1_000
    assert event.id.startswith("eval-1000-")


def test_event_ids_are_unique() -> None:
    first = create_evaluation_event("USER", "USER", 0.5, "positive", [], 1.0, timestamp=5)
    second = create_evaluation_event("USER", "USER", 0.5, "positive", [], 1.0, timestamp=5)
    assert first.id != second.id


def test_event_is_immutable() -> None:
    event = user_feedback_event(True, timestamp=1)
    with pytest.raises(FrozenInstanceError):
        event.severity = 0.1  # type: ignore[misc]


def test_unknown_stage_raises() -> None:
    with pytest.raises(ValueError):
        create_evaluation_event("GUARD", "NOWHERE", 0.5, "negative", [], 1.0)


def test_guard_event_for_retry_and_pass() -> None:
    issue = GuardIssue(type=GuardIssueType.FACT_MUTATION, field="energy", expected=23, actual="50", severity=0.8)
    retry = create_guard_event(GuardAction.RETRY, [issue], {"output": "x"}, timestamp=10)
    passed = create_guard_event(GuardAction.PASS, [], timestamp=11)

    assert retry.source is EvaluationSource.GUARD
    assert retry.stage is EvaluationStage.PRISM
    assert retry.valence is Valence.NEGATIVE
    assert retry.confidence == 1.0
    assert retry.severity == pytest.approx(0.8)
    assert retry.tags == (EvaluationTag.FACT_MUTATION, EvaluationTag.RETRY_TRIGGERED)
    assert passed.valence is Valence.POSITIVE
    assert passed.tags == ()
    assert passed.severity == 0.0


def test_guard_event_soft_fail_maps_contradiction_to_identity_leak() -> None:
    issue = GuardIssue(type=GuardIssueType.IDENTITY_CONTRADICTION, expected="Aria", actual="Assistant", severity=0.9)
    event = create_guard_event(GuardAction.HARD_FAIL, [issue])
    assert EvaluationTag.IDENTITY_LEAK in event.tags
    assert EvaluationTag.SOFT_FAIL in event.tags
    assert event.severity == pytest.approx(0.9)


def test_confession_conversion() -> None:
    event = confession_to_evaluation(
        {
            "severity": 7,
            "risk_flags": ["possible_hallucination"],
            "failure_attribution": "LLM_MODEL",
        },
        timestamp=3,
    )
    assert event.source is EvaluationSource.CONFESSION
    assert event.severity == pytest.approx(0.7)
    assert event.valence is Valence.NEGATIVE
    assert event.confidence == pytest.approx(0.8)
    assert event.tags == (EvaluationTag.HALLUCINATION,)
    assert event.attribution is FailureSource.LLM_MODEL

    calm = confession_to_evaluation({"severity": 2})
    assert calm.valence is Valence.POSITIVE


def test_parse_error_event_truncates_context() -> None:
    event = parse_error_event("x" * 500)
    assert event.source is EvaluationSource.PARSER
    assert event.tags == (EvaluationTag.PARSE_ERROR,)
    assert len(event.context["output"]) == 200


def test_event_dict_round_trip_keeps_fields() -> None:
    event = create_evaluation_event(
        "PARSER",
        "TOOL",
        0.4,
        "negative",
        ["parse_error"],
        0.9,
        attribution="ENVIRONMENT",
        context={"tool": "search"},
        timestamp=42,
    )
    payload = event.to_dict()
    assert payload["stage"] == "TOOL"
    assert payload["tags"] == ["parse_error"]
    assert EvaluationEvent.from_dict(payload) == event
