from __future__ import annotations

import asyncio
from typing import Optional

from prismguard.bus import EvaluationBus
from prismguard.config import GuardCfg, PipelineCfg
from prismguard.contracts import ArchitectureIssueType, GuardAction
from prismguard.metrics import ArchitectureIssueLog
from prismguard.pipeline import PrismPipeline

FACTS = {"energy": 23, "time": "14:30"}
GOOD = {"speech_content": "Energy 23 at 14:30.", "fact_echo": {"energy": 23, "time": "14:30"}}
BAD = {"speech_content": "Energy 50!", "fact_echo": {"energy": 50, "time": "14:30"}}


def _pipeline(**cfg) -> tuple[PrismPipeline, EvaluationBus, ArchitectureIssueLog]:
    bus = EvaluationBus()
    issues = ArchitectureIssueLog()
    return PrismPipeline(bus, issues, PipelineCfg(**cfg), GuardCfg()), bus, issues


def test_check_response_passes_clean_output() -> None:
    pipeline, _, _ = _pipeline()
    result = pipeline.check_response(GOOD, facts=FACTS)

    assert result.guard_passed
    assert result.response == "Energy 23 at 14:30."
    assert not result.was_modified


def test_check_response_single_shot_retry_keeps_text() -> None:
    pipeline, _, _ = _pipeline()
    result = pipeline.check_response(BAD, facts=FACTS)

    assert result.guard_result.action is GuardAction.RETRY
    assert result.response == "Energy 50!"
    assert not result.was_modified


def test_retry_loop_recovers_on_second_attempt() -> None:
    pipeline, bus, _ = _pipeline()
    calls: list[tuple[float, Optional[str]]] = []

    def infer(temperature: float, prompt: Optional[str]) -> dict:
        calls.append((temperature, prompt))
        return GOOD

    result = asyncio.run(
        pipeline.check_response_with_retry(
            BAD,
            facts=FACTS,
            inference_function=infer,
            original_prompt="How are you?",
        )
    )

    assert result.guard_passed
    assert result.retries_used == 1
    assert result.was_modified
    assert result.response == "Energy 23 at 14:30."
    assert calls[0][0] == 0.6
    assert "CORRECTION REQUIRED" in (calls[0][1] or "")
    assert len(bus.get_history()) == 2


def test_retry_loop_soft_fails_after_budget() -> None:
    pipeline, _, _ = _pipeline()
    calls: list[float] = []

    async def infer(temperature: float, prompt: Optional[str]) -> dict:
        calls.append(temperature)
        return BAD

    result = asyncio.run(pipeline.check_response_with_retry(BAD, facts=FACTS, inference_function=infer))

    assert result.guard_result.action is GuardAction.SOFT_FAIL
    assert result.response == GuardCfg().soft_fail_response
    assert result.retries_used == 2
    assert len(calls) == 2
    assert calls[0] > calls[1]


def test_inference_exception_becomes_soft_fail() -> None:
    pipeline, _, _ = _pipeline()

    def infer(temperature: float, prompt: Optional[str]) -> str:
        raise ConnectionError("model offline")

    result = asyncio.run(pipeline.check_response_with_retry(BAD, facts=FACTS, inference_function=infer))

    assert result.guard_result.action is GuardAction.SOFT_FAIL
    assert result.response == GuardCfg().soft_fail_response
    assert result.retries_used == 1


def test_kill_switch_bypasses_everything() -> None:
    pipeline, bus, _ = _pipeline()
    pipeline.disable()

    def infer(temperature: float, prompt: Optional[str]) -> str:
        raise AssertionError("must not be called")

    result = asyncio.run(pipeline.check_response_with_retry(BAD, facts=FACTS, inference_function=infer))

    assert result.guard_passed
    assert result.response == "Energy 50!"
    assert bus.get_history() == []
    assert bus.get_metrics()["total_events"] == 0

    pipeline.enable()
    assert pipeline.enabled


def test_retry_disabled_falls_back_to_single_check() -> None:
    pipeline, _, _ = _pipeline(retry_enabled=False)

    def infer(temperature: float, prompt: Optional[str]) -> str:
        raise AssertionError("must not be called")

    result = asyncio.run(pipeline.check_response_with_retry(BAD, facts=FACTS, inference_function=infer))
    assert result.guard_result.action is GuardAction.RETRY


def test_guard_output_replaces_only_speech() -> None:
    pipeline, _, _ = _pipeline()
    pipeline.guard.config.max_retries = 1
    output = dict(BAD, internal_thought="energy is 23 really", tool_calls=["search"])

    result = pipeline.guard_output(output, facts=FACTS)

    assert result.guard_result.action is GuardAction.SOFT_FAIL
    assert result.output.speech_content == GuardCfg().soft_fail_response
    assert result.output.internal_thought == "energy is 23 really"
    assert result.output.extras == {"tool_calls": ["search"]}
    assert result.extras["mutatedFacts"] == ["energy"]


def test_consecutive_failures_log_one_architecture_issue() -> None:
    pipeline, _, issues = _pipeline(consecutive_failure_threshold=5)
    pipeline.guard.config.max_retries = 1

    for _ in range(5):
        pipeline.check_response(BAD, facts=FACTS)

    logged = issues.get_all()
    assert len(logged) == 1
    assert logged[0].type is ArchitectureIssueType.REPEATED_FAILURE
    assert pipeline.consecutive_failures == 0


def test_pass_resets_consecutive_failures() -> None:
    pipeline, _, issues = _pipeline(consecutive_failure_threshold=3)
    pipeline.guard.config.max_retries = 1

    pipeline.check_response(BAD, facts=FACTS)
    pipeline.check_response(BAD, facts=FACTS)
    pipeline.check_response(GOOD, facts=FACTS)
    pipeline.check_response(BAD, facts=FACTS)

    assert pipeline.consecutive_failures == 1
    assert len(issues) == 0


def test_plain_string_output_is_accepted() -> None:
    pipeline, _, _ = _pipeline()
    result = pipeline.check_response("Hello there, energy is fine.", facts=FACTS, persona_name="Aria")
    assert result.guard_passed
