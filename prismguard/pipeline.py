# -*- coding: utf-8 -*-
"""Guard pipeline: one check, or check-then-retry through the caller's model.

The only suspension point is the caller-supplied inference function. Nothing
here raises on bad model output or transport errors; the worst case is the
canned soft-fail response.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .bus import EvaluationBus
from .config import GuardCfg, PipelineCfg
from .contracts import (
    ArchitectureIssueType,
    GuardAction,
    GuardIssueType,
    GuardResult,
    PrismCheckResult,
)
from .guard.output import GeneratedOutput, coerce_output
from .guard.output_guard import OutputGuard, build_retry_prompt
from .metrics import ArchitectureIssueLog

logger = logging.getLogger(__name__)

InferenceResult = Union[str, Mapping[str, Any], GeneratedOutput]
InferenceFunction = Callable[
    [float, Optional[str]],
    Union[InferenceResult, Awaitable[InferenceResult]],
]


class PrismPipeline:
    """Wraps guard checks for one conversation."""

    def __init__(
        self,
        bus: Optional[EvaluationBus] = None,
        issues: Optional[ArchitectureIssueLog] = None,
        config: Optional[PipelineCfg] = None,
        guard_config: Optional[GuardCfg] = None,
        *,
        guard: Optional[OutputGuard] = None,
    ) -> None:
        self.bus = bus
        self.issues = issues
        self.config = config or PipelineCfg()
        self.guard = guard or OutputGuard(bus, guard_config)
        self._consecutive_failures = 0

    # ------------------------------------------------------------------
    # feature flags
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled)

    def enable(self) -> None:
        self.config.enabled = True
        logger.info("guard pipeline enabled")

    def disable(self) -> None:
        self.config.enabled = False
        logger.info("guard pipeline disabled")

    def set_strict_mode(self, strict: bool) -> None:
        self.config.strict_mode = bool(strict)

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def _strict(self, strict: Optional[bool]) -> bool:
        return self.config.strict_mode if strict is None else bool(strict)

    # ------------------------------------------------------------------
    # single shot
    # ------------------------------------------------------------------

    def check_response(
        self,
        output: InferenceResult,
        *,
        facts: Mapping[str, Any],
        persona_name: Optional[str] = None,
        strict: Optional[bool] = None,
    ) -> PrismCheckResult:
        generated = coerce_output(output)
        if not self.enabled:
            return _bypass(generated)

        self.guard.reset()
        result = self.guard.check(generated, facts, persona_name, strict=self._strict(strict))
        self._log_check(result, facts)
        self._track_outcome(result.action, facts)

        if result.action.is_failure:
            speech = result.corrected_response or self.guard.config.soft_fail_response
            return PrismCheckResult(
                response=speech,
                guard_result=result,
                was_modified=True,
                retries_used=result.retry_count,
                output=generated.with_speech(speech),
            )
        return PrismCheckResult(
            response=generated.speech_content,
            guard_result=result,
            was_modified=False,
            retries_used=result.retry_count,
            output=generated,
        )

    def guard_output(
        self,
        output: InferenceResult,
        *,
        facts: Mapping[str, Any],
        persona_name: Optional[str] = None,
        strict: Optional[bool] = None,
    ) -> PrismCheckResult:
        """Structured variant: only ``speech_content`` is ever replaced."""

        checked = self.check_response(output, facts=facts, persona_name=persona_name, strict=strict)
        issues = checked.guard_result.issues
        checked.extras["mutatedFacts"] = [
            i.field for i in issues if i.type is GuardIssueType.FACT_MUTATION and i.field
        ]
        checked.extras["missingFacts"] = [
            i.field for i in issues if i.type is GuardIssueType.FACT_APPROXIMATION and i.field
        ]
        return checked

    # ------------------------------------------------------------------
    # retry driving
    # ------------------------------------------------------------------

    async def check_response_with_retry(
        self,
        initial: InferenceResult,
        *,
        facts: Mapping[str, Any],
        inference_function: InferenceFunction,
        persona_name: Optional[str] = None,
        original_prompt: Optional[str] = None,
        strict: Optional[bool] = None,
    ) -> PrismCheckResult:
        current = coerce_output(initial)
        if not self.enabled:
            return _bypass(current)
        if not self.config.retry_enabled:
            return self.check_response(current, facts=facts, persona_name=persona_name, strict=strict)

        strict_mode = self._strict(strict)
        self.guard.reset()
        retries = 0
        soft_fail = self.guard.config.soft_fail_response

        for _ in range(max(1, self.guard.config.max_retries)):
            result = self.guard.check(current, facts, persona_name, strict=strict_mode)
            self._log_check(result, facts)

            if result.action is GuardAction.PASS:
                self._track_outcome(result.action, facts)
                return PrismCheckResult(
                    response=current.speech_content,
                    guard_result=result,
                    was_modified=retries > 0,
                    retries_used=retries,
                    output=current,
                )
            if result.action.is_failure:
                self._track_outcome(result.action, facts)
                speech = result.corrected_response or soft_fail
                return PrismCheckResult(
                    response=speech,
                    guard_result=result,
                    was_modified=True,
                    retries_used=retries,
                    output=current.with_speech(speech),
                )

            retries += 1
            temperature = result.retry_temperature or self.guard.retry_temperature()
            retry_prompt = build_retry_prompt(original_prompt or "", result.issues, facts, persona_name)
            logger.info("retry %d with temperature=%.2f", retries, temperature)
            try:
                produced = inference_function(temperature, retry_prompt)
                if inspect.isawaitable(produced):
                    produced = await produced
            except Exception:
                logger.exception("retry inference failed, returning soft fail")
                failed = GuardResult(
                    action=GuardAction.SOFT_FAIL,
                    issues=result.issues,
                    retry_count=retries,
                    corrected_response=soft_fail,
                    missing_facts=result.missing_facts,
                    mutated_facts=result.mutated_facts,
                )
                self._track_outcome(GuardAction.SOFT_FAIL, facts)
                return PrismCheckResult(
                    response=soft_fail,
                    guard_result=failed,
                    was_modified=True,
                    retries_used=retries,
                    output=current.with_speech(soft_fail),
                )
            current = coerce_output(produced)

        # unreachable while the guard enforces its own budget
        failed = GuardResult(action=GuardAction.SOFT_FAIL, retry_count=retries, corrected_response=soft_fail)
        self._track_outcome(GuardAction.SOFT_FAIL, facts)
        return PrismCheckResult(
            response=soft_fail,
            guard_result=failed,
            was_modified=True,
            retries_used=retries,
            output=current.with_speech(soft_fail),
        )

    # ------------------------------------------------------------------

    def _track_outcome(self, action: GuardAction, facts: Mapping[str, Any]) -> None:
        if action is GuardAction.PASS:
            self._consecutive_failures = 0
            return
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.config.consecutive_failure_threshold:
            if self.issues is not None:
                self.issues.log(
                    ArchitectureIssueType.REPEATED_FAILURE,
                    f"{self._consecutive_failures} consecutive guard failures - possible prompt or model issue",
                    0.8,
                    {"hardFacts": dict(facts), "consecutiveFailures": self._consecutive_failures},
                )
            self._consecutive_failures = 0

    def _log_check(self, result: GuardResult, facts: Mapping[str, Any]) -> None:
        if not self.config.log_all_checks:
            return
        fact_count = sum(1 for value in facts.values() if value is not None)
        if result.passed:
            logger.info("PASS - %d facts preserved", fact_count)
        else:
            logger.info(
                "%s - %d issue(s): %s",
                result.action.value,
                len(result.issues),
                ", ".join(issue.type.value for issue in result.issues),
            )


def _bypass(generated: GeneratedOutput) -> PrismCheckResult:
    return PrismCheckResult(
        response=generated.speech_content,
        guard_result=GuardResult(action=GuardAction.PASS),
        was_modified=False,
        retries_used=0,
        output=generated,
    )


__all__ = ["PrismPipeline", "InferenceFunction", "InferenceResult"]
