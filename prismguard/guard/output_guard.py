# -*- coding: utf-8 -*-
"""Output guard: fact echo + identity/persona checks with a retry budget.

One guard instance belongs to one conversation. Its only state is the retry
counter, so two conversations (or two tests) must never share an instance.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional

from ..bus import EvaluationBus
from ..config import GuardCfg
from ..contracts import GuardAction, GuardIssue, GuardIssueType, GuardResult
from ..events import create_guard_event
from .fact_echo import check_fact_echo
from .output import coerce_output
from .persona import check_identity_leak, check_persona_drift

logger = logging.getLogger(__name__)

BLOCKING_TYPES = frozenset(
    {
        GuardIssueType.FACT_MUTATION,
        GuardIssueType.IDENTITY_LEAK,
        GuardIssueType.IDENTITY_CONTRADICTION,
        GuardIssueType.PERSONA_DRIFT,
    }
)


class OutputGuard:
    def __init__(
        self,
        bus: Optional[EvaluationBus] = None,
        config: Optional[GuardCfg] = None,
        *,
        strict: bool = False,
    ) -> None:
        self.bus = bus
        self.config = config or GuardCfg()
        self.strict = strict
        self._retry_count = 0

    @property
    def retry_count(self) -> int:
        return self._retry_count

    def reset(self) -> None:
        """Start a new turn."""
        self._retry_count = 0

    def retry_temperature(self, base_temperature: Optional[float] = None) -> float:
        base = self.config.base_temperature if base_temperature is None else float(base_temperature)
        decayed = base - self._retry_count * self.config.temperature_decay
        return max(self.config.min_temperature, round(decayed, 6))

    def check(
        self,
        output: Any,
        facts: Mapping[str, Any],
        persona_name: Optional[str] = None,
        *,
        strict: Optional[bool] = None,
    ) -> GuardResult:
        strict_mode = self.strict if strict is None else bool(strict)
        generated = coerce_output(output)
        speech = generated.speech_content
        snapshot = dict(facts)

        fact_result = check_fact_echo(generated.fact_echo, snapshot, strict_mode, self.config)
        issues: List[GuardIssue] = list(fact_result.issues)
        leak = check_identity_leak(speech, persona_name)
        if leak is not None:
            issues.append(leak)
        issues.extend(check_persona_drift(speech, persona_name))

        blocking = any(issue.type in BLOCKING_TYPES for issue in issues)
        if fact_result.action is GuardAction.RETRY:
            blocking = True

        action = GuardAction.PASS
        corrected: Optional[str] = None
        temperature: Optional[float] = None
        if not blocking:
            self._retry_count = 0
        elif self._retry_count + 1 >= self.config.max_retries:
            critical = any(issue.severity >= self.config.critical_severity for issue in issues)
            action = GuardAction.HARD_FAIL if critical else GuardAction.SOFT_FAIL
            corrected = self.config.soft_fail_response
        else:
            action = GuardAction.RETRY
            self._retry_count += 1
            temperature = self.retry_temperature()

        if self.bus is not None:
            self.bus.emit(
                create_guard_event(
                    action,
                    issues,
                    {"output": speech[:200], "hardFacts": snapshot},
                )
            )
        self._log_result(action, issues)
        return GuardResult(
            action=action,
            issues=tuple(issues),
            retry_count=self._retry_count,
            corrected_response=corrected,
            retry_temperature=temperature,
            missing_facts=tuple(fact_result.missing_facts),
            mutated_facts=tuple(fact_result.mutated_facts),
        )

    def _log_result(self, action: GuardAction, issues: Iterable[GuardIssue]) -> None:
        if action is GuardAction.PASS:
            logger.debug("guard PASS")
            return
        summary = ", ".join(
            f"{issue.type.value}({issue.field or issue.actual})" for issue in issues
        )
        if action is GuardAction.RETRY:
            logger.info(
                "guard RETRY %d/%d: %s",
                self._retry_count,
                self.config.max_retries - 1,
                summary,
            )
        else:
            logger.warning("guard %s: %s", action.value, summary)


def _describe_issue(issue: GuardIssue) -> str:
    if issue.type is GuardIssueType.FACT_MUTATION:
        return f'- You changed the fact "{issue.field}" from "{issue.expected}" to "{issue.actual}"'
    if issue.type is GuardIssueType.FACT_APPROXIMATION:
        return f'- You did not restate the fact "{issue.field}" (exact value: "{issue.expected}")'
    if issue.type is GuardIssueType.IDENTITY_LEAK:
        return f'- You used the phrase "{issue.actual}", which breaks your identity'
    if issue.type is GuardIssueType.IDENTITY_CONTRADICTION:
        return f'- CRITICAL: you claimed to be "{issue.actual}" but your name is "{issue.expected}"'
    if issue.expected == "no-assistant-speak":
        return f'- You used generic assistant phrasing: "{issue.actual}"'
    return f'- You introduced yourself as "{issue.actual}" instead of "{issue.expected}"'


def build_retry_prompt(
    original_prompt: str,
    issues: Iterable[GuardIssue],
    facts: Mapping[str, Any],
    persona_name: Optional[str] = None,
) -> str:
    """Append a correction block listing the issues and the facts to keep."""

    fact_list = ", ".join(f"{key}: {value}" for key, value in facts.items() if value is not None)
    problems = "\n".join(_describe_issue(issue) for issue in issues) or "- (none reported)"
    name = persona_name or facts.get("agentName") or "yourself"
    return (
        f"{original_prompt}\n\n"
        "CORRECTION REQUIRED\n"
        "Your previous answer had problems:\n"
        f"{problems}\n\n"
        f"HARD FACTS (echo them exactly in fact_echo): {fact_list}\n\n"
        "RULES:\n"
        "1. Every number in HARD FACTS must appear literally.\n"
        "2. You may comment next to a number, never replace it.\n"
        '3. Do not use phrases like "as an AI" or "I am a language model".\n'
        f"4. You are {name}, nobody else.\n\n"
        "Answer again, keeping every fact:"
    )


__all__ = ["OutputGuard", "build_retry_prompt", "BLOCKING_TYPES"]
