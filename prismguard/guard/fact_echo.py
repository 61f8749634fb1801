# -*- coding: utf-8 -*-
"""Compare the generator's fact echo against the authoritative snapshot.

No text matching here: the generator restates the facts it used in a
structured ``fact_echo`` block and the values are compared one by one.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from ..config import GuardCfg
from ..contracts import GuardAction, GuardIssue, GuardIssueType
from ..facts import has_facts

logger = logging.getLogger(__name__)

MUTATION_SEVERITY = 0.8
MISSING_SEVERITY = 0.3


@dataclass(frozen=True)
class FactEchoResult:
    action: GuardAction
    issues: List[GuardIssue] = field(default_factory=list)
    missing_facts: List[str] = field(default_factory=list)
    mutated_facts: List[str] = field(default_factory=list)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def values_match(expected: Any, actual: Any, tolerance: float = 0.01) -> bool:
    """Numbers (or numeric strings) within relative ``tolerance``; strings exactly.

    Booleans only ever match booleans, so ``True`` is not an echo of ``1``.
    """

    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected == actual
    if isinstance(expected, (int, float)) or isinstance(actual, (int, float)):
        left = _as_number(expected)
        right = _as_number(actual)
        if left is not None and right is not None:
            return abs(left - right) <= tolerance * max(1.0, abs(left))
    if isinstance(expected, str) and isinstance(actual, str):
        return expected.strip() == actual.strip()
    return expected == actual


def check_fact_echo(
    fact_echo: Optional[Mapping[str, Any]],
    facts: Mapping[str, Any],
    strict: bool = False,
    config: Optional[GuardCfg] = None,
) -> FactEchoResult:
    cfg = config or GuardCfg()
    present = {key: value for key, value in facts.items() if value is not None}

    if fact_echo is None:
        if strict and has_facts(facts):
            missing = list(present)
            issues = [
                GuardIssue(
                    type=GuardIssueType.FACT_APPROXIMATION,
                    field=key,
                    expected=present[key],
                    actual="missing",
                    severity=MISSING_SEVERITY,
                )
                for key in missing
            ]
            return FactEchoResult(GuardAction.RETRY, issues, missing, [])
        return FactEchoResult(GuardAction.PASS)

    issues: List[GuardIssue] = []
    missing: List[str] = []
    mutated: List[str] = []
    for key, expected in present.items():
        echoed = fact_echo.get(key)
        if echoed is None:
            if strict or key in cfg.required_facts:
                missing.append(key)
                issues.append(
                    GuardIssue(
                        type=GuardIssueType.FACT_APPROXIMATION,
                        field=key,
                        expected=expected,
                        actual="missing",
                        severity=MISSING_SEVERITY,
                    )
                )
            continue
        if not values_match(expected, echoed, cfg.numeric_tolerance):
            mutated.append(key)
            issues.append(
                GuardIssue(
                    type=GuardIssueType.FACT_MUTATION,
                    field=key,
                    expected=expected,
                    actual=str(echoed),
                    severity=MUTATION_SEVERITY,
                )
            )

    action = GuardAction.PASS
    if mutated or (missing and strict):
        action = GuardAction.RETRY
    if action is not GuardAction.PASS:
        logger.info("fact echo %s mutated=%s missing=%s", action.value, mutated, missing)
    return FactEchoResult(action, issues, missing, mutated)


__all__ = ["FactEchoResult", "check_fact_echo", "values_match"]
