# -*- coding: utf-8 -*-
"""Trust index, daily penalty caps and the architecture-issue log."""

from __future__ import annotations

import logging
from collections import deque
from datetime import date, datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Union

from .bus import EvaluationBus
from .config import DEFAULT_DAILY_CAPS, MetricsCfg
from .contracts import (
    ALL_STAGES,
    ArchitectureIssue,
    ArchitectureIssueType,
    EvaluationStage,
    TrustIndexResult,
    as_stage,
)
from .events import now_ms

logger = logging.getLogger(__name__)

StageLike = Union[str, EvaluationStage]


def _clamp01(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def calculate_trust_index(
    bus: EvaluationBus,
    weights: Optional[Mapping[str, float]] = None,
) -> TrustIndexResult:
    """``1 - weighted failure rates``; no events at all means full trust."""

    w = dict(MetricsCfg().trust_weights)
    if weights:
        w.update(weights)
    metrics = bus.get_metrics()
    total = int(metrics["total_events"])
    if total == 0:
        return TrustIndexResult(index=1.0)
    tags = metrics["events_by_tag"]
    fact_mutation_rate = tags.get("fact_mutation", 0) / total
    soft_fail_rate = tags.get("soft_fail", 0) / total
    retry_rate = tags.get("retry_triggered", 0) / total
    identity_leak_rate = tags.get("identity_leak", 0) / total
    penalty = (
        fact_mutation_rate * w["fact_mutation"]
        + soft_fail_rate * w["soft_fail"]
        + retry_rate * w["retry"]
        + identity_leak_rate * w["identity_leak"]
    )
    return TrustIndexResult(
        index=_clamp01(1.0 - penalty),
        fact_mutation_rate=fact_mutation_rate,
        soft_fail_rate=soft_fail_rate,
        retry_rate=retry_rate,
        identity_leak_rate=identity_leak_rate,
        total_events=total,
    )


class PenaltyLedger:
    """Per-stage daily penalty totals with lazy calendar rollover (UTC)."""

    def __init__(
        self,
        caps: Optional[Mapping[str, float]] = None,
        *,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        merged = dict(DEFAULT_DAILY_CAPS)
        merged.update(caps or {})
        self.caps: Dict[EvaluationStage, float] = {
            stage: float(merged.get(stage.value, 0.0)) for stage in ALL_STAGES
        }
        self._today = today or _utc_today
        self._date = self._today().isoformat()
        self._penalties: Dict[EvaluationStage, float] = {stage: 0.0 for stage in ALL_STAGES}

    @property
    def date(self) -> str:
        self._roll_over()
        return self._date

    def reset(self) -> None:
        self._date = self._today().isoformat()
        self._penalties = {stage: 0.0 for stage in ALL_STAGES}

    def can_apply_penalty(self, stage: StageLike, amount: float) -> bool:
        self._roll_over()
        key = as_stage(stage)
        return self._penalties[key] + float(amount) <= self.caps[key]

    def record_penalty(self, stage: StageLike, amount: float) -> None:
        self._roll_over()
        key = as_stage(stage)
        self._penalties[key] += float(amount)

    def try_apply_penalty(self, stage: StageLike, amount: float) -> bool:
        """Record ``amount`` only if it fits under today's cap."""
        if not self.can_apply_penalty(stage, amount):
            return False
        self.record_penalty(stage, amount)
        return True

    def get_remaining_penalty_budget(self, stage: StageLike) -> float:
        self._roll_over()
        key = as_stage(stage)
        return self.caps[key] - self._penalties[key]

    def get_daily_penalties(self) -> Dict[str, float]:
        self._roll_over()
        return {stage.value: value for stage, value in self._penalties.items()}

    def get_remaining_budgets(self) -> Dict[str, float]:
        return {stage.value: self.get_remaining_penalty_budget(stage) for stage in ALL_STAGES}

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "penalties": self.get_daily_penalties()}

    def _roll_over(self) -> None:
        today = self._today().isoformat()
        if today != self._date:
            self._date = today
            self._penalties = {stage: 0.0 for stage in ALL_STAGES}
            logger.info("daily penalty counters reset for %s", today)


class ArchitectureIssueLog:
    """Ring buffer of advisory records for human review."""

    def __init__(
        self,
        capacity: int = 100,
        *,
        sink: Optional[Callable[[ArchitectureIssue], None]] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._issues: Deque[ArchitectureIssue] = deque(maxlen=max(1, int(capacity)))
        self._sink = sink
        self._clock = clock or now_ms

    def __len__(self) -> int:
        return len(self._issues)

    def log(
        self,
        type: Union[str, ArchitectureIssueType],
        description: str,
        severity: float,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ArchitectureIssue:
        issue = ArchitectureIssue(
            timestamp=self._clock(),
            type=ArchitectureIssueType(type),
            description=description,
            severity=float(severity),
            context=dict(context) if context is not None else None,
        )
        self._issues.append(issue)
        logger.warning(
            "architecture issue %s: %s (severity %.2f)",
            issue.type.value,
            description,
            issue.severity,
        )
        if self._sink is not None:
            try:
                self._sink(issue)
            except Exception:
                logger.exception("architecture issue sink failed")
        return issue

    def get_all(self) -> List[ArchitectureIssue]:
        return list(self._issues)

    def get_recent(self, count: int = 10) -> List[ArchitectureIssue]:
        if count <= 0:
            return []
        return list(self._issues)[-count:]

    def clear(self) -> None:
        self._issues.clear()


def check_for_repeated_failures(
    bus: EvaluationBus,
    issues: ArchitectureIssueLog,
    config: Optional[MetricsCfg] = None,
) -> List[ArchitectureIssue]:
    """Flag a stage that produces most of the negative events."""

    cfg = config or MetricsCfg()
    metrics = bus.get_metrics()
    negative_total = int(metrics["negative_events"])
    if negative_total <= cfg.dominant_stage_min_negative:
        return []
    logged: List[ArchitectureIssue] = []
    for stage, count in metrics["negative_by_stage"].items():
        share = count / negative_total
        if share > cfg.dominant_stage_share:
            logged.append(
                issues.log(
                    ArchitectureIssueType.REPEATED_FAILURE,
                    f"Stage {stage} produces {share * 100:.0f}% of negative events",
                    0.8,
                    {"stage": stage, "count": count, "negative_total": negative_total},
                )
            )
    return logged


def build_dashboard(
    bus: EvaluationBus,
    ledger: PenaltyLedger,
    issues: ArchitectureIssueLog,
    config: Optional[MetricsCfg] = None,
) -> Dict[str, Any]:
    cfg = config or MetricsCfg()
    return {
        "trustIndex": calculate_trust_index(bus, cfg.trust_weights).to_dict(),
        "dailyPenalties": ledger.get_daily_penalties(),
        "remainingBudgets": ledger.get_remaining_budgets(),
        "recentIssues": [issue.to_dict() for issue in issues.get_recent(cfg.dashboard_recent_issues)],
        "guardStats": bus.get_guard_stats(),
    }


__all__ = [
    "calculate_trust_index",
    "PenaltyLedger",
    "ArchitectureIssueLog",
    "check_for_repeated_failures",
    "build_dashboard",
]
