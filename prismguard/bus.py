# -*- coding: utf-8 -*-
"""Evaluation bus: bounded event log, pub/sub and running metrics.

Every producer (guard, confession, parser, user feedback) emits
``EvaluationEvent`` records here; consumers (chemistry bridge, trust index,
telemetry) read from it. The bus does not know who produced an event.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

import numpy as np

from .config import BusCfg
from .contracts import (
    EvaluationEvent,
    EvaluationSource,
    EvaluationStage,
    EvaluationTag,
)
from .events import now_ms

logger = logging.getLogger(__name__)

EvaluationHandler = Callable[[EvaluationEvent], None]


def _zero_counts(members) -> Dict[str, int]:
    return {member.value: 0 for member in members}


@dataclass
class BusMetrics:
    total_events: int = 0
    events_by_source: Dict[str, int] = field(default_factory=lambda: _zero_counts(EvaluationSource))
    events_by_stage: Dict[str, int] = field(default_factory=lambda: _zero_counts(EvaluationStage))
    negative_by_stage: Dict[str, int] = field(default_factory=lambda: _zero_counts(EvaluationStage))
    events_by_tag: Dict[str, int] = field(default_factory=dict)
    positive_events: int = 0
    negative_events: int = 0
    avg_severity: float = 0.0
    avg_confidence: float = 0.0
    guard_pass_count: int = 0
    guard_retry_count: int = 0
    guard_soft_fail_count: int = 0
    fact_mutation_count: int = 0
    persona_drift_count: int = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "total_events": self.total_events,
            "events_by_source": dict(self.events_by_source),
            "events_by_stage": dict(self.events_by_stage),
            "negative_by_stage": dict(self.negative_by_stage),
            "events_by_tag": dict(self.events_by_tag),
            "positive_events": self.positive_events,
            "negative_events": self.negative_events,
            "avg_severity": self.avg_severity,
            "avg_confidence": self.avg_confidence,
            "guard_pass_count": self.guard_pass_count,
            "guard_retry_count": self.guard_retry_count,
            "guard_soft_fail_count": self.guard_soft_fail_count,
            "fact_mutation_count": self.fact_mutation_count,
            "persona_drift_count": self.persona_drift_count,
        }


class EvaluationBus:
    """Process-local channel for evaluation signals."""

    def __init__(
        self,
        config: Optional[BusCfg] = None,
        *,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = config or BusCfg()
        self._clock = clock or now_ms
        self._history: Deque[EvaluationEvent] = deque(maxlen=max(1, int(self.config.max_history)))
        self._listeners: List[EvaluationHandler] = []
        self._metrics = BusMetrics()
        self._session_start = self._clock()

    # ------------------------------------------------------------------
    # pub/sub
    # ------------------------------------------------------------------

    def emit(self, event: EvaluationEvent) -> None:
        self._history.append(event)
        self._update_metrics(event)
        self._log_event(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("evaluation listener %r failed", listener)

    def subscribe(self, handler: EvaluationHandler) -> Callable[[], None]:
        self._listeners.append(handler)

        def unsubscribe() -> None:
            if handler in self._listeners:
                self._listeners.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def stage_weight(self, stage: EvaluationStage) -> float:
        return float(self.config.stage_weights.get(stage.value, self.config.default_stage_weight))

    def get_history(self) -> List[EvaluationEvent]:
        return list(self._history)

    def get_recent_events(self, window_ms: Optional[int] = None) -> List[EvaluationEvent]:
        window = self.config.window_ms if window_ms is None else int(window_ms)
        cutoff = self._clock() - window
        return [event for event in self._history if event.timestamp > cutoff]

    def signed_value(self, event: EvaluationEvent) -> float:
        sign = 1.0 if event.is_positive else -1.0
        return sign * event.severity * event.confidence * self.stage_weight(event.stage)

    def get_aggregated_signal(self) -> Dict[str, float]:
        """Stage-weighted mean of the recent window, scaled to a dopamine delta.

        ``confidence == 0`` means "no signal", not "a signal of zero".
        """

        recent = self.get_recent_events()
        if not recent:
            return {"dopamineDelta": 0.0, "confidence": 0.0}
        signed = np.fromiter((self.signed_value(ev) for ev in recent), dtype=float, count=len(recent))
        confidences = np.fromiter((ev.confidence for ev in recent), dtype=float, count=len(recent))
        return {
            "dopamineDelta": float(signed.mean() * self.config.signal_scale),
            "confidence": float(confidences.mean()),
        }

    def get_metrics(self) -> Dict[str, Any]:
        payload = self._metrics.snapshot()
        payload["session_duration_ms"] = self._clock() - self._session_start
        return payload

    def get_guard_stats(self) -> Dict[str, float]:
        m = self._metrics
        counted = m.guard_pass_count + m.guard_retry_count + m.guard_soft_fail_count
        total = m.total_events
        if counted == 0:
            return {
                "pass_rate": 1.0,
                "retry_rate": 0.0,
                "soft_fail_rate": 0.0,
                "fact_mutation_rate": 0.0,
                "persona_drift_rate": 0.0,
            }
        # fact/persona rates use every event as denominator, not just guard verdicts
        return {
            "pass_rate": m.guard_pass_count / counted,
            "retry_rate": m.guard_retry_count / counted,
            "soft_fail_rate": m.guard_soft_fail_count / counted,
            "fact_mutation_rate": m.fact_mutation_count / total if total else 0.0,
            "persona_drift_rate": m.persona_drift_count / total if total else 0.0,
        }

    def check_alerts(self) -> Dict[str, float]:
        """Return guard rates above their alert threshold."""

        stats = self.get_guard_stats()
        breached = {
            name: stats[name]
            for name, threshold in self.config.alert_thresholds.items()
            if name in stats and stats[name] > float(threshold)
        }
        for name, value in breached.items():
            logger.warning(
                "guard alert: %s=%.3f above %.3f",
                name,
                value,
                float(self.config.alert_thresholds[name]),
            )
        return breached

    # ------------------------------------------------------------------
    # resets
    # ------------------------------------------------------------------

    def reset_metrics(self) -> None:
        self._metrics = BusMetrics()
        self._session_start = self._clock()

    def clear(self) -> None:
        self._history.clear()
        self.reset_metrics()

    # ------------------------------------------------------------------

    def _update_metrics(self, event: EvaluationEvent) -> None:
        m = self._metrics
        m.total_events += 1
        m.events_by_source[event.source.value] = m.events_by_source.get(event.source.value, 0) + 1
        m.events_by_stage[event.stage.value] = m.events_by_stage.get(event.stage.value, 0) + 1

        for tag in event.tags:
            m.events_by_tag[tag.value] = m.events_by_tag.get(tag.value, 0) + 1
            if tag is EvaluationTag.FACT_MUTATION:
                m.fact_mutation_count += 1
            elif tag in (EvaluationTag.PERSONA_DRIFT, EvaluationTag.IDENTITY_LEAK):
                m.persona_drift_count += 1
            elif tag is EvaluationTag.RETRY_TRIGGERED:
                m.guard_retry_count += 1
            elif tag is EvaluationTag.SOFT_FAIL:
                m.guard_soft_fail_count += 1

        if event.is_positive:
            m.positive_events += 1
            if event.source is EvaluationSource.GUARD:
                m.guard_pass_count += 1
        else:
            m.negative_events += 1
            m.negative_by_stage[event.stage.value] = m.negative_by_stage.get(event.stage.value, 0) + 1

        n = m.total_events
        m.avg_severity += (event.severity - m.avg_severity) / n
        m.avg_confidence += (event.confidence - m.avg_confidence) / n

    def _log_event(self, event: EvaluationEvent) -> None:
        tags = ", ".join(tag.value for tag in event.tags) or "none"
        logger.debug(
            "%s %s/%s severity=%.2f tags=[%s] conf=%.2f",
            event.valence.value,
            event.source.value,
            event.stage.value,
            event.severity,
            tags,
            event.confidence,
        )
        if not event.is_positive and event.severity > self.config.high_severity_threshold:
            logger.warning(
                "high severity event %s/%s tags=[%s]",
                event.source.value,
                event.stage.value,
                tags,
            )


__all__ = ["EvaluationBus", "BusMetrics", "EvaluationHandler"]
