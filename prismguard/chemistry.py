# -*- coding: utf-8 -*-
"""Chemistry bridge: evaluation signals -> bounded neuro-channel deltas.

Disabled by default. Pull mode (``calculate_chemistry_delta``) reads the
bus window; push mode (``subscribe``) reacts to each event as it is emitted.
Every delta is clamped per channel, and channel levels stay in [0, 100].
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

import numpy as np

from .bus import EvaluationBus
from .config import ChemistryCfg
from .contracts import ChemistryDelta, EvaluationEvent, NeuroState
from .metrics import PenaltyLedger

logger = logging.getLogger(__name__)

ChemistryCallback = Callable[[ChemistryDelta], None]
NeuroLike = Union[NeuroState, Mapping[str, Any]]

CHANNEL_MIN = 0.0
CHANNEL_MAX = 100.0


class ExclusiveSubscriptionError(RuntimeError):
    """Raised when a second exclusive chemistry subscription is requested."""


def _clamp_delta(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


def apply_chemistry_delta(current: NeuroLike, delta: ChemistryDelta) -> NeuroState:
    """Return a new state; ``current`` is never modified."""

    state = NeuroState.coerce(current)
    levels = np.asarray(state.as_tuple(), dtype=float)
    shift = np.asarray([delta.dopamine, delta.serotonin, delta.norepinephrine], dtype=float)
    dopamine, serotonin, norepinephrine = np.clip(levels + shift, CHANNEL_MIN, CHANNEL_MAX)
    return NeuroState(
        dopamine=float(dopamine),
        serotonin=float(serotonin),
        norepinephrine=float(norepinephrine),
    )


class ChemistrySubscription:
    """Handle returned by ``ChemistryBridge.subscribe``."""

    def __init__(self, bridge: "ChemistryBridge", callback: ChemistryCallback, *, exclusive: bool = False) -> None:
        self._bridge = bridge
        self.callback = callback
        self.exclusive = exclusive
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._bridge._release(self)

    def __enter__(self) -> "ChemistrySubscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.cancel()


class ChemistryBridge:
    def __init__(
        self,
        bus: EvaluationBus,
        config: Optional[ChemistryCfg] = None,
        ledger: Optional[PenaltyLedger] = None,
    ) -> None:
        self.bus = bus
        self.config = config or ChemistryCfg()
        self.ledger = ledger
        self._exclusive: Optional[ChemistrySubscription] = None
        self._subscriptions: list[ChemistrySubscription] = []
        self._unsubscribe_bus: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # feature flag
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled)

    def enable(self) -> None:
        self.config.enabled = True
        logger.info("chemistry bridge enabled")

    def disable(self) -> None:
        self.config.enabled = False
        logger.info("chemistry bridge disabled")

    # ------------------------------------------------------------------
    # pull mode
    # ------------------------------------------------------------------

    def calculate_chemistry_delta(self) -> ChemistryDelta:
        if not self.enabled:
            return ChemistryDelta(source="disabled")
        signal = self.bus.get_aggregated_signal()
        if signal["confidence"] == 0:
            return ChemistryDelta(source="no_events")
        delta = self._delta_from(signal["dopamineDelta"], signal["confidence"], "evaluation_bus")
        self._log_delta(delta)
        return delta

    def process_evaluation_signals(self, current: NeuroLike) -> NeuroState:
        delta = self.calculate_chemistry_delta()
        if delta.is_zero:
            return NeuroState.coerce(current)
        return apply_chemistry_delta(current, delta)

    # ------------------------------------------------------------------
    # push mode
    # ------------------------------------------------------------------

    def subscribe(self, callback: ChemistryCallback) -> ChemistrySubscription:
        return self._register(callback, exclusive=False)

    def acquire_exclusive_subscription(self, callback: ChemistryCallback) -> ChemistrySubscription:
        if self._exclusive is not None and self._exclusive.active:
            raise ExclusiveSubscriptionError("an exclusive chemistry subscription is already active")
        subscription = self._register(callback, exclusive=True)
        self._exclusive = subscription
        return subscription

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def event_delta(self, event: EvaluationEvent) -> ChemistryDelta:
        """Per-event delta, gated by the daily penalty budget when a ledger is attached."""

        raw = self.bus.signed_value(event) * self.bus.config.signal_scale
        dopamine = _clamp_delta(raw, self.config.max_dopamine_delta)
        source = f"{event.source.value}/{event.stage.value}"
        if dopamine < 0 and self.ledger is not None:
            if not self.ledger.try_apply_penalty(event.stage, abs(dopamine)):
                logger.info("penalty budget exhausted for %s, delta dropped", event.stage.value)
                return ChemistryDelta(confidence=event.confidence, source="budget_exhausted")
        return self._delta_from(raw, event.confidence, source)

    def get_stats(self) -> Dict[str, Any]:
        metrics = self.bus.get_metrics()
        guard = self.bus.get_guard_stats()
        return {
            "enabled": self.enabled,
            "totalEvents": metrics["total_events"],
            "positiveEvents": metrics["positive_events"],
            "negativeEvents": metrics["negative_events"],
            "avgSeverity": metrics["avg_severity"],
            "guardPassRate": guard["pass_rate"],
            "guardRetryRate": guard["retry_rate"],
            "subscriptions": self.subscription_count,
        }

    # ------------------------------------------------------------------

    def _register(self, callback: ChemistryCallback, *, exclusive: bool) -> ChemistrySubscription:
        subscription = ChemistrySubscription(self, callback, exclusive=exclusive)
        self._subscriptions.append(subscription)
        if self._unsubscribe_bus is None:
            self._unsubscribe_bus = self.bus.subscribe(self._on_event)
        return subscription

    def _release(self, subscription: ChemistrySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        if self._exclusive is subscription:
            self._exclusive = None
        if not self._subscriptions and self._unsubscribe_bus is not None:
            self._unsubscribe_bus()
            self._unsubscribe_bus = None

    def _on_event(self, event: EvaluationEvent) -> None:
        # one gated delta per event, shared by every callback
        if not self.enabled or not self._subscriptions:
            return
        delta = self.event_delta(event)
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.callback(delta)
            except Exception:
                logger.exception("chemistry subscriber failed")

    def _delta_from(self, raw_dopamine: float, confidence: float, source: str) -> ChemistryDelta:
        cfg = self.config
        dopamine = _clamp_delta(raw_dopamine, cfg.max_dopamine_delta)
        serotonin = _clamp_delta(raw_dopamine * cfg.serotonin_ratio, cfg.max_serotonin_delta)
        norepinephrine = (
            min(cfg.max_norepinephrine_delta, abs(raw_dopamine) * cfg.norepinephrine_ratio)
            if raw_dopamine < 0
            else 0.0
        )
        return ChemistryDelta(
            dopamine=dopamine,
            serotonin=serotonin,
            norepinephrine=norepinephrine,
            confidence=confidence,
            source=source,
        )

    def _log_delta(self, delta: ChemistryDelta) -> None:
        if not self.config.log_enabled:
            return
        logger.debug(
            "d_dopamine=%.2f d_serotonin=%.2f conf=%.2f source=%s",
            delta.dopamine,
            delta.serotonin,
            delta.confidence,
            delta.source,
        )


__all__ = [
    "ChemistryBridge",
    "ChemistrySubscription",
    "ExclusiveSubscriptionError",
    "apply_chemistry_delta",
    "ChemistryCallback",
]
