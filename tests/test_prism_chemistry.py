from __future__ import annotations

import pytest

from prismguard.bus import EvaluationBus
from prismguard.chemistry import ChemistryBridge, ExclusiveSubscriptionError, apply_chemistry_delta
from prismguard.config import ChemistryCfg
from prismguard.contracts import ChemistryDelta, NeuroState
from prismguard.events import create_evaluation_event
from prismguard.metrics import PenaltyLedger

NOW = 1_000_000


def _bus() -> EvaluationBus:
    return EvaluationBus(clock=lambda: NOW)


def _negative(stage: str = "USER", severity: float = 1.0):
    return create_evaluation_event("USER", stage, severity, "negative", [], 1.0, timestamp=NOW)


def test_disabled_bridge_returns_zero_delta() -> None:
    bus = _bus()
    bus.emit(_negative())
    bridge = ChemistryBridge(bus)

    delta = bridge.calculate_chemistry_delta()
    assert not bridge.enabled
    assert delta.is_zero
    assert delta.source == "disabled"


def test_no_events_yields_no_events_source() -> None:
    bridge = ChemistryBridge(_bus(), ChemistryCfg(enabled=True))
    delta = bridge.calculate_chemistry_delta()
    assert delta.is_zero
    assert delta.source == "no_events"


def test_negative_user_event_delta() -> None:
    bus = _bus()
    bus.emit(_negative())
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True))

    delta = bridge.calculate_chemistry_delta()
    assert delta.dopamine == pytest.approx(-7.5)
    assert delta.serotonin == pytest.approx(-2.25)
    assert delta.norepinephrine == pytest.approx(1.5)
    assert delta.source == "evaluation_bus"


def test_deltas_are_clamped() -> None:
    bus = EvaluationBus(clock=lambda: NOW)
    bus.config.stage_weights["USER"] = 1.0
    bus.emit(_negative())
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True))

    delta = bridge.calculate_chemistry_delta()
    assert delta.dopamine == -10.0
    assert delta.serotonin == -5.0
    assert delta.norepinephrine == 2.0


def test_secondary_channels_follow_unclamped_signal() -> None:
    bus = _bus()
    bus.emit(_negative())
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True, max_dopamine_delta=2.0))

    delta = bridge.calculate_chemistry_delta()
    assert delta.dopamine == pytest.approx(-2.0)
    assert delta.serotonin == pytest.approx(-2.25)
    assert delta.norepinephrine == pytest.approx(1.5)


def test_apply_delta_is_pure_and_bounded() -> None:
    current = NeuroState(dopamine=95.0, serotonin=2.0, norepinephrine=50.0)
    updated = apply_chemistry_delta(current, ChemistryDelta(dopamine=10.0, serotonin=-5.0, norepinephrine=1.0))

    assert updated == NeuroState(dopamine=100.0, serotonin=0.0, norepinephrine=51.0)
    assert current.dopamine == 95.0

    from_mapping = apply_chemistry_delta({"dopamine": 50, "serotonin": 50, "norepinephrine": 50}, ChemistryDelta())
    assert from_mapping == NeuroState(50.0, 50.0, 50.0)


def test_process_evaluation_signals_applies_delta() -> None:
    bus = _bus()
    bus.emit(_negative())
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True))

    state = bridge.process_evaluation_signals(NeuroState())
    assert state.dopamine == pytest.approx(47.5)
    assert state.serotonin == pytest.approx(57.75)
    assert state.norepinephrine == pytest.approx(51.5)


def test_multiple_subscriptions_receive_per_event_deltas() -> None:
    bus = _bus()
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True))
    first: list[ChemistryDelta] = []
    second: list[ChemistryDelta] = []

    sub_a = bridge.subscribe(first.append)
    bridge.subscribe(second.append)
    bus.emit(_negative())

    assert len(first) == 1 and len(second) == 1
    assert first[0].dopamine == pytest.approx(-7.5)
    assert first[0].source == "USER/USER"

    sub_a.cancel()
    bus.emit(_negative())
    assert len(first) == 1
    assert len(second) == 2
    assert bridge.subscription_count == 1


def test_subscription_is_silent_while_disabled() -> None:
    bus = _bus()
    bridge = ChemistryBridge(bus)
    received: list[ChemistryDelta] = []
    bridge.subscribe(received.append)

    bus.emit(_negative())
    assert received == []


def test_exclusive_subscription_raises_when_taken() -> None:
    bridge = ChemistryBridge(_bus(), ChemistryCfg(enabled=True))
    held = bridge.acquire_exclusive_subscription(lambda delta: None)

    with pytest.raises(ExclusiveSubscriptionError):
        bridge.acquire_exclusive_subscription(lambda delta: None)

    held.cancel()
    with bridge.acquire_exclusive_subscription(lambda delta: None) as again:
        assert again.active
    assert not again.active


def test_ledger_gates_negative_deltas() -> None:
    bus = _bus()
    ledger = PenaltyLedger({"USER": 10.0})
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True), ledger)
    received: list[ChemistryDelta] = []
    bridge.subscribe(received.append)

    bus.emit(_negative())
    bus.emit(_negative())

    assert received[0].dopamine == pytest.approx(-7.5)
    assert received[1].is_zero
    assert received[1].source == "budget_exhausted"
    assert ledger.get_daily_penalties()["USER"] == pytest.approx(7.5)


def test_stats_reflect_bus() -> None:
    bus = _bus()
    bus.emit(_negative())
    stats = ChemistryBridge(bus).get_stats()
    assert stats["enabled"] is False
    assert stats["totalEvents"] == 1
    assert stats["negativeEvents"] == 1


def test_ledger_is_charged_once_per_event_across_subscriptions() -> None:
    bus = _bus()
    ledger = PenaltyLedger({"USER": 20.0})
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True), ledger)
    first: list[ChemistryDelta] = []
    second: list[ChemistryDelta] = []
    bridge.subscribe(first.append)
    bridge.subscribe(second.append)

    bus.emit(_negative())

    assert first[0].dopamine == pytest.approx(-7.5)
    assert second[0] == first[0]
    assert ledger.get_daily_penalties()["USER"] == pytest.approx(7.5)


def test_failing_subscriber_does_not_block_others() -> None:
    bus = _bus()
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True))
    received: list[ChemistryDelta] = []

    def boom(delta: ChemistryDelta) -> None:
        raise RuntimeError("boom")

    bridge.subscribe(boom)
    bridge.subscribe(received.append)
    bus.emit(_negative())

    assert len(received) == 1


def test_bridge_detaches_from_bus_after_last_cancel() -> None:
    bus = _bus()
    bridge = ChemistryBridge(bus, ChemistryCfg(enabled=True), PenaltyLedger({"USER": 100.0}))
    sub_a = bridge.subscribe(lambda delta: None)
    sub_b = bridge.subscribe(lambda delta: None)
    assert bus.subscriber_count == 1
    sub_a.cancel()
    sub_b.cancel()

    bus.emit(_negative())
    assert bridge.subscription_count == 0
    assert bus.subscriber_count == 0
    assert bridge.ledger.get_daily_penalties().get("USER", 0.0) == 0.0
