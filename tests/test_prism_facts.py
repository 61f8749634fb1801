from __future__ import annotations

from datetime import datetime

from prismguard.contracts import NeuroState
from prismguard.facts import build_fact_snapshot, format_facts_for_prompt, has_facts


def test_fact_snapshot_rounds_and_formats() -> None:
    facts = build_fact_snapshot(
        energy=23.6,
        neuro=NeuroState(dopamine=54.4, serotonin=60.5, norepinephrine=49.9),
        agent_name="Aria",
        now=datetime(2025, 12, 13, 9, 5),
    )

    assert facts["energy"] == 24
    assert facts["dopamine"] == 54
    assert facts["norepinephrine"] == 50
    assert facts["time"] == "09:05"
    assert facts["date"] == "2025-12-13"
    assert facts["agentName"] == "Aria"
    assert facts["language"] == "English"


def test_fact_snapshot_never_contains_none() -> None:
    facts = build_fact_snapshot(
        energy=None,
        neuro={"dopamine": "n/a", "serotonin": 61},
        world_facts={"btc_price": 43250.5, "weather": None, "tags": ["a", "b"]},
        now=datetime(2025, 1, 1, 0, 0),
    )

    assert "energy" not in facts
    assert "dopamine" not in facts
    assert facts["serotonin"] == 61
    assert facts["btc_price"] == 43250.5
    assert "weather" not in facts
    assert facts["tags"] == "['a', 'b']"
    assert all(value is not None for value in facts.values())


def test_fact_snapshot_returns_fresh_dict() -> None:
    now = datetime(2025, 1, 1, 12, 0)
    first = build_fact_snapshot(energy=10, now=now)
    first["energy"] = 99
    second = build_fact_snapshot(energy=10, now=now)
    assert second["energy"] == 10


def test_format_facts_for_prompt_lists_values() -> None:
    text = format_facts_for_prompt({"energy": 23, "time": "14:30", "missing": None})
    assert "energy: 23" in text
    assert "time: 14:30" in text
    assert "missing" not in text
    assert has_facts({"energy": 1})
    assert not has_facts({"energy": None})
    assert not has_facts(None)
