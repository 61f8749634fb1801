# -*- coding: utf-8 -*-
"""Build the per-turn snapshot of system-known facts.

The snapshot is the single ground truth the output guard compares generated
speech against. Values come from system state (clock, energy, neurochemistry)
and from tools (world facts); the language model never writes to it.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from .contracts import FactSnapshot, NeuroState

NEURO_CHANNELS = ("dopamine", "serotonin", "norepinephrine")
DEFAULT_LANGUAGE = "English"


def _rounded(value: Any) -> Optional[int]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(round(number))


def build_fact_snapshot(
    *,
    energy: Any = None,
    neuro: Union[NeuroState, Mapping[str, Any], None] = None,
    world_facts: Optional[Mapping[str, Any]] = None,
    agent_name: Optional[str] = None,
    language: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FactSnapshot:
    """Return a fresh fact snapshot; never raises and never emits ``None``."""

    stamp = now or datetime.now()
    facts: FactSnapshot = {
        "time": stamp.strftime("%H:%M"),
        "date": stamp.strftime("%Y-%m-%d"),
    }
    if agent_name:
        facts["agentName"] = str(agent_name)
    facts["language"] = str(language or DEFAULT_LANGUAGE)

    energy_value = _rounded(energy) if energy is not None else None
    if energy_value is not None:
        facts["energy"] = energy_value

    if neuro is not None:
        channels = neuro.to_dict() if isinstance(neuro, NeuroState) else neuro
        if isinstance(channels, Mapping):
            for channel in NEURO_CHANNELS:
                value = _rounded(channels.get(channel))
                if value is not None:
                    facts[channel] = value

    if isinstance(world_facts, Mapping):
        for key, value in world_facts.items():
            if value is None:
                continue
            if isinstance(value, (int, float, str)) and not isinstance(value, bool):
                facts[str(key)] = value
            else:
                facts[str(key)] = str(value)
    return facts


def format_facts_for_prompt(facts: Mapping[str, Any]) -> str:
    lines = ["HARD_FACTS (preserve these literally):"]
    for key, value in facts.items():
        if value is None:
            continue
        lines.append(f"  {key}: {value}")
    return "\n".join(lines)


def has_facts(facts: Optional[Mapping[str, Any]]) -> bool:
    if not facts:
        return False
    return any(value is not None for value in facts.values())


__all__ = ["build_fact_snapshot", "format_facts_for_prompt", "has_facts", "NEURO_CHANNELS"]
