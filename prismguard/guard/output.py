"""Split generator output into user-facing speech and everything else.

Only ``speech_content`` is ever checked. ``internal_thought`` may legitimately
mention raw facts, tool tags or mistakes and is carried through untouched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

SPEECH_KEYS = ("speech_content", "speech", "text")


@dataclass(frozen=True)
class GeneratedOutput:
    speech_content: str
    fact_echo: Optional[Dict[str, Any]] = None
    internal_thought: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def with_speech(self, speech: str) -> "GeneratedOutput":
        return replace(self, speech_content=speech)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extras)
        payload["speech_content"] = self.speech_content
        if self.fact_echo is not None:
            payload["fact_echo"] = dict(self.fact_echo)
        if self.internal_thought is not None:
            payload["internal_thought"] = self.internal_thought
        return payload


def _from_mapping(data: Mapping[str, Any]) -> GeneratedOutput:
    speech = ""
    speech_key = None
    for key in SPEECH_KEYS:
        if isinstance(data.get(key), str):
            speech = data[key]
            speech_key = key
            break
    echo = data.get("fact_echo")
    thought = data.get("internal_thought")
    known = {"fact_echo", "internal_thought", speech_key}
    return GeneratedOutput(
        speech_content=speech,
        fact_echo=dict(echo) if isinstance(echo, Mapping) else None,
        internal_thought=str(thought) if thought is not None else None,
        extras={k: v for k, v in data.items() if k not in known},
    )


def coerce_output(value: Any) -> GeneratedOutput:
    """Accept plain speech, a mapping or a JSON object string."""

    if isinstance(value, GeneratedOutput):
        return value
    if isinstance(value, Mapping):
        return _from_mapping(value)
    text = "" if value is None else str(value)
    stripped = text.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            data = json.loads(stripped)
        except ValueError:
            data = None
        if isinstance(data, dict) and any(key in data for key in SPEECH_KEYS):
            return _from_mapping(data)
    return GeneratedOutput(speech_content=text)


__all__ = ["GeneratedOutput", "coerce_output"]
