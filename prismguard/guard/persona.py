"""Identity-leak and persona-drift detection on user-facing speech."""

from __future__ import annotations

import re
from typing import List, Optional, Pattern

from ..contracts import GuardIssue, GuardIssueType

IDENTITY_LEAK_SEVERITY = 0.7
WRONG_NAME_SEVERITY = 0.6
ASSISTANT_SPEAK_SEVERITY = 0.5
CONTRADICTION_SEVERITY = 0.9

IDENTITY_LEAK_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\bas an? AI\b", re.IGNORECASE),
    re.compile(r"\bI'?m an? AI\b", re.IGNORECASE),
    re.compile(r"\bI am an? AI\b", re.IGNORECASE),
    re.compile(r"\bas an? (large )?language model\b", re.IGNORECASE),
    re.compile(r"\bI'?m an? (large )?language model\b", re.IGNORECASE),
    re.compile(r"\bI don'?t have (real )?(feelings|emotions|consciousness)\b", re.IGNORECASE),
    re.compile(r"\bI'?m just an? (program|bot|assistant)\b", re.IGNORECASE),
    re.compile(r"\bmy training data\b", re.IGNORECASE),
    re.compile(r"\bI was trained\b", re.IGNORECASE),
]

BRAND_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(OpenAI|Anthropic|Google AI|DeepMind)\b", re.IGNORECASE),
    re.compile(r"\b(Chat)?GPT(-?\d[\w.]*)?\b", re.IGNORECASE),
    re.compile(r"\b(Claude|Gemini|Llama|Mistral)\b", re.IGNORECASE),
]

ASSISTANT_SPEAK_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\bhow (can|may) I (help|assist)( you)?\b", re.IGNORECASE),
    re.compile(r"\bwhat can I (help|do for) you( with)?\b", re.IGNORECASE),
    re.compile(r"\b(is there )?anything else I can help( you)? with\b", re.IGNORECASE),
    re.compile(r"\bI'?m (here|happy|glad) to (help|assist)\b", re.IGNORECASE),
    re.compile(r"\bI am (here|happy|glad) to (help|assist)\b", re.IGNORECASE),
]

# the claimed name itself is matched case-sensitively (capitalized word)
_ASSISTANT_CLAIM = re.compile(r"\b(?i:my name is|call me|I'?m called|I am|I'?m)\s+Assistant\b")
_NAME_CLAIM = re.compile(r"\b(?i:my name is|call me|I'?m called|I am called)\s+([A-Z][\w-]*)")


def check_identity_leak(speech: str, persona_name: Optional[str] = None) -> Optional[GuardIssue]:
    """Return the first identity leak, or ``None``; one leak is enough."""

    for pattern in IDENTITY_LEAK_PATTERNS:
        match = pattern.search(speech)
        if match:
            return GuardIssue(
                type=GuardIssueType.IDENTITY_LEAK,
                actual=match.group(0),
                severity=IDENTITY_LEAK_SEVERITY,
            )
    persona = (persona_name or "").strip().lower()
    for pattern in BRAND_PATTERNS:
        for match in pattern.finditer(speech):
            # a persona may share a name with a model brand
            if persona and match.group(0).lower() == persona:
                continue
            return GuardIssue(
                type=GuardIssueType.IDENTITY_LEAK,
                actual=match.group(0),
                severity=IDENTITY_LEAK_SEVERITY,
            )
    return None


def check_assistant_speak(speech: str) -> Optional[GuardIssue]:
    for pattern in ASSISTANT_SPEAK_PATTERNS:
        match = pattern.search(speech)
        if match:
            return GuardIssue(
                type=GuardIssueType.PERSONA_DRIFT,
                expected="no-assistant-speak",
                actual=match.group(0),
                severity=ASSISTANT_SPEAK_SEVERITY,
            )
    return None


def check_persona_drift(speech: str, persona_name: Optional[str] = None) -> List[GuardIssue]:
    issues: List[GuardIssue] = []
    name = (persona_name or "").strip()
    if name:
        claim = _ASSISTANT_CLAIM.search(speech)
        if claim and name.lower() != "assistant":
            issues.append(
                GuardIssue(
                    type=GuardIssueType.IDENTITY_CONTRADICTION,
                    expected=name,
                    actual="Assistant",
                    severity=CONTRADICTION_SEVERITY,
                )
            )
        for match in _NAME_CLAIM.finditer(speech):
            claimed = match.group(1)
            if claimed.lower() in (name.lower(), "assistant"):
                continue
            issues.append(
                GuardIssue(
                    type=GuardIssueType.PERSONA_DRIFT,
                    expected=name,
                    actual=match.group(0),
                    severity=WRONG_NAME_SEVERITY,
                )
            )
            break
    speak = check_assistant_speak(speech)
    if speak is not None:
        issues.append(speak)
    return issues


def needs_guard_check(speech: str) -> bool:
    """Cheap pre-filter: does the speech match any identity or persona pattern?"""

    if not speech or not speech.strip():
        return False
    patterns = IDENTITY_LEAK_PATTERNS + BRAND_PATTERNS + ASSISTANT_SPEAK_PATTERNS
    return any(pattern.search(speech) for pattern in patterns)


__all__ = [
    "check_identity_leak",
    "check_persona_drift",
    "check_assistant_speak",
    "needs_guard_check",
    "IDENTITY_LEAK_PATTERNS",
    "BRAND_PATTERNS",
    "ASSISTANT_SPEAK_PATTERNS",
]
