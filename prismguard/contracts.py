from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

FactValue = Union[int, float, str]
FactSnapshot = Dict[str, FactValue]


class EvaluationSource(str, Enum):
    GOAL = "GOAL"
    CONFESSION = "CONFESSION"
    PARSER = "PARSER"
    GUARD = "GUARD"
    USER = "USER"


class EvaluationStage(str, Enum):
    TOOL = "TOOL"
    ROUTER = "ROUTER"
    PRISM = "PRISM"
    GUARD = "GUARD"
    USER = "USER"


class EvaluationTag(str, Enum):
    VERBOSITY = "verbosity"
    UNCERTAINTY = "uncertainty"
    OFFTOPIC = "offtopic"
    HALLUCINATION = "hallucination"
    IDENTITY_LEAK = "identity_leak"
    FACT_MUTATION = "fact_mutation"
    FACT_APPROXIMATION = "fact_approximation"
    FACT_CONFLICT = "fact_conflict"
    PERSONA_DRIFT = "persona_drift"
    GOAL_SUCCESS = "goal_success"
    GOAL_FAILURE = "goal_failure"
    GOAL_TIMEOUT = "goal_timeout"
    PARSE_ERROR = "parse_error"
    RETRY_TRIGGERED = "retry_triggered"
    SOFT_FAIL = "soft_fail"


class FailureSource(str, Enum):
    LLM_MODEL = "LLM_MODEL"
    PROMPT = "PROMPT"
    ENVIRONMENT = "ENVIRONMENT"
    SELF = "SELF"
    UNKNOWN = "UNKNOWN"


class Valence(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


class GuardAction(str, Enum):
    PASS = "PASS"
    RETRY = "RETRY"
    SOFT_FAIL = "SOFT_FAIL"
    HARD_FAIL = "HARD_FAIL"

    @property
    def is_failure(self) -> bool:
        return self in (GuardAction.SOFT_FAIL, GuardAction.HARD_FAIL)


class GuardIssueType(str, Enum):
    FACT_MUTATION = "fact_mutation"
    FACT_APPROXIMATION = "fact_approximation"
    IDENTITY_LEAK = "identity_leak"
    PERSONA_DRIFT = "persona_drift"
    IDENTITY_CONTRADICTION = "identity_contradiction"


class ArchitectureIssueType(str, Enum):
    SOURCE_CONFLICT = "SOURCE_CONFLICT"
    INTEGRATION_ERROR = "INTEGRATION_ERROR"
    REPEATED_FAILURE = "REPEATED_FAILURE"


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class EvaluationEvent:
    """Single learning signal. Build it with ``create_evaluation_event``."""

    id: str
    timestamp: int
    source: EvaluationSource
    stage: EvaluationStage
    severity: float
    valence: Valence
    tags: Tuple[EvaluationTag, ...] = ()
    confidence: float = 1.0
    attribution: Optional[FailureSource] = None
    context: Optional[Mapping[str, Any]] = None

    @property
    def is_positive(self) -> bool:
        return self.valence is Valence.POSITIVE

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "timestamp": int(self.timestamp),
                "source": self.source.value,
                "stage": self.stage.value,
                "severity": float(self.severity),
                "valence": self.valence.value,
                "tags": [tag.value for tag in self.tags],
                "confidence": float(self.confidence),
                "attribution": self.attribution.value if self.attribution else None,
                "context": dict(self.context) if self.context is not None else None,
            }
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "EvaluationEvent":
        attribution = payload.get("attribution")
        context = payload.get("context")
        return cls(
            id=str(payload["id"]),
            timestamp=int(payload["timestamp"]),
            source=EvaluationSource(payload["source"]),
            stage=EvaluationStage(payload["stage"]),
            severity=float(payload.get("severity", 0.0)),
            valence=Valence(payload.get("valence", "negative")),
            tags=tuple(EvaluationTag(tag) for tag in payload.get("tags") or ()),
            confidence=float(payload.get("confidence", 1.0)),
            attribution=FailureSource(attribution) if attribution else None,
            context=dict(context) if isinstance(context, Mapping) else None,
        )


@dataclass(frozen=True)
class GuardIssue:
    type: GuardIssueType
    severity: float
    field: Optional[str] = None
    expected: Any = None
    actual: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "type": self.type.value,
                "field": self.field,
                "expected": self.expected,
                "actual": self.actual,
                "severity": float(self.severity),
            }
        )


@dataclass(frozen=True)
class GuardResult:
    action: GuardAction
    issues: Tuple[GuardIssue, ...] = ()
    retry_count: int = 0
    corrected_response: Optional[str] = None
    retry_temperature: Optional[float] = None
    missing_facts: Tuple[str, ...] = ()
    mutated_facts: Tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.action is GuardAction.PASS

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "action": self.action.value,
                "issues": [issue.to_dict() for issue in self.issues],
                "correctedResponse": self.corrected_response,
                "retryCount": int(self.retry_count),
                "retryTemperature": self.retry_temperature,
                "missingFacts": list(self.missing_facts),
                "mutatedFacts": list(self.mutated_facts),
            }
        )


@dataclass(frozen=True)
class NeuroState:
    dopamine: float = 55.0
    serotonin: float = 60.0
    norepinephrine: float = 50.0

    @classmethod
    def coerce(cls, value: Union["NeuroState", Mapping[str, Any]]) -> "NeuroState":
        if isinstance(value, NeuroState):
            return value
        return cls(
            dopamine=float(value.get("dopamine", 0.0)),
            serotonin=float(value.get("serotonin", 0.0)),
            norepinephrine=float(value.get("norepinephrine", 0.0)),
        )

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.dopamine, self.serotonin, self.norepinephrine)

    def to_dict(self) -> Dict[str, float]:
        return {
            "dopamine": float(self.dopamine),
            "serotonin": float(self.serotonin),
            "norepinephrine": float(self.norepinephrine),
        }


@dataclass(frozen=True)
class ChemistryDelta:
    dopamine: float = 0.0
    serotonin: float = 0.0
    norepinephrine: float = 0.0
    confidence: float = 0.0
    source: str = "no_events"

    @property
    def is_zero(self) -> bool:
        return self.dopamine == 0 and self.serotonin == 0 and self.norepinephrine == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dopamine": float(self.dopamine),
            "serotonin": float(self.serotonin),
            "norepinephrine": float(self.norepinephrine),
            "confidence": float(self.confidence),
            "source": self.source,
        }


@dataclass(frozen=True)
class TrustIndexResult:
    index: float
    fact_mutation_rate: float = 0.0
    soft_fail_rate: float = 0.0
    retry_rate: float = 0.0
    identity_leak_rate: float = 0.0
    total_events: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": float(self.index),
            "factMutationRate": float(self.fact_mutation_rate),
            "softFailRate": float(self.soft_fail_rate),
            "retryRate": float(self.retry_rate),
            "identityLeakRate": float(self.identity_leak_rate),
            "totalEvents": int(self.total_events),
        }


@dataclass(frozen=True)
class ArchitectureIssue:
    timestamp: int
    type: ArchitectureIssueType
    description: str
    severity: float
    context: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "timestamp": int(self.timestamp),
                "type": self.type.value,
                "description": self.description,
                "severity": float(self.severity),
                "context": dict(self.context) if self.context is not None else None,
            }
        )


@dataclass
class PrismCheckResult:
    """Outcome of one pipeline call."""

    response: str
    guard_result: GuardResult
    was_modified: bool = False
    retries_used: int = 0
    output: Any = None
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def guard_passed(self) -> bool:
        return self.guard_result.passed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "guardResult": self.guard_result.to_dict(),
            "wasModified": bool(self.was_modified),
            "retriesUsed": int(self.retries_used),
        }


def as_stage(value: Union[str, EvaluationStage]) -> EvaluationStage:
    """Normalize a stage name; unknown names raise ``ValueError``."""
    if isinstance(value, EvaluationStage):
        return value
    return EvaluationStage(str(value).upper())


ALL_STAGES: List[EvaluationStage] = list(EvaluationStage)


__all__ = [
    "FactValue",
    "FactSnapshot",
    "EvaluationSource",
    "EvaluationStage",
    "EvaluationTag",
    "FailureSource",
    "Valence",
    "GuardAction",
    "GuardIssueType",
    "ArchitectureIssueType",
    "EvaluationEvent",
    "GuardIssue",
    "GuardResult",
    "NeuroState",
    "ChemistryDelta",
    "TrustIndexResult",
    "ArchitectureIssue",
    "PrismCheckResult",
    "as_stage",
    "ALL_STAGES",
]
