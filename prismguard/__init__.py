"""Output validation and evaluation feedback loop for persona-driven LLM agents."""

from .bus import EvaluationBus
from .chemistry import (
    ChemistryBridge,
    ChemistrySubscription,
    ExclusiveSubscriptionError,
    apply_chemistry_delta,
)
from .config import PrismCfg, load_prism_cfg
from .contracts import (
    ArchitectureIssue,
    ArchitectureIssueType,
    ChemistryDelta,
    EvaluationEvent,
    EvaluationSource,
    EvaluationStage,
    EvaluationTag,
    FailureSource,
    GuardAction,
    GuardIssue,
    GuardIssueType,
    GuardResult,
    NeuroState,
    PrismCheckResult,
    TrustIndexResult,
    Valence,
)
from .events import (
    confession_to_evaluation,
    create_evaluation_event,
    create_guard_event,
    parse_error_event,
    user_feedback_event,
)
from .facts import build_fact_snapshot, format_facts_for_prompt
from .guard import OutputGuard, build_retry_prompt, check_fact_echo, check_identity_leak, check_persona_drift
from .metrics import (
    ArchitectureIssueLog,
    PenaltyLedger,
    build_dashboard,
    calculate_trust_index,
    check_for_repeated_failures,
)
from .pipeline import PrismPipeline
from .runtime import EvaluationRuntime, create_evaluation_runtime, create_guard_runtime, default_runtime

__version__ = "0.1.0"

__all__ = [
    "EvaluationBus",
    "ChemistryBridge",
    "ChemistrySubscription",
    "ExclusiveSubscriptionError",
    "apply_chemistry_delta",
    "PrismCfg",
    "load_prism_cfg",
    "ArchitectureIssue",
    "ArchitectureIssueType",
    "ChemistryDelta",
    "EvaluationEvent",
    "EvaluationSource",
    "EvaluationStage",
    "EvaluationTag",
    "FailureSource",
    "GuardAction",
    "GuardIssue",
    "GuardIssueType",
    "GuardResult",
    "NeuroState",
    "PrismCheckResult",
    "TrustIndexResult",
    "Valence",
    "confession_to_evaluation",
    "create_evaluation_event",
    "create_guard_event",
    "parse_error_event",
    "user_feedback_event",
    "build_fact_snapshot",
    "format_facts_for_prompt",
    "OutputGuard",
    "build_retry_prompt",
    "check_fact_echo",
    "check_identity_leak",
    "check_persona_drift",
    "ArchitectureIssueLog",
    "PenaltyLedger",
    "build_dashboard",
    "calculate_trust_index",
    "check_for_repeated_failures",
    "PrismPipeline",
    "EvaluationRuntime",
    "create_evaluation_runtime",
    "create_guard_runtime",
    "default_runtime",
]
