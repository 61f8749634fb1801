"""Output guard: fact-echo comparison and identity/persona checks."""

from .fact_echo import FactEchoResult, check_fact_echo, values_match
from .output import GeneratedOutput, coerce_output
from .output_guard import OutputGuard, build_retry_prompt
from .persona import check_identity_leak, check_persona_drift, needs_guard_check

__all__ = [
    "FactEchoResult",
    "check_fact_echo",
    "values_match",
    "GeneratedOutput",
    "coerce_output",
    "OutputGuard",
    "build_retry_prompt",
    "check_identity_leak",
    "check_persona_drift",
    "needs_guard_check",
]
