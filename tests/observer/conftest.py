from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from prismguard.contracts import GuardAction, GuardIssue, GuardIssueType
from prismguard.events import create_guard_event
from prismguard.runtime import EvaluationRuntime, create_evaluation_runtime


@pytest.fixture()
def runtime() -> EvaluationRuntime:
    """Runtime with one retry, one pass, a penalty and a few issues."""

    rt = create_evaluation_runtime()
    mutation = GuardIssue(type=GuardIssueType.FACT_MUTATION, field="energy", expected=23, actual="50", severity=0.8)
    rt.bus.emit(create_guard_event(GuardAction.RETRY, [mutation]))
    rt.bus.emit(create_guard_event(GuardAction.PASS, []))
    rt.ledger.record_penalty("PRISM", 4)
    for idx in range(12):
        rt.issues.log("INTEGRATION_ERROR", f"issue {idx}", 0.3)
    return rt


@pytest.fixture()
def client(runtime: EvaluationRuntime, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    import apps.observer.deps as deps

    monkeypatch.setattr(deps, "_runtime", runtime, raising=True)

    from apps.observer.main import app

    return TestClient(app)
