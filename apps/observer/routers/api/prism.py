from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from prismguard.metrics import calculate_trust_index

from ... import deps
from ...config import settings

router = APIRouter()


@router.get("/metrics")
def metrics() -> dict[str, Any]:
    return deps.runtime().bus.get_metrics()


@router.get("/guard_stats")
def guard_stats() -> dict[str, float]:
    return deps.runtime().bus.get_guard_stats()


@router.get("/trust_index")
def trust_index() -> dict[str, Any]:
    rt = deps.runtime()
    return calculate_trust_index(rt.bus, rt.config.metrics.trust_weights).to_dict()


@router.get("/penalties")
def penalties() -> dict[str, Any]:
    ledger = deps.runtime().ledger
    return {
        "date": ledger.date,
        "dailyPenalties": ledger.get_daily_penalties(),
        "remainingBudgets": ledger.get_remaining_budgets(),
    }


@router.get("/architecture_issues")
def architecture_issues(
    limit: int = Query(settings.issues_limit, ge=1, le=settings.max_issues_limit),
) -> list[dict[str, Any]]:
    return [issue.to_dict() for issue in deps.runtime().issues.get_recent(limit)]


@router.get("/dashboard")
def dashboard() -> dict[str, Any]:
    return deps.runtime().dashboard()


__all__ = ["router"]
