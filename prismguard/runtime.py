# -*- coding: utf-8 -*-
"""Runtime factories: one owner for bus, ledger, issue log, bridge and pipeline."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

from .bus import EvaluationBus
from .chemistry import ChemistryBridge
from .config import PrismCfg, load_prism_cfg
from .guard.output_guard import OutputGuard
from .metrics import ArchitectureIssueLog, PenaltyLedger, build_dashboard
from .pipeline import PrismPipeline
from .telemetry import attach_event_sink, issue_sink

logger = logging.getLogger(__name__)


@dataclass
class EvaluationRuntime:
    config: PrismCfg
    bus: EvaluationBus
    ledger: PenaltyLedger
    issues: ArchitectureIssueLog
    chemistry: ChemistryBridge
    pipeline: PrismPipeline
    _detach: List[Callable[[], None]] = field(default_factory=list, repr=False)

    def dashboard(self) -> Dict[str, Any]:
        return build_dashboard(self.bus, self.ledger, self.issues, self.config.metrics)

    def reset(self) -> None:
        """Clear events, counters, penalties and issues; subscriptions stay."""
        self.bus.clear()
        self.ledger.reset()
        self.issues.clear()
        self.pipeline.guard.reset()

    def close(self) -> None:
        for detach in self._detach:
            detach()
        self._detach.clear()


def create_evaluation_runtime(
    config: Optional[PrismCfg] = None,
    *,
    clock: Optional[Callable[[], int]] = None,
    today: Optional[Callable[[], date]] = None,
) -> EvaluationRuntime:
    # runtimes never share config sections
    cfg = copy.deepcopy(config) if config is not None else PrismCfg()
    bus = EvaluationBus(cfg.bus, clock=clock)
    ledger = PenaltyLedger(cfg.metrics.daily_caps, today=today)
    sink = issue_sink(cfg.telemetry.issues_path) if cfg.telemetry.issues_path else None
    issues = ArchitectureIssueLog(cfg.metrics.max_architecture_issues, sink=sink, clock=clock)
    chemistry = ChemistryBridge(bus, cfg.chemistry, ledger)
    pipeline = PrismPipeline(bus, issues, cfg.pipeline, cfg.guard)
    runtime = EvaluationRuntime(
        config=cfg,
        bus=bus,
        ledger=ledger,
        issues=issues,
        chemistry=chemistry,
        pipeline=pipeline,
    )
    if cfg.telemetry.events_path:
        runtime._detach.append(attach_event_sink(bus, cfg.telemetry.events_path))
        logger.info("mirroring evaluation events to %s", cfg.telemetry.events_path)
    return runtime


def create_guard_runtime(runtime: EvaluationRuntime, *, strict: bool = False) -> OutputGuard:
    """Fresh guard for one conversation, reporting into ``runtime.bus``."""
    return OutputGuard(runtime.bus, runtime.config.guard, strict=strict)


@lru_cache(maxsize=1)
def default_runtime() -> EvaluationRuntime:
    return create_evaluation_runtime(load_prism_cfg())


__all__ = [
    "EvaluationRuntime",
    "create_evaluation_runtime",
    "create_guard_runtime",
    "default_runtime",
]
