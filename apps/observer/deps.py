from __future__ import annotations

import logging

from prismguard.config import load_prism_cfg
from prismguard.runtime import EvaluationRuntime, create_evaluation_runtime, default_runtime
from prismguard.telemetry import read_evaluation_events

from .config import ObserverSettings, settings

logger = logging.getLogger(__name__)

_runtime: EvaluationRuntime | None = None


def build_runtime(cfg: ObserverSettings) -> EvaluationRuntime:
    if cfg.config_path is None and cfg.events_path is None:
        return default_runtime()
    prism_cfg = load_prism_cfg(cfg.config_path)
    # the observer only reads; it never mirrors events back to disk
    prism_cfg.telemetry.events_path = None
    runtime = create_evaluation_runtime(prism_cfg)
    if cfg.events_path is not None:
        if cfg.events_path.exists():
            events = read_evaluation_events(cfg.events_path)
            for event in events:
                runtime.bus.emit(event)
            logger.info("observer replayed %d events from %s", len(events), cfg.events_path)
        else:
            logger.warning("events log %s not found, observer starts empty", cfg.events_path)
    return runtime


def runtime() -> EvaluationRuntime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime(settings)
    return _runtime


__all__ = ["runtime", "build_runtime"]
