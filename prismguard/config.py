from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV = "PRISMGUARD_CONFIG"
DEFAULT_CONFIG_PATH = Path("config/prism.yaml")

DEFAULT_STAGE_WEIGHTS: dict[str, float] = {
    "TOOL": 0.02,
    "ROUTER": 0.03,
    "PRISM": 0.10,
    "GUARD": 0.05,
    "USER": 0.15,
}

DEFAULT_DAILY_CAPS: dict[str, float] = {
    "TOOL": 5.0,
    "ROUTER": 8.0,
    "PRISM": 15.0,
    "GUARD": 10.0,
    "USER": 20.0,
}

SOFT_FAIL_RESPONSE = (
    "I can't answer that safely right now without risking a wrong fact. "
    "Please check the system panel or rephrase the question."
)


@dataclass
class BusCfg:
    window_ms: int = field(default=5000)
    max_history: int = field(default=500)
    signal_scale: float = field(default=50.0)
    default_stage_weight: float = field(default=0.05)
    high_severity_threshold: float = field(default=0.7)
    stage_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_STAGE_WEIGHTS))
    alert_thresholds: dict[str, float] = field(
        default_factory=lambda: {
            "retry_rate": 0.20,
            "soft_fail_rate": 0.05,
            "fact_mutation_rate": 0.10,
        }
    )


@dataclass
class GuardCfg:
    # attempts per turn, the first one included
    max_retries: int = field(default=3)
    base_temperature: float = field(default=0.7)
    min_temperature: float = field(default=0.1)
    temperature_decay: float = field(default=0.1)
    numeric_tolerance: float = field(default=0.01)
    required_facts: list[str] = field(default_factory=lambda: ["energy", "time"])
    critical_severity: float = field(default=0.9)
    soft_fail_response: str = field(default=SOFT_FAIL_RESPONSE)


@dataclass
class PipelineCfg:
    enabled: bool = field(default=True)
    retry_enabled: bool = field(default=True)
    strict_mode: bool = field(default=False)
    log_all_checks: bool = field(default=True)
    consecutive_failure_threshold: int = field(default=5)


@dataclass
class ChemistryCfg:
    enabled: bool = field(default=False)
    max_dopamine_delta: float = field(default=10.0)
    max_serotonin_delta: float = field(default=5.0)
    max_norepinephrine_delta: float = field(default=2.0)
    serotonin_ratio: float = field(default=0.3)
    norepinephrine_ratio: float = field(default=0.2)
    dopamine_baseline: float = field(default=55.0)
    serotonin_baseline: float = field(default=60.0)
    log_enabled: bool = field(default=True)


@dataclass
class MetricsCfg:
    daily_caps: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_DAILY_CAPS))
    trust_weights: dict[str, float] = field(
        default_factory=lambda: {
            "fact_mutation": 1.0,
            "soft_fail": 0.5,
            "retry": 0.3,
            "identity_leak": 0.8,
        }
    )
    max_architecture_issues: int = field(default=100)
    dashboard_recent_issues: int = field(default=5)
    dominant_stage_share: float = field(default=0.5)
    dominant_stage_min_negative: int = field(default=10)


@dataclass
class TelemetryCfg:
    events_path: str | None = field(default=None)
    issues_path: str | None = field(default=None)


@dataclass
class PrismCfg:
    bus: BusCfg = field(default_factory=BusCfg)
    guard: GuardCfg = field(default_factory=GuardCfg)
    pipeline: PipelineCfg = field(default_factory=PipelineCfg)
    chemistry: ChemistryCfg = field(default_factory=ChemistryCfg)
    metrics: MetricsCfg = field(default_factory=MetricsCfg)
    telemetry: TelemetryCfg = field(default_factory=TelemetryCfg)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_prism_cfg(path: str | Path | None = None) -> PrismCfg:
    """Load ``PrismCfg`` from YAML; a missing or broken file yields defaults."""

    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        return PrismCfg()
    try:
        payload = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        logger.warning("could not read %s, using default config", cfg_path, exc_info=True)
        return PrismCfg()
    if not isinstance(payload, dict):
        logger.warning("%s does not contain a mapping, using default config", cfg_path)
        return PrismCfg()
    return PrismCfg(
        bus=_merge_dataclass(BusCfg(), payload.get("bus", {})),
        guard=_merge_dataclass(GuardCfg(), payload.get("guard", {})),
        pipeline=_merge_dataclass(PipelineCfg(), payload.get("pipeline", {})),
        chemistry=_merge_dataclass(ChemistryCfg(), payload.get("chemistry", {})),
        metrics=_merge_dataclass(MetricsCfg(), payload.get("metrics", {})),
        telemetry=_merge_dataclass(TelemetryCfg(), payload.get("telemetry", {})),
    )


def _merge_dataclass(instance, overrides: dict[str, Any] | None):
    data = instance.__dict__.copy()
    if not isinstance(overrides, dict):
        return instance
    for key, value in overrides.items():
        if key not in data:
            continue
        if isinstance(data[key], dict) and isinstance(value, dict):
            # weight and cap tables merge per key
            merged = dict(data[key])
            merged.update(value)
            data[key] = merged
        else:
            data[key] = value
    return instance.__class__(**data)


__all__ = [
    "load_prism_cfg",
    "resolve_config_path",
    "PrismCfg",
    "BusCfg",
    "GuardCfg",
    "PipelineCfg",
    "ChemistryCfg",
    "MetricsCfg",
    "TelemetryCfg",
    "DEFAULT_STAGE_WEIGHTS",
    "DEFAULT_DAILY_CAPS",
    "SOFT_FAIL_RESPONSE",
    "CONFIG_ENV",
]
