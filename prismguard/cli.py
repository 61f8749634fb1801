#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Offline helpers around the evaluation runtime.

Usage examples:
  # dashboard of an empty runtime built from config/prism.yaml
  python -m prismguard.cli dashboard

  # replay a JSONL event log and print the resulting dashboard
  python -m prismguard.cli replay telemetry/prism/events.jsonl --chemistry

  # run one guard check against a facts snapshot
  python -m prismguard.cli check --facts facts.json --output reply.json --persona Aria
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .config import load_prism_cfg
from .contracts import NeuroState
from .metrics import check_for_repeated_failures
from .runtime import create_evaluation_runtime
from .telemetry import read_evaluation_events

logger = logging.getLogger(__name__)


def _dump(payload: Dict[str, Any]) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _load_json(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # plain-text replies are accepted as speech
        return text


def cmd_dashboard(args: argparse.Namespace) -> int:
    runtime = create_evaluation_runtime(load_prism_cfg(args.config))
    _dump(runtime.dashboard())
    return 0


def cmd_replay(args: argparse.Namespace) -> int:
    events_path = Path(args.events)
    if not events_path.exists():
        logger.error("event log not found: %s", events_path)
        return 2
    cfg = load_prism_cfg(args.config)
    # the log replays into a sink-free runtime
    cfg.telemetry.events_path = None
    events = read_evaluation_events(events_path)
    latest = max((event.timestamp for event in events), default=0)
    runtime = create_evaluation_runtime(cfg, clock=(lambda: latest) if events else None)
    if args.chemistry:
        runtime.chemistry.enable()
    for event in events:
        runtime.bus.emit(event)
    check_for_repeated_failures(runtime.bus, runtime.issues, runtime.config.metrics)
    payload = runtime.dashboard()
    payload["replayedEvents"] = len(events)
    payload["alerts"] = runtime.bus.check_alerts()
    if args.chemistry:
        payload["chemistry"] = {
            "delta": runtime.chemistry.calculate_chemistry_delta().to_dict(),
            "state": runtime.chemistry.process_evaluation_signals(NeuroState()).to_dict(),
        }
    _dump(payload)
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    facts = _load_json(Path(args.facts))
    if not isinstance(facts, dict):
        logger.error("facts file must contain a JSON object")
        return 2
    output = _load_json(Path(args.output))
    runtime = create_evaluation_runtime(load_prism_cfg(args.config))
    result = runtime.pipeline.check_response(
        output,
        facts=facts,
        persona_name=args.persona,
        strict=True if args.strict else None,
    )
    _dump(result.to_dict())
    return 0 if result.guard_passed else 1


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="prismguard", description=__doc__.splitlines()[0])
    ap.add_argument("--config", type=str, help="YAML config (default: config/prism.yaml or $PRISMGUARD_CONFIG)")
    ap.add_argument("--log-level", default="WARNING")
    sub = ap.add_subparsers(dest="command", required=True)

    dashboard = sub.add_parser("dashboard", help="print the dashboard of a fresh runtime")
    dashboard.set_defaults(func=cmd_dashboard)

    replay = sub.add_parser("replay", help="replay an events JSONL file")
    replay.add_argument("events", type=str)
    replay.add_argument("--chemistry", action="store_true", help="also report the chemistry delta")
    replay.set_defaults(func=cmd_replay)

    check = sub.add_parser("check", help="guard one model reply")
    check.add_argument("--facts", required=True, type=str)
    check.add_argument("--output", required=True, type=str)
    check.add_argument("--persona", type=str)
    check.add_argument("--strict", action="store_true")
    check.set_defaults(func=cmd_check)
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
