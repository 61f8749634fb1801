from __future__ import annotations

import sys
from pathlib import Path


def _find_repo_root(start: Path) -> Path:
    cur = start.resolve()
    for candidate in [cur, *cur.parents]:
        if (candidate / "prismguard").is_dir() and (candidate / "config").is_dir():
            return candidate
    return cur


# tests import prismguard and apps.observer from a plain checkout
repo_root = _find_repo_root(Path(__file__).parent)
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))
