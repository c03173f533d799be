"""Pytest configuration for test isolation.

The transaction cache mirrors month buckets under a default user cache
directory (``~/.cache/cashflow_dashboard``). Tests that go through
``load_settings()`` (the CLI in particular) would otherwise read and write
real user state, and files left by one test would be hydrated by the next.

To keep tests hermetic, we redirect the mirror root to a unique temporary
directory for each test via an autouse fixture, and clear the other
``CASHFLOW_*`` knobs so a developer's shell or ``.env`` cannot leak in.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `cashflow_dashboard` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]


@pytest.fixture(autouse=True)
def _isolate_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Force a per-test mirror root so tests don't share on-disk state."""

    cache_root = tmp_path / "cache"
    cache_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CASHFLOW_CACHE_DIR", os.fspath(cache_root))
    for name in (
        "CASHFLOW_CACHE_BACKGROUND_IO",
        "CASHFLOW_FIRST_WEEKDAY",
        "CASHFLOW_SUGGESTION_LOOKBACK",
        "CASHFLOW_DASHBOARD_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return cache_root
