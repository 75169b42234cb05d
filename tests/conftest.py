"""Pytest configuration for test isolation.

The engine reads optional ``VAT_ANALYSIS_*`` environment variables (settings
and log level), and the CLI loads a ``.env`` from the working directory. A
developer's shell or a stray ``.env`` would otherwise change thresholds and
make results depend on the machine running the tests.

To keep tests hermetic, every test starts with those variables cleared and
runs from its own temporary directory via an autouse fixture.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `vat_analysis` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear ``VAT_ANALYSIS_*`` variables and chdir into the test's tmp dir."""

    for name in list(os.environ):
        if name.startswith("VAT_ANALYSIS_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
