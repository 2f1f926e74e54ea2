"""Pytest configuration to ensure local imports work without install.

Adds the repository root to `sys.path` so `import lyaplib` succeeds when
running tests directly (e.g., from the `tests/` directory) without
`pip install -e .`. Long chaotic runs are skipped unless `--runslow` is given.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--runslow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --runslow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)
