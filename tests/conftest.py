"""
Pytest configuration for the raysim test suite.

Tests import the package as `raysim.*` and shared graphs as
`tests.fixtures.graphs`. This conftest puts the repository root on sys.path
so both resolve without an editable install, whatever the invocation cwd.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def fixed_rng():
    """Factory for an rng that replays the given draws in a loop."""
    def make(*values):
        state = {"i": 0}

        def rng():
            value = values[state["i"] % len(values)]
            state["i"] += 1
            return value
        return rng
    return make
