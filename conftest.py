"""
Pytest configuration for eventjam tests.

Provides:
- @pytest.mark.threads marker for tests that run real monitor threads or timers
- A fresh process-wide PlayerRuntime for every test
"""

import pytest

from eventjam.player_runtime import PlayerRuntime


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "threads: marks tests that start real monitor threads or timers"
    )


@pytest.fixture(autouse=True)
def fresh_player_runtime():
    """The runtime registry is process-wide; keep tests independent of each other."""
    PlayerRuntime.reset_instance()
    yield
    PlayerRuntime.reset_instance()
