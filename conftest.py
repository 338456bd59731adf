"""
Pytest configuration for the TinyCPU test suite.

The suites are plain ``unittest.TestCase`` classes collected by pytest:

    python -m pytest                 # everything
    python -m pytest -k Shift        # single class / test name
    python -m pytest -m "not wide"   # skip the non-default layouts

This file sits at the repository root, so pytest puts the root on
``sys.path`` and the flat modules import without installation.
"""

import logging

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "wide: tests that build processors with a non-default layout")


@pytest.fixture(autouse=True)
def _quiet_tinycpu_logs():
    # Dispatcher ERROR/WARNING lines stay out of captured output; assertLogs
    # lowers the level again where a test checks them.
    logger = logging.getLogger("tinycpu")
    old = logger.level
    logger.setLevel(logging.CRITICAL)
    yield
    logger.setLevel(old)
