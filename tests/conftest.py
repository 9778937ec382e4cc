"""
Configuration for pytest.

This file provides common fixtures and configuration for all tests.
"""

import pytest

from todonotify.config import reset_config_loader


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "stream: tests that drive the stream client state machine"
    )


@pytest.fixture(autouse=True)
def _reset_config_singleton():
    reset_config_loader()
    yield
    reset_config_loader()
