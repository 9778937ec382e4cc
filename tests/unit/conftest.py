"""Fixtures for the notification unit tests."""

import pytest

from notify_fakes import FakeTimers, FakeTransport, RecordingNotifier


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def notifier():
    return RecordingNotifier()
