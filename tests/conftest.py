"""Pytest configuration and shared fixtures."""

import pytest  # type: ignore[import-not-found]
from doubles import FakeScheduler, FakeTrackerClient, RecordingShell

from redtimer.core.session import Session


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")


@pytest.fixture
def scheduler() -> FakeScheduler:
    """Scheduler with a manual clock."""
    return FakeScheduler()


@pytest.fixture
def client() -> FakeTrackerClient:
    """Remote client completed by the test."""
    return FakeTrackerClient()


@pytest.fixture
def shell() -> RecordingShell:
    """Shell recording session output."""
    return RecordingShell()


@pytest.fixture
def session(client: FakeTrackerClient, shell: RecordingShell, scheduler: FakeScheduler) -> Session:
    """Session wired to the test doubles."""
    return Session(client, shell, scheduler)
