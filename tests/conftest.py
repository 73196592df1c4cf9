"""Shared pytest configuration and fixtures for the KEF local server test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path so tests can import tests.mocks
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tests.mocks import FakeClock, MockSpeakerExecutor


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def executor() -> MockSpeakerExecutor:
    """Scripted speaker executor with no responses queued."""
    return MockSpeakerExecutor()


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced monotonic clock."""
    return FakeClock()
